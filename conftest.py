"""
Shared fixtures: stand-ins for a VISA-connected VNA and an SD1 digitizer driver.

The fakes keep just enough state to answer the commands benchkit sends, so the
test suite runs without instruments attached.
"""

import time
from typing import Dict, List, Optional, Tuple

import numpy as np
import pytest

from benchkit.digitizer import DigitizerM3102A
from benchkit.vna import E5071C


class FakeVNAResource:
    """
    Minimal pyvisa message resource.

    ``state`` maps SCPI headers to the value last written; queries return it.
    ``errors`` maps a full command or header to the ``(code, message)`` pushed
    onto the error queue when that command arrives (the command then has no effect).
    ``raises`` maps a query header to an exception raised instead of answering,
    and ``error_reply`` replaces every error queue reply when set.
    """

    def __init__(self):
        self.state: Dict[str, str] = {}
        self.errors: Dict[str, Tuple[int, str]] = {}
        self.log: List[str] = []
        self._error_queue: List[Tuple[int, str]] = []
        self.raises: Dict[str, Exception] = {}
        self.error_reply: Optional[str] = None
        self.read_termination = None
        self.write_termination = None
        self.timeout = None
        self.closed = False

    def _rejected(self, cmd: str, header: str) -> bool:
        for key in (cmd, header):
            if key in self.errors:
                self._error_queue.append(self.errors[key])
                return True
        return False

    def write(self, cmd: str) -> None:
        self.log.append(cmd)
        header, _, value = cmd.partition(' ')
        if self._rejected(cmd, header):
            return
        if cmd == '*CLS':
            self._error_queue.clear()
        elif value:
            self.state[header] = value

    def query(self, cmd: str) -> str:
        self.log.append(cmd)
        if cmd == ':SYSTem:ERRor?':
            if self.error_reply is not None:
                return self.error_reply
            if self._error_queue:
                code, message = self._error_queue.pop(0)
                return f'{code},"{message}"\n'
            return '+0,"No error"\n'
        header = cmd[:-1] if cmd.endswith('?') else cmd
        if header in self.raises:
            raise self.raises[header]
        if self._rejected(cmd, header):
            return '\n'
        return self.state.get(header, '0') + '\n'

    def close(self) -> None:
        self.closed = True


class FakeSD1:
    """
    Stand-in for ``keysightSD1.SD_AIN``.

    Every call is recorded in ``calls``. ``fail`` maps a method name to the
    negative code that method returns instead of succeeding.
    """

    def __init__(self, serial: str = 'MY12345678', chassis: int = 1, slot: int = 5):
        self.serial = serial
        self.chassis = chassis
        self.slot = slot
        self.calls: List[Tuple] = []
        self.fail: Dict[str, int] = {}
        self.counters: Dict[int, int] = {}
        self.inputs: Dict[int, Tuple[float, int, int]] = {}
        self.prescalers: Dict[int, int] = {}

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        return self.fail.get(name)

    def calls_to(self, name: str) -> List[Tuple]:
        return [c[1:] for c in self.calls if c[0] == name]

    def openWithSerialNumber(self, product, serial):
        return self._record('openWithSerialNumber', product, serial) or 0

    def openWithSlot(self, product, chassis, slot):
        return self._record('openWithSlot', product, chassis, slot) or 0

    def getProductNameBySlot(self, chassis, slot):
        return self._record('getProductNameBySlot', chassis, slot) or 'M3102A'

    def getChassis(self):
        return self._record('getChassis') or self.chassis

    def getSlot(self):
        return self._record('getSlot') or self.slot

    def getSerialNumber(self):
        return self._record('getSerialNumber') or self.serial

    def channelInputConfig(self, ch, full_scale, impedance, coupling):
        err = self._record('channelInputConfig', ch, full_scale, impedance, coupling)
        if err:
            return err
        self.inputs[ch] = (full_scale, impedance, coupling)
        return 0

    def channelPrescalerConfig(self, ch, prescaler):
        err = self._record('channelPrescalerConfig', ch, prescaler)
        if err:
            return err
        self.prescalers[ch] = prescaler
        return 0

    def DAQconfig(self, ch, points, cycles, delay, mode):
        return self._record('DAQconfig', ch, points, cycles, delay, mode) or 0

    def channelFullScale(self, ch):
        return self._record('channelFullScale', ch) or self.inputs[ch][0]

    def channelImpedance(self, ch):
        return self._record('channelImpedance', ch) or self.inputs[ch][1]

    def channelCoupling(self, ch):
        return self._record('channelCoupling', ch) or self.inputs[ch][2]

    def channelPrescaler(self, ch):
        return self._record('channelPrescaler', ch) or self.prescalers[ch]

    def DAQstart(self, ch):
        return self._record('DAQstart', ch) or 0

    def DAQstop(self, ch):
        return self._record('DAQstop', ch) or 0

    def DAQstartMultiple(self, mask):
        return self._record('DAQstartMultiple', mask) or 0

    def DAQstopMultiple(self, mask):
        return self._record('DAQstopMultiple', mask) or 0

    def DAQread(self, ch, points, timeout_ms):
        err = self._record('DAQread', ch, points, timeout_ms)
        if err:
            return err
        return np.arange(points, dtype=np.int16)

    def DAQcounterRead(self, ch):
        return self._record('DAQcounterRead', ch) or self.counters.get(ch, 0)

    def close(self):
        return self._record('close') or 0


class InFlight:
    """Counts calls that start while another call is still in progress."""

    def __init__(self):
        self.overlaps = 0
        self._busy = False

    def enter(self):
        if self._busy:
            self.overlaps += 1
        self._busy = True
        time.sleep(0.0002)

    def leave(self):
        self._busy = False


class SerialVNAResource(FakeVNAResource):
    """FakeVNAResource that records overlapping writes and queries."""

    def __init__(self):
        super().__init__()
        self.in_flight = InFlight()

    def write(self, cmd: str) -> None:
        self.in_flight.enter()
        try:
            super().write(cmd)
        finally:
            self.in_flight.leave()

    def query(self, cmd: str) -> str:
        self.in_flight.enter()
        try:
            return super().query(cmd)
        finally:
            self.in_flight.leave()


class SerialSD1(FakeSD1):
    """FakeSD1 that records overlapping driver calls."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.in_flight = InFlight()

    def _record(self, name, *args):
        self.in_flight.enter()
        try:
            return super()._record(name, *args)
        finally:
            self.in_flight.leave()


@pytest.fixture
def resource():
    """Fake VISA session for a VNA sweeping 1-2 GHz on channel 1."""
    res = FakeVNAResource()
    res.state.update({
        ':SENS1:FREQ:STAR': '+1.00000000000E+009',
        ':SENS1:FREQ:STOP': '+2.00000000000E+009',
    })
    return res


@pytest.fixture
def vna(resource):
    return E5071C(resource=resource)


@pytest.fixture
def driver():
    return FakeSD1()


@pytest.fixture
def digitizer(driver):
    return DigitizerM3102A(driver, slot=5, chassis=1)
