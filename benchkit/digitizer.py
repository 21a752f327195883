"""
Digitizer card abstraction for Keysight M3102A (PXIe) digitizers.

The vendor library is not imported here. Pass an object exposing the
``keysightSD1.SD_AIN`` method names, e.g.::

    import keysightSD1
    dig = DigitizerM3102A(keysightSD1.SD_AIN(), slot=5, chassis=1)

    dig.configure('FullScale', 2.0, channel=1)
    dig.configure('DAQPointsPerCycle', 5000, channel=1)
    dig.daq_start({1, 2})
    samples = dig.daq_read(1, 5000, timeout=1.0)
    dig.daq_stop()

Driver calls return a negative integer on failure; every result is checked and
turned into a :class:`DeviceError` carrying the original code.
"""

from numbers import Real
from typing import Any, Callable, Dict, Iterable, Optional, Set
import sys
import threading

import numpy as np

from .errors import ConfigurationError, DeviceError, InvalidTimeoutError, UnknownChannelError
from .properties import Category, Domain, Kind, build_registry
from .store import ChannelStore
from .util import encode_channel_mask, seconds_to_ms


DIGITIZER_CATEGORIES = [
    ('FullScale', Domain.SCALAR, "Input full scale in volts."),
    ('Impedance', Domain.ENUMERATION, "Input impedance."),
    ('Coupling', Domain.ENUMERATION, "Input coupling."),
    ('Prescaler', Domain.SCALAR, "Sample rate divider (0 = full rate)."),
    ('DAQPointsPerCycle', Domain.SCALAR, "Samples acquired per trigger."),
    ('DAQCycles', Domain.SCALAR, "Number of triggers to acquire (negative = infinite)."),
    ('DAQTriggerDelay', Domain.SCALAR, "Delay between trigger and acquisition, in samples."),
    ('DAQTriggerMode', Domain.ENUMERATION, "What starts each acquisition cycle."),
]

DIGITIZER_KINDS = [
    ('HighZ', 'Impedance'),
    ('Ohm50', 'Impedance'),
    ('DC', 'Coupling'),
    ('AC', 'Coupling'),
    ('Auto', 'DAQTriggerMode'),
    ('SoftwareHVI', 'DAQTriggerMode'),
    ('HardwareDigital', 'DAQTriggerMode'),
    ('HardwareAnalog', 'DAQTriggerMode'),
]

DIGITIZER_REGISTRY = build_registry('Digitizer', DIGITIZER_CATEGORIES, DIGITIZER_KINDS)

# Kind name -> driver constant
M3102A_CODES = {
    'HighZ': 0,
    'Ohm50': 1,
    'DC': 0,
    'AC': 1,
    'Auto': 0,
    'SoftwareHVI': 1,
    'HardwareDigital': 2,
    'HardwareAnalog': 3,
}

# Every channel is set to these on construction
M3102A_DEFAULTS = {
    'FullScale': 1.0,
    'Impedance': 'Ohm50',
    'Coupling': 'DC',
    'Prescaler': 0,
    'DAQPointsPerCycle': 1000,
    'DAQCycles': 1,
    'DAQTriggerDelay': 0,
    'DAQTriggerMode': 'Auto',
}

INPUT_CATEGORIES = ('FullScale', 'Impedance', 'Coupling')
DAQ_CATEGORIES = ('DAQPointsPerCycle', 'DAQCycles', 'DAQTriggerDelay', 'DAQTriggerMode')
INTEGER_CATEGORIES = ('Prescaler',) + DAQ_CATEGORIES[:3]

# Categories that can be read back from the driver: category -> getter
READBACK = {
    'FullScale': 'channelFullScale',
    'Impedance': 'channelImpedance',
    'Coupling': 'channelCoupling',
    'Prescaler': 'channelPrescaler',
}


class DigitizerM3102A:
    """
    Keysight M3102A digitizer card.

    Holds the card's identity (product name, serial number, chassis and slot) and
    a per-channel record of the last configuration applied to each channel.
    """

    registry = DIGITIZER_REGISTRY

    def __init__(self, driver: Any, serial: Optional[str] = None, slot: Optional[int] = None,
                 chassis: int = 1, num_channels: int = 4, product: str = 'M3102A',
                 debug_level: int = 0, error_lookup: Optional[Callable[[int], str]] = None):
        """
        Open the card by serial number or by chassis/slot position.

        Args:
            driver: Object with the ``keysightSD1.SD_AIN`` interface
            serial: Serial number to open (mutually exclusive with ``slot``)
            slot: Slot number to open (mutually exclusive with ``serial``)
            chassis: Chassis number, used with ``slot``
            num_channels: Number of input channels on the card
            product: Product name passed to the driver when opening by serial
            debug_level: Debug verbosity level:
                0 = no debug output
                1 = print driver calls and results to stderr
                2 = also print configuration store updates
            error_lookup: Optional function translating a driver error code into a
                message, e.g. ``keysightSD1.SD_Error.getErrorMessage``
        """
        if (serial is None) == (slot is None):
            raise ValueError("Specify exactly one of serial or slot")

        self.driver = driver
        self.debug_level = debug_level
        self.error_lookup = error_lookup
        self.name = product
        self._lock = threading.RLock()

        if serial is not None:
            self.product_name = product
            self.serial_num = serial
            self.id = self._call('openWithSerialNumber', product, serial)
            self.chassis_num = self._call('getChassis')
            self.slot_num = self._call('getSlot')
        else:
            self.chassis_num = chassis
            self.slot_num = slot
            self.product_name = self._call('getProductNameBySlot', chassis, slot)
            self.name = self.product_name
            self.id = self._call('openWithSlot', self.product_name, chassis, slot)
            self.serial_num = self._call('getSerialNumber')

        self.store = ChannelStore(self.registry, M3102A_DEFAULTS)
        self.store.init_channels(num_channels)
        for ch in self.store.channels:
            self._apply_input(ch, self.store.snapshot(ch))
            self._apply_prescaler(ch, self.store.get_property(ch, 'Prescaler'))
            self._apply_daq(ch, self.store.snapshot(ch))

    @property
    def make(self) -> str:
        return "Keysight"

    @property
    def model(self) -> str:
        return self.product_name

    def __repr__(self) -> str:
        return (f"DigitizerM3102A(serial={self.serial_num!r}, "
                f"chassis={self.chassis_num}, slot={self.slot_num})")

    # -- Driver access -----------------------------------------------------

    def device_error(self, code: int) -> DeviceError:
        """Build the exception for a negative driver result."""
        message = self.error_lookup(code) if self.error_lookup is not None else None
        return DeviceError(self, code, message)

    def _call(self, method: str, *args: Any) -> Any:
        """Call a driver method and check its result for the negative error sentinel."""
        with self._lock:
            if self.debug_level:
                print(f"> {method}{args}", file=sys.stderr)
            result = getattr(self.driver, method)(*args)
            if self.debug_level:
                shown = f"<{len(result)} samples>" if isinstance(result, np.ndarray) else result
                print(f"< {shown}", file=sys.stderr)
        if isinstance(result, Real) and not isinstance(result, bool) and result < 0:
            raise self.device_error(int(result))
        return result

    def _apply_input(self, channel: int, values: Dict[Any, Any]) -> None:
        self._call('channelInputConfig', channel, values['FullScale'],
                   M3102A_CODES[values['Impedance'].name], M3102A_CODES[values['Coupling'].name])

    def _apply_prescaler(self, channel: int, prescaler: int) -> None:
        self._call('channelPrescalerConfig', channel, prescaler)

    def _apply_daq(self, channel: int, values: Dict[Any, Any]) -> None:
        self._call('DAQconfig', channel, values['DAQPointsPerCycle'], values['DAQCycles'],
                   values['DAQTriggerDelay'], M3102A_CODES[values['DAQTriggerMode'].name])

    # -- Properties --------------------------------------------------------

    def configure(self, category: Category | str, value: Any, channel: int) -> None:
        """
        Configure one property of one channel.

        Input settings (full scale, impedance, coupling) and DAQ settings are each
        sent to the driver as a group; the other members of the group are taken
        from the store. The store is updated only after the driver call succeeds.

        Raises:
            ConfigurationError: If the value is not valid for the category
            UnknownChannelError: If the channel does not exist on this card
            DeviceError: If the driver rejected the configuration
        """
        cat = self.registry.category(category)
        value = self.registry.validate(cat, value)
        if cat.name in INTEGER_CATEGORIES:
            if not float(value).is_integer():
                raise ConfigurationError(f"{cat.name} must be an integer, got {value!r}")
            value = int(value)
        elif cat.name == 'FullScale':
            value = float(value)

        with self._lock:
            if channel not in self.store:
                raise UnknownChannelError(channel)
            values = self.store.snapshot(channel)
            values[cat.name] = value
            if cat.name in INPUT_CATEGORIES:
                self._apply_input(channel, values)
            elif cat.name in DAQ_CATEGORIES:
                self._apply_daq(channel, values)
            else:
                self._apply_prescaler(channel, value)
            self.store.set_property(channel, cat, value)
            if self.debug_level >= 2:
                print(f"  store[{channel}][{cat.name}] = {value}", file=sys.stderr)

    def inspect(self, category: Category | str, channel: int) -> Any:
        """
        Read a channel setting back from the driver.

        Raises:
            ConfigurationError: For settings the driver cannot report (DAQ settings);
                use ``store.get_property`` to see what was last configured instead
        """
        cat = self.registry.category(category)
        getter = READBACK.get(cat.name)
        if getter is None:
            raise ConfigurationError(f"{cat.name} cannot be read back from {self.name}")
        result = self._call(getter, channel)
        if cat.domain == Domain.ENUMERATION:
            return self._kind_for(cat, int(result))
        return result

    def _kind_for(self, cat: Category, code: int) -> Kind:
        for kind in self.registry.kinds(cat):
            if M3102A_CODES[kind.name] == code:
                return kind
        raise ConfigurationError(f"Unrecognized {cat.name} code from driver: {code}")

    # -- Acquisition -------------------------------------------------------

    def _channel_set(self, channels: Optional[Iterable[int]]) -> Set[int]:
        """Resolve a channel set; None means every channel of the card."""
        chs = set(self.store.channels) if channels is None else set(channels)
        if not chs:
            raise ValueError("No channels given")
        for ch in chs:
            if ch not in self.store:
                raise UnknownChannelError(ch)
        return chs

    def daq_start(self, channels: Optional[Iterable[int]] = None) -> None:
        """
        Start acquisition on a set of channels (all channels if None).

        Several channels are started together with one masked driver call.
        """
        chs = self._channel_set(channels)
        if len(chs) == 1:
            self._call('DAQstart', next(iter(chs)))
        else:
            self._call('DAQstartMultiple', encode_channel_mask(chs))

    def daq_stop(self, channels: Optional[Iterable[int]] = None) -> None:
        """Stop acquisition on a set of channels (all channels if None)."""
        chs = self._channel_set(channels)
        if len(chs) == 1:
            self._call('DAQstop', next(iter(chs)))
        else:
            self._call('DAQstopMultiple', encode_channel_mask(chs))

    def daq_read(self, channel: int, points: int, timeout: float) -> np.ndarray:
        """
        Read acquired samples from one channel.

        Args:
            channel: 1-based channel number
            points: Number of samples to read
            timeout: Timeout in seconds; 0 waits forever. Non-zero values below
                1 ms cannot be represented by the driver and are rejected.

        Raises:
            InvalidTimeoutError: If the timeout is negative or below 1 ms
        """
        if timeout < 0 or 0 < timeout < 1e-3:
            raise InvalidTimeoutError(f"timeout has to be 0 or at least 1 ms, got {timeout} s")
        if channel not in self.store:
            raise UnknownChannelError(channel)
        data = self._call('DAQread', channel, points, seconds_to_ms(timeout))
        return np.asarray(data)

    def daq_counter(self, channel: int) -> int:
        """Number of points acquired by the DAQ since the last read."""
        if channel not in self.store:
            raise UnknownChannelError(channel)
        return int(self._call('DAQcounterRead', channel))

    def close(self) -> None:
        """Close the driver session."""
        self._call('close')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
