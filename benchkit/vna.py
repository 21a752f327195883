"""
Vector network analyzer abstraction for SCPI-controlled VNAs.

Properties are configured through ``configure(category, value, ...)`` and read back
from hardware through ``inspect(category, ...)``. Both are driven by a parameter
table mapping each property category to its SCPI command template, so adding a
VNA family means supplying a new table rather than new methods.

Command templates use ``#`` as a placeholder for channel, trace and marker
numbers, filled in order: ``':CALC#:TRAC#:MARK#:X'`` with ``(1, 2, 3)`` becomes
``':CALC1:TRAC2:MARK3:X'``.
"""

from enum import Enum
from typing import Any, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, TYPE_CHECKING
import sys
import threading

import numpy as np
import pyvisa

from .errors import ConfigurationError, DeviceError, UnknownChannelError
from .properties import Category, Domain, Kind, Registry, build_registry
from .search import MarkerSearch, Polarity, SearchResult, SearchStatus, execute_searches
from .store import ChannelStore
from .util import breakpoints, parse_si


class Type(Enum):
    """Parameter type enum for SCPI value formatting."""
    UNITLESS = 1
    FREQUENCY = 2
    BOOLEAN = 3
    CODE = 4
    LAYOUT = 5
    RESPONSE = 6


# Categories common to all VNAs: (name, domain, doc)
VNA_CATEGORIES = [
    ('ElectricalMedium', Domain.ENUMERATION, "Signals may propagate on coax or waveguide media."),
    ('Format', Domain.ENUMERATION, "Post-processing and display formats typical of VNAs."),
    ('IFBandwidth', Domain.SCALAR, "IF bandwidth for a VNA."),
    ('Marker', Domain.FLAG, "Marker state (on/off)."),
    ('MarkerX', Domain.SCALAR, "Stimulus value for a marker."),
    ('MarkerY', Domain.SCALAR, "Marker response, read back as a (primary, secondary) pair."),
    ('Parameter', Domain.ENUMERATION, "VNA measurement parameter, e.g. S11, S12, etc."),
    ('Windows', Domain.LAYOUT, "Graph layout specified by a matrix."),
    ('FrequencyStart', Domain.SCALAR, "Start frequency of the stimulus sweep."),
    ('FrequencyStop', Domain.SCALAR, "Stop frequency of the stimulus sweep."),
    ('Points', Domain.SCALAR, "Number of points in the sweep."),
    ('Averaging', Domain.FLAG, "Sweep averaging (on/off)."),
    ('AveragingFactor', Domain.SCALAR, "Number of sweeps averaged."),
]

VNA_KINDS = [
    ('Coaxial', 'ElectricalMedium'),
    ('Waveguide', 'ElectricalMedium'),

    # Display formats
    ('LogMagnitude', 'Format'),
    ('Phase', 'Format'),
    ('GroupDelay', 'Format'),
    ('SmithLinear', 'Format'),
    ('SmithLog', 'Format'),
    ('SmithComplex', 'Format'),
    ('Smith', 'Format'),
    ('SmithAdmittance', 'Format'),
    ('PolarLinear', 'Format'),
    ('PolarLog', 'Format'),
    ('PolarComplex', 'Format'),
    ('LinearMagnitude', 'Format'),
    ('SWR', 'Format'),
    ('RealPart', 'Format'),
    ('ImagPart', 'Format'),
    ('ExpandedPhase', 'Format'),
    ('PositivePhase', 'Format'),

    # Complex data at decreasing levels of processing:
    # Mathematics: fully calibrated data, including trace mathematics.
    # Calibrated: fully calibrated data.
    # Factory: factory calibrated data.
    # Raw: uncorrected data in the most raw form available.
    ('Mathematics', 'Format'),
    ('Calibrated', 'Format'),
    ('Factory', 'Format'),
    ('Raw', 'Format'),

    ('S11', 'Parameter'),
    ('S12', 'Parameter'),
    ('S21', 'Parameter'),
    ('S22', 'Parameter'),
]

VNA_REGISTRY = build_registry('VNA', VNA_CATEGORIES, VNA_KINDS)


# Parameter table structure: (category, type, scpi_template, address)
# Address selects which numbers fill the template: 'channel', 'trace' or 'marker'.
E5071C_PARAMS = [
    ('ElectricalMedium', Type.CODE, ':CALC#:TRAC#:CORR:EDEL:MED', 'trace'),
    ('Format', Type.CODE, ':CALC#:TRAC#:FORM', 'trace'),
    ('IFBandwidth', Type.FREQUENCY, ':SENS#:BAND', 'channel'),
    ('Marker', Type.BOOLEAN, ':CALC#:TRAC#:MARK#', 'marker'),
    ('MarkerX', Type.FREQUENCY, ':CALC#:TRAC#:MARK#:X', 'marker'),
    ('MarkerY', Type.RESPONSE, ':CALC#:TRAC#:MARK#:Y', 'marker'),
    ('Parameter', Type.CODE, ':CALC#:PAR#:DEF', 'trace'),
    ('Windows', Type.LAYOUT, ':DISP:WIND#:SPL', 'channel'),
    ('FrequencyStart', Type.FREQUENCY, ':SENS#:FREQ:STAR', 'channel'),
    ('FrequencyStop', Type.FREQUENCY, ':SENS#:FREQ:STOP', 'channel'),
    ('Points', Type.UNITLESS, ':SENS#:SWE:POIN', 'channel'),
    ('Averaging', Type.BOOLEAN, ':SENS#:AVER', 'channel'),
    ('AveragingFactor', Type.UNITLESS, ':SENS#:AVER:COUN', 'channel'),
]

E5071C_CODES = {
    'Coaxial': 'COAX',
    'Waveguide': 'WAV',
    'LogMagnitude': 'MLOG',
    'Phase': 'PHAS',
    'GroupDelay': 'GDEL',
    'SmithLinear': 'SLIN',
    'SmithLog': 'SLOG',
    'SmithComplex': 'SCOM',
    'Smith': 'SMIT',
    'SmithAdmittance': 'SADM',
    'PolarLinear': 'PLIN',
    'PolarLog': 'PLOG',
    'PolarComplex': 'POL',
    'LinearMagnitude': 'MLIN',
    'SWR': 'SWR',
    'RealPart': 'REAL',
    'ImagPart': 'IMAG',
    'ExpandedPhase': 'UPH',
    'PositivePhase': 'PPH',
    'S11': 'S11',
    'S12': 'S12',
    'S21': 'S21',
    'S22': 'S22',
}

# Instrument preset values for the channel-level properties every channel tracks
E5071C_DEFAULTS = {
    'IFBandwidth': 70e3,
    'Points': 201,
    'Averaging': False,
    'AveragingFactor': 16,
}

# Search kind -> :FUNC:TYPE code. 'Global' resolves by polarity.
E5071C_SEARCH_TYPES = {
    'Peak': 'PEAK',
    'LeftPeak': 'LPE',
    'RightPeak': 'RPE',
    'Target': 'TARG',
    'LeftTarget': 'LTAR',
    'RightTarget': 'RTAR',
}

# "Peak not found" / "Target not found"
E5071C_SEARCH_FAILURES = (41, 42)


def window_layout(matrix: Sequence[Sequence[int]]) -> str:
    """
    How to specify a window layout in a command string, given a matrix.

    Each row lists the window (or trace) numbers placed left to right; rows are
    separated by underscores.

    Examples
    --------
    >>> window_layout([[1, 2], [3, 4]])
    'D12_34'
    >>> window_layout([[1], [2]])
    'D1_2'
    >>> window_layout([[1, 1, 2]])
    'D112'
    """
    rows = VNA_REGISTRY.validate('Windows', matrix)
    if any(v > 9 for row in rows for v in row):
        raise ConfigurationError(f"Window numbers above 9 cannot be encoded: {matrix!r}")
    return 'D' + '_'.join(''.join(str(v) for v in row) for row in rows)


def parse_window_layout(value: str) -> Tuple[Tuple[int, ...], ...]:
    """Inverse of :func:`window_layout`."""
    value = value.strip().strip('"').upper()
    if not value.startswith('D') or len(value) < 2:
        raise ValueError(f"Invalid window layout: {value!r}")
    return tuple(tuple(int(c) for c in row) for row in value[1:].split('_'))


class VNA:
    """
    Generic SCPI-controlled vector network analyzer.

    Every configuration command is checked against the instrument's error queue;
    the per-channel store is updated only after the instrument accepted it.

    Example:
        vna = E5071C(address='TCPIP0::192.168.0.10::inst0::INSTR', debug_level=1)

        vna.configure('Parameter', 'S21', channel=1, trace=1)
        vna.configure('Format', 'LogMagnitude', channel=1, trace=1)
        vna.channels[0].freq_start = '1GHz'
        vna.channels[0].freq_stop = '2GHz'

        # Spread markers 1-4 over the span and find the minimum with marker 5
        vna.shotgun([1, 2, 3, 4])
        result = vna.search(build_marker_search('Min', 1, 1, 5))
    """

    name = 'VNA'
    registry: Registry = VNA_REGISTRY
    params: List[Tuple[str, Type, str, str]] = []
    codes: Dict[str, str] = {}
    defaults: Dict[str, Any] = {}
    read_only = ('MarkerY',)

    def __init__(self, address: Optional[str] = None, resource: Any = None,
                 num_channels: int = 4, debug_level: int = 0, timeout_ms: int = 10_000):
        """
        Initialize VNA connection.

        Args:
            address: VISA resource string. If None (and no resource is given),
                the first instrument reported by the VISA resource manager is used.
            resource: An already opened pyvisa resource (takes precedence over address)
            num_channels: Number of measurement channels tracked in the store
            debug_level: Debug verbosity level:
                0 = no debug output
                1 = print SCPI commands and responses to stderr
                2 = also print configuration store updates
            timeout_ms: VISA I/O timeout in milliseconds
        """
        self.debug_level = debug_level
        self._lock = threading.RLock()
        self._params = {row[0]: row for row in self.params}
        self._codes_reverse = {code.upper(): name for name, code in self.codes.items()}

        if resource is None:
            rm = pyvisa.ResourceManager()
            if address is None:
                try:
                    resources = rm.list_resources()
                except Exception:
                    resources = ()
                candidates = [r for r in resources if r.startswith(('TCPIP', 'USB', 'GPIB'))]
                if not candidates:
                    raise RuntimeError(
                        "No instrument found. Specify the VISA address explicitly, "
                        "e.g. VNA(address='TCPIP0::192.168.x.x::inst0::INSTR')"
                    )
                address = candidates[0]
                if self.debug_level >= 1:
                    print(f"< Auto-discovered: {address}", file=sys.stderr)
            resource = rm.open_resource(address)

        self.inst = resource
        self.inst.read_termination = "\n"
        self.inst.write_termination = "\n"
        self.inst.timeout = timeout_ms

        self.store = ChannelStore(self.registry, self.defaults)
        self.store.init_channels(num_channels)
        self.channels = [Channel(self, ch) for ch in self.store.channels]

        # Start from an empty error queue so errors belong to our own commands
        self._write('*CLS')
        self._write(':FORM:DATA ASC')

    # -- Transport ---------------------------------------------------------

    @staticmethod
    def _fill(template: str, args: Sequence[Any]) -> str:
        """Substitute ``#`` placeholders in order."""
        parts = template.split('#')
        if len(parts) - 1 != len(args):
            raise ValueError(
                f"Template {template!r} takes {len(parts) - 1} argument(s), got {len(args)}"
            )
        out = parts[0]
        for arg, part in zip(args, parts[1:]):
            out += str(arg) + part
        return out

    def _write(self, cmd: str) -> None:
        """Execute SCPI write command."""
        with self._lock:
            if self.debug_level:
                print(f"> {cmd}", file=sys.stderr)
            self.inst.write(cmd)

    def _query(self, cmd: str) -> str:
        """Execute SCPI query command."""
        with self._lock:
            if not self.debug_level:
                return self.inst.query(cmd)
            print(f"> {cmd}", file=sys.stderr)
            result = self.inst.query(cmd)
            print(f"< {result.strip()}", file=sys.stderr)
            return result

    def write(self, template: str, *args: Any) -> None:
        """Fill ``template`` with ``args`` and send it (no response expected)."""
        self._write(self._fill(template, args))

    def query(self, template: str, *args: Any) -> str:
        """Fill ``template`` with ``args``, send it and return the response."""
        return self._query(self._fill(template, args))

    def device_error(self, code: Optional[int], message: Optional[str] = None) -> DeviceError:
        """Build the exception for an error reported by this instrument."""
        return DeviceError(self, code, message)

    def _read_error(self) -> Tuple[int, str]:
        """
        Pop one entry from the SCPI error queue as ``(code, message)``.

        Raises:
            DeviceError: If the reply does not start with a numeric code
        """
        error_response = self._query(":SYSTem:ERRor?").strip()
        # Error format: "code,message" e.g. '+0,"No error"' or '-113,"Undefined header"'
        try:
            code_str, message = error_response.split(',', 1)
            return int(code_str), message.strip().strip('"')
        except ValueError:
            # A reply without a code cannot confirm success
            raise self.device_error(None, f"Unparseable error queue reply: {error_response!r}") from None

    def check_error(self, last_cmd: str = "") -> None:
        """
        Check for SCPI errors and raise exception if found.

        Args:
            last_cmd: The command that was just executed (for error reporting)

        Raises:
            DeviceError: If the error queue holds a non-zero code
        """
        code, message = self._read_error()
        if code != 0:
            cmd_info = f" after command: {last_cmd}" if last_cmd else ""
            raise self.device_error(code, f"{message}{cmd_info}")

    def close(self) -> None:
        """Close the VISA session."""
        self.inst.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # -- Properties --------------------------------------------------------

    def _row(self, category: Category | str) -> Tuple[Category, Type, str, str]:
        cat = self.registry.category(category)
        try:
            _, ptype, template, address = self._params[cat.name]
        except KeyError:
            raise ConfigurationError(f"{cat.name} is not supported by {self.name}") from None
        return cat, ptype, template, address

    @staticmethod
    def _address(address: str, channel: int, trace: int,
                 marker: Optional[int]) -> Tuple[Tuple[int, ...], Optional[Hashable]]:
        """Template arguments and store index for an addressing mode."""
        match address:
            case 'channel':
                return (channel,), None
            case 'trace':
                return (channel, trace), trace
            case 'marker':
                if marker is None:
                    raise ValueError("A marker number is required for marker properties")
                return (channel, trace, marker), (trace, marker)
        raise ValueError(f"Unknown addressing mode: {address!r}")

    def _encode(self, cat: Category, ptype: Type, value: Any) -> str:
        match ptype:
            case Type.BOOLEAN:
                return 'ON' if value else 'OFF'
            case Type.CODE:
                try:
                    return self.codes[value.name]
                except KeyError:
                    raise ConfigurationError(
                        f"{value.name} {cat.name} is not supported by {self.name}"
                    ) from None
            case Type.LAYOUT:
                return window_layout(value)
            case _:
                return str(value)

    def _parse_value(self, value_str: str, ptype: Type) -> Any:
        """Parse a value from SCPI response according to its type."""
        value_str = value_str.strip()

        match ptype:
            case Type.BOOLEAN:
                val = value_str.upper()
                if val in ('ON', '1'):
                    return True
                elif val in ('OFF', '0'):
                    return False
                else:
                    raise ValueError(f"Invalid boolean value: {value_str!r}")
            case Type.FREQUENCY:
                return float(value_str)
            case Type.UNITLESS:
                number = float(value_str)
                return int(number) if number.is_integer() else number
            case Type.CODE:
                try:
                    return self.registry.kind(self._codes_reverse[value_str.upper()])
                except KeyError:
                    raise ValueError(f"Unrecognized response: {value_str!r}") from None
            case Type.LAYOUT:
                return parse_window_layout(value_str)
            case Type.RESPONSE:
                values = [float(x) for x in value_str.split(',')]
                return values[0], (values[1] if len(values) > 1 else 0.0)

    def configure(self, category: Category | str, value: Any, channel: int = 1,
                  trace: int = 1, marker: Optional[int] = None) -> None:
        """
        Set a property on the instrument.

        The value is checked against the category's domain, encoded through the
        family's command table and sent. The store entry is updated only once the
        instrument's error queue confirms the command was accepted.

        Args:
            category: Category name or handle, e.g. 'Format'
            value: Kind (or kind name), bool flag, number, SI string or layout matrix
            channel: 1-based channel number
            trace: 1-based trace number (trace and marker properties)
            marker: 1-based marker number (marker properties)

        Raises:
            ConfigurationError: If the value is not supported by this VNA
            UnknownChannelError: If the channel is not tracked by this instrument
            DeviceError: If the instrument rejected the command
        """
        cat, ptype, template, address = self._row(category)
        if cat.name in self.read_only:
            raise ConfigurationError(f"{cat.name} is read-only")

        if isinstance(value, str) and ptype == Type.FREQUENCY:
            value = parse_si(value, unit='Hz')
        value = self.registry.validate(cat, value)
        if ptype == Type.FREQUENCY:
            value = float(value)
        elif ptype == Type.UNITLESS:
            value = int(value) if float(value).is_integer() else float(value)
        value_str = self._encode(cat, ptype, value)
        args, index = self._address(address, channel, trace, marker)

        with self._lock:
            if channel not in self.store:
                raise UnknownChannelError(channel)
            cmd = f"{self._fill(template, args)} {value_str}"
            self._write(cmd)
            self.check_error(cmd)
            self.store.set_property(channel, cat, value, index)
            if self.debug_level >= 2:
                print(f"  store[{channel}][{cat.name}{'' if index is None else index}] = {value}",
                      file=sys.stderr)

    def inspect(self, category: Category | str, channel: int = 1, trace: int = 1,
                marker: Optional[int] = None) -> Any:
        """
        Read a property back from the instrument.

        Unlike :meth:`ChannelStore.get_property`, this always queries hardware.
        """
        cat, ptype, template, address = self._row(category)
        args, _ = self._address(address, channel, trace, marker)
        result = self._query(f"{self._fill(template, args)}?")
        return self._parse_value(result, ptype)

    # -- Operations --------------------------------------------------------

    def clear_averaging(self, channel: int = 1) -> None:
        """Restart averaging for channel ``channel``."""
        with self._lock:
            self.write(":SENS#:AVER:CLE", channel)
            self.check_error(f":SENS{channel}:AVER:CLE")

    def stimulus(self, channel: int = 1) -> np.ndarray:
        """Frequency of every sweep point, in Hz."""
        return _parse_array(self.query(":SENS#:FREQ:DATA?", channel))

    def data(self, channel: int = 1, trace: int = 1, kind: Kind | str = 'Calibrated') -> np.ndarray:
        """
        Read complex trace data at the processing level given by ``kind``.

        Raises:
            ConfigurationError: If this VNA cannot return data of that kind
        """
        kind = self.registry.validate('Format', kind)
        template = self._data_commands().get(kind.name)
        if template is None:
            raise ConfigurationError(f"{kind.name} data is not supported by {self.name}")
        values = _parse_array(self.query(template, channel, trace))
        return values[0::2] + 1j * values[1::2]

    def _data_commands(self) -> Dict[str, str]:
        """Format kind -> query template returning interleaved real/imaginary pairs."""
        return {}

    def formatted_data(self, channel: int = 1, trace: int = 1) -> np.ndarray:
        """Primary values of the trace in its current display format."""
        values = _parse_array(self.query(":CALC#:TRAC#:DATA:FDAT?", channel, trace))
        return values[0::2]

    def peak_not_found(self, code: int) -> bool:
        """Determines if an error code reflects a peak search failure."""
        return False

    def search(self, s: MarkerSearch) -> SearchResult:
        """
        Execute one marker search.

        Returns a result with status NOT_FOUND if the instrument reports that no
        peak/target matched; any other instrument error is raised.
        """
        raise ConfigurationError(f"Marker search is not supported by {self.name}")

    def search_all(self, *searches: MarkerSearch) -> List[SearchResult]:
        """Execute several marker searches in order; a failing search does not stop the rest."""
        return execute_searches(self, *searches)

    def shotgun(self, markers: Iterable[int] = range(1, 10), channel: int = 1, trace: int = 1) -> None:
        """Spread markers across the frequency span; see :func:`place_markers`."""
        place_markers(self, markers, channel, trace)


class Channel:
    """
    VNA channel interface.

    Provides property-based access to channel settings. Reads always query the
    instrument; writes go through :meth:`VNA.configure`.

    Properties are automatically generated from CHANNEL_PROPERTIES table.
    """

    if TYPE_CHECKING:
        @property
        def freq_start(self) -> float:
            """Start frequency in Hz. Accepts SI strings like '1.5GHz'."""
            ...
        @freq_start.setter
        def freq_start(self, value: float | str) -> None: ...

        @property
        def freq_stop(self) -> float:
            """Stop frequency in Hz. Accepts SI strings like '1.5GHz'."""
            ...
        @freq_stop.setter
        def freq_stop(self, value: float | str) -> None: ...

        @property
        def if_bandwidth(self) -> float:
            """IF bandwidth in Hz. Accepts SI strings like '10kHz'."""
            ...
        @if_bandwidth.setter
        def if_bandwidth(self, value: float | str) -> None: ...

        @property
        def points(self) -> int:
            """Number of sweep points."""
            ...
        @points.setter
        def points(self, value: int) -> None: ...

        @property
        def averaging(self) -> bool:
            """Sweep averaging enabled."""
            ...
        @averaging.setter
        def averaging(self, value: bool) -> None: ...

        @property
        def averaging_factor(self) -> int:
            """Number of sweeps averaged."""
            ...
        @averaging_factor.setter
        def averaging_factor(self, value: int) -> None: ...

        @property
        def layout(self) -> Tuple[Tuple[int, ...], ...]:
            """Trace layout within the channel window, e.g. ((1, 2), (3, 4))."""
            ...
        @layout.setter
        def layout(self, value: Sequence[Sequence[int]]) -> None: ...

    def __init__(self, vna: VNA, number: int):
        """
        Initialize channel.

        Args:
            vna: Parent VNA instance
            number: 1-based channel number
        """
        self._vna = vna
        self.number = number

    def clear_averaging(self) -> None:
        self._vna.clear_averaging(self.number)

    def __repr__(self) -> str:
        return f"Channel({self.number})"


# (attribute name, category)
CHANNEL_PROPERTIES = [
    ('freq_start', 'FrequencyStart'),
    ('freq_stop', 'FrequencyStop'),
    ('if_bandwidth', 'IFBandwidth'),
    ('points', 'Points'),
    ('averaging', 'Averaging'),
    ('averaging_factor', 'AveragingFactor'),
    ('layout', 'Windows'),
]


def _generate_properties(cls, params):
    """
    Generate and attach properties to a class from a parameter table.

    Args:
        cls: Class to attach properties to
        params: Parameter table of (attribute name, category) tuples
    """
    for name, category in params:
        def make_getter(category):
            def getter(self):
                return self._vna.inspect(category, self.number)
            return getter

        def make_setter(category):
            def setter(self, value):
                self._vna.configure(category, value, self.number)
            return setter

        setattr(cls, name, property(make_getter(category), make_setter(category)))


_generate_properties(Channel, CHANNEL_PROPERTIES)

del _generate_properties


class E5071C(VNA):
    """Keysight E5071C ENA network analyzer."""

    name = 'E5071C'
    params = E5071C_PARAMS
    codes = E5071C_CODES
    defaults = E5071C_DEFAULTS

    def _data_commands(self) -> Dict[str, str]:
        return {'Calibrated': ':CALC#:TRAC#:DATA:SDAT?'}

    def peak_not_found(self, code: int) -> bool:
        return code in E5071C_SEARCH_FAILURES

    def _search_step(self, cmd: str) -> Optional[int]:
        """Send one search command; return the error code if it signals "not found"."""
        self._write(cmd)
        code, message = self._read_error()
        if code == 0:
            return None
        if self.peak_not_found(code):
            return code
        raise self.device_error(code, f"{message} after command: {cmd}")

    def search(self, s: MarkerSearch) -> SearchResult:
        prefix = self._fill(':CALC#:TRAC#:MARK#', (s.channel, s.trace, s.marker))

        if s.kind == 'Global':
            if s.polarity == Polarity.BOTH:
                raise ConfigurationError("Global search needs a positive or negative polarity")
            commands = [f"{prefix}:FUNC:TYPE {'MAX' if s.polarity == Polarity.POSITIVE else 'MIN'}"]
        elif s.kind in ('Peak', 'LeftPeak', 'RightPeak'):
            commands = [
                f"{prefix}:FUNC:TYPE {E5071C_SEARCH_TYPES[s.kind]}",
                f"{prefix}:FUNC:PEXC {s.threshold}",
                f"{prefix}:FUNC:PPOL {s.polarity.value}",
            ]
        elif s.kind in ('Target', 'LeftTarget', 'RightTarget'):
            commands = [
                f"{prefix}:FUNC:TYPE {E5071C_SEARCH_TYPES[s.kind]}",
                f"{prefix}:FUNC:TARG {s.threshold}",
                f"{prefix}:FUNC:TTR {s.polarity.value}",
            ]
        elif s.kind == 'Bandwidth':
            return self._search_bandwidth(s, prefix)
        else:
            raise ConfigurationError(f"{s.kind} search is not supported by {self.name}")

        with self._lock:
            self.configure('Marker', True, s.channel, s.trace, s.marker)
            for cmd in commands:
                self._search_step(cmd)
            if self._search_step(f"{prefix}:FUNC:EXEC") is not None:
                return SearchResult.not_found(s)
            stimulus = self.inspect('MarkerX', s.channel, s.trace, s.marker)
            response = self.inspect('MarkerY', s.channel, s.trace, s.marker)
        return SearchResult(s, SearchStatus.FOUND, stimulus=stimulus, response=response)

    def _search_bandwidth(self, s: MarkerSearch, prefix: str) -> SearchResult:
        with self._lock:
            self.configure('Marker', True, s.channel, s.trace, s.marker)
            self._search_step(f"{prefix}:BWID:THR {s.threshold}")
            if self._search_step(f"{prefix}:BWID ON") is not None:
                return SearchResult.not_found(s)
            result = self._query(f"{prefix}:BWID:DATA?")
            code, message = self._read_error()
            if code != 0:
                if self.peak_not_found(code):
                    return SearchResult.not_found(s)
                raise self.device_error(code, message)
            stimulus = self.inspect('MarkerX', s.channel, s.trace, s.marker)
        figures = result.strip().split(',')
        if len(figures) < 4:
            raise self.device_error(None, f"Malformed bandwidth reply: {result.strip()!r}")
        bandwidth, center, q, loss = (float(x) for x in figures[:4])
        return SearchResult(s, SearchStatus.FOUND, stimulus=stimulus,
                            bandwidth=(bandwidth, center, q, loss))


def place_markers(vna: VNA, markers: Iterable[int], channel: int = 1, trace: int = 1) -> None:
    """
    Spread markers evenly across the frequency span.

    The span is divided into one more sub-span than there are markers. Each
    marker sits at the start of its own sub-span, beginning at the start
    frequency; the last sub-span, ending at the stop frequency, stays unmarked.

    The span is read from the instrument, not from the store. Placement stops at
    the first marker the instrument rejects; markers before it stay placed.

    Args:
        vna: Instrument to configure
        markers: Marker numbers, in placement order
        channel: 1-based channel number
        trace: 1-based trace number
    """
    markers = list(markers)
    f1 = vna.inspect('FrequencyStart', channel)
    f2 = vna.inspect('FrequencyStop', channel)
    fs = breakpoints(f1, f2, len(markers))
    for k, m in enumerate(markers):
        vna.configure('Marker', True, channel, trace, m)
        vna.configure('MarkerX', float(fs[k]), channel, trace, m)


def _parse_array(response: str) -> np.ndarray:
    """Parse a comma-separated ASCII block into a float array."""
    response = response.strip()
    if not response:
        return np.zeros(0)
    return np.array(response.split(','), dtype=np.float64)
