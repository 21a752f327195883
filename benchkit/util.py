"""
Utility functions for channel bitmasks and SI value parsing.
"""

import math
import re
from typing import Iterable, Set

import numpy as np


def parse_si(value: str, unit: str = 'Hz') -> float:
    """
    Parse a string with SI prefixes into a numeric value.

    Supports standard SI prefixes with case sensitivity:
    - m = milli (10^-3)
    - k/K = kilo (10^3)
    - M = mega (10^6)
    - G = giga (10^9)
    - T = tera (10^12)

    Parameters
    ----------
    value : str
        String to parse, e.g., '10KHz', '1.5GHz', '10mV'
    unit : str, optional
        Expected unit ('Hz', 'V', 's', etc.). Default is 'Hz'.
        Used to validate the input.

    Returns
    -------
    float
        Numeric value in base units

    Examples
    --------
    >>> parse_si('10KHz', unit='Hz')
    10000.0
    >>> parse_si('1.5GHz', unit='Hz')
    1500000000.0
    >>> parse_si('-3dB', unit='dB')
    -3.0
    """
    original_value = value
    value = value.strip()

    # Case-sensitive for prefix to distinguish m (milli) from M (mega)
    match = re.match(r'^([+-]?[\d.]+(?:[eE][+-]?\d+)?)\s*([mkKMGT]?)([a-zA-Z]+)?$', value)
    if not match:
        raise ValueError(f"Invalid format: {original_value}")

    number = float(match.group(1))
    prefix = match.group(2)
    found_unit = match.group(3) if match.group(3) else None

    # Normalize unit comparison (case-insensitive)
    if found_unit and found_unit.upper() != unit.upper():
        raise ValueError(f"Expected unit '{unit}' but found '{found_unit}' in: {original_value}")

    multipliers = {
        '': 1,
        'm': 1e-3,
        'k': 1e3,
        'K': 1e3,
        'M': 1e6,
        'G': 1e9,
        'T': 1e12,
    }

    return number * multipliers.get(prefix, 1)


def encode_channel_mask(channels: Iterable[int]) -> int:
    """
    Encode a set of 1-based channel numbers as an integer bitmask.

    Bit ``c - 1`` is set for every channel ``c``. Duplicates are ignored and the
    result does not depend on input order.

    Examples
    --------
    >>> encode_channel_mask({1, 3})
    5
    >>> encode_channel_mask([4, 2, 2])
    10
    """
    mask = 0
    for ch in set(channels):
        if isinstance(ch, bool) or not isinstance(ch, (int, np.integer)) or ch < 1:
            raise ValueError(f"Channel numbers must be positive integers, got {ch!r}")
        mask |= 1 << (int(ch) - 1)
    return mask


def decode_channel_mask(mask: int) -> Set[int]:
    """Inverse of :func:`encode_channel_mask`."""
    if mask < 0:
        raise ValueError(f"Channel mask must be non-negative, got {mask}")
    channels = set()
    bit = 0
    while mask >> bit:
        if (mask >> bit) & 1:
            channels.add(bit + 1)
        bit += 1
    return channels


def seconds_to_ms(timeout: float) -> int:
    """Convert a timeout in seconds to whole milliseconds, rounding up."""
    return int(math.ceil(timeout * 1e3))


def breakpoints(start: float, stop: float, count: int) -> np.ndarray:
    """
    Split ``[start, stop]`` into ``count + 1`` equal sub-spans and return their start points.

    Examples
    --------
    >>> breakpoints(1e9, 2e9, 3)
    array([1.00e+09, 1.25e+09, 1.50e+09, 1.75e+09])
    """
    return np.linspace(start, stop, count + 2)[:-1]
