"""
Marker search queries.

Use :func:`build_marker_search` rather than constructing :class:`MarkerSearch`
directly; it normalizes the shorthand kinds ``'Max'``, ``'Min'`` and
``'Bandwidth'`` into fully specified queries.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple


class Polarity(Enum):
    """Search direction: peak (POSITIVE), dip (NEGATIVE) or either (BOTH)."""
    POSITIVE = 'POS'
    NEGATIVE = 'NEG'
    BOTH = 'BOTH'


# Canonical search kinds understood by the VNA adapters. Other tags are passed
# through unchanged so that device-specific searches can be added later.
SEARCH_KINDS = (
    'Global',
    'Peak',
    'LeftPeak',
    'RightPeak',
    'Target',
    'LeftTarget',
    'RightTarget',
    'Bandwidth',
)


@dataclass(frozen=True)
class MarkerSearch:
    """
    A marker search query.

    Attributes:
        kind: Search kind tag, e.g. 'Global', 'Peak', 'LeftTarget', 'Bandwidth'
        channel: 1-based channel number
        trace: 1-based trace number
        marker: 1-based marker number
        threshold: Peak excursion or transition level, depending on ``kind``
        polarity: Peak, dip or either
    """
    kind: str
    channel: int
    trace: int
    marker: int
    threshold: float = 0.0
    polarity: Polarity = Polarity.BOTH

    def __post_init__(self):
        for field in ('channel', 'trace', 'marker'):
            value = getattr(self, field)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{field} must be a positive integer, got {value!r}")


def build_marker_search(kind: str, channel: int, trace: int, marker: int,
                        threshold: float = 0.0,
                        polarity: Polarity = Polarity.BOTH) -> MarkerSearch:
    """
    Make a :class:`MarkerSearch` for the given search kind.

    ``'Max'`` and ``'Min'`` become a ``'Global'`` search with positive and negative
    polarity respectively (threshold and polarity arguments are ignored).
    ``'Bandwidth'`` keeps the threshold but always searches both polarities.
    Any other kind is used exactly as supplied.

    Examples
    --------
    >>> build_marker_search('Max', 1, 1, 1, polarity=Polarity.NEGATIVE).polarity
    <Polarity.POSITIVE: 'POS'>
    >>> build_marker_search('Bandwidth', 1, 1, 1, 3.0).threshold
    3.0
    """
    if kind == 'Max':
        return MarkerSearch('Global', channel, trace, marker, 0.0, Polarity.POSITIVE)
    if kind == 'Min':
        return MarkerSearch('Global', channel, trace, marker, 0.0, Polarity.NEGATIVE)
    if kind == 'Bandwidth':
        return MarkerSearch('Bandwidth', channel, trace, marker, float(threshold), Polarity.BOTH)
    return MarkerSearch(kind, channel, trace, marker, float(threshold), polarity)


class SearchStatus(Enum):
    FOUND = 1
    NOT_FOUND = 2
    FAILED = 3


@dataclass
class SearchResult:
    """
    Outcome of one marker search.

    ``NOT_FOUND`` is a normal result (no peak or dip satisfied the query);
    ``FAILED`` carries the error that aborted this particular search.
    """
    search: MarkerSearch
    status: SearchStatus
    stimulus: Optional[float] = None
    response: Optional[Tuple[float, float]] = None
    bandwidth: Optional[Tuple[float, float, float, float]] = None
    error: Optional[Exception] = None

    @property
    def found(self) -> bool:
        return self.status == SearchStatus.FOUND

    @classmethod
    def not_found(cls, search: MarkerSearch) -> 'SearchResult':
        return cls(search, SearchStatus.NOT_FOUND)


def execute_searches(instrument: Any, *searches: MarkerSearch) -> List[SearchResult]:
    """
    Run each search in order, isolating failures.

    Every search is attempted even if an earlier one failed; the failure is
    reported in that search's result instead of being raised. This covers
    transport errors and malformed replies as well as instrument errors.
    """
    results = []
    for s in searches:
        try:
            results.append(instrument.search(s))
        except Exception as e:
            results.append(SearchResult(s, SearchStatus.FAILED, error=e))
    return results
