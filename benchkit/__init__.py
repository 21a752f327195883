"""
Capability layer for bench instruments controlled over a command/response link.

This package models the configurable state of vector network analyzers and
digitizer cards: which modes a property may take, what each channel is
currently set to, and how marker searches and multi-channel commands are encoded.

Submodules:
    benchkit.properties - Property categories, kinds and per-family registries
    benchkit.search - Marker search queries and results
    benchkit.store - Per-channel configuration store
    benchkit.util - Channel bitmasks and SI value parsing
    benchkit.vna - Vector network analyzer interface (Keysight E5071C)
    benchkit.digitizer - Digitizer card interface (Keysight M3102A)
"""

from .errors import (
    BenchkitError,
    ConfigurationError,
    DeviceError,
    DuplicateCategoryError,
    DuplicateKindError,
    InvalidChannelCountError,
    InvalidTimeoutError,
    RegistryFrozenError,
    UnknownCategoryError,
    UnknownChannelError,
)
from .properties import Category, Domain, Kind, Registry, build_registry
from .search import MarkerSearch, Polarity, SearchResult, SearchStatus, build_marker_search
from .store import ChannelStore
from .util import decode_channel_mask, encode_channel_mask, parse_si

__version__ = "1.0.0"
__all__ = [
    "BenchkitError",
    "ConfigurationError",
    "DeviceError",
    "DuplicateCategoryError",
    "DuplicateKindError",
    "InvalidChannelCountError",
    "InvalidTimeoutError",
    "RegistryFrozenError",
    "UnknownCategoryError",
    "UnknownChannelError",
    "Category",
    "Domain",
    "Kind",
    "Registry",
    "build_registry",
    "MarkerSearch",
    "Polarity",
    "SearchResult",
    "SearchStatus",
    "build_marker_search",
    "ChannelStore",
    "decode_channel_mask",
    "encode_channel_mask",
    "parse_si",
]
