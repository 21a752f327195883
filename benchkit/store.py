"""
Per-channel configuration store.

The store records the value each property was last *set* to, per channel. It is
advisory: entries reflect caller intent after a successful configuration command,
not a reading from hardware. Code that needs the device's actual state must query
the instrument instead.
"""

from typing import Any, Dict, Hashable, List, Mapping, Optional

from .errors import InvalidChannelCountError, UnknownCategoryError, UnknownChannelError
from .properties import Category, Registry


class ChannelStore:
    """
    Mapping from channel number to the last-assigned value of each property.

    Args:
        registry: Registry of the owning instrument family
        defaults: Mandatory categories and the value each new channel starts with
    """

    def __init__(self, registry: Registry, defaults: Optional[Mapping[str, Any]] = None):
        self._registry = registry
        self._defaults: Dict[str, Any] = {}
        for name, value in (defaults or {}).items():
            cat = registry.category(name)
            self._defaults[cat.name] = registry.validate(cat, value)
        self._channels: Dict[int, Dict[Hashable, Any]] = {}

    def init_channels(self, count: int) -> None:
        """Create channels 1..count, each holding the default of every mandatory category."""
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise InvalidChannelCountError(f"Channel count must be positive, got {count!r}")
        self._channels = {ch: dict(self._defaults) for ch in range(1, count + 1)}

    def _key(self, category: Category | str, index: Optional[Hashable]) -> Hashable:
        name = self._registry.category(category).name
        return name if index is None else (name, index)

    def _channel(self, channel: int) -> Dict[Hashable, Any]:
        try:
            return self._channels[channel]
        except KeyError:
            raise UnknownChannelError(channel) from None

    def set_property(self, channel: int, category: Category | str, value: Any,
                     index: Optional[Hashable] = None) -> None:
        """
        Record ``value`` for ``category`` on ``channel``.

        Only call this after the corresponding device command succeeded.
        ``index`` addresses per-trace or per-marker properties.
        """
        entries = self._channel(channel)
        entries[self._key(category, index)] = value

    def get_property(self, channel: int, category: Category | str,
                     index: Optional[Hashable] = None) -> Any:
        """Return the recorded value. Never consults hardware."""
        entries = self._channel(channel)
        key = self._key(category, index)
        try:
            return entries[key]
        except KeyError:
            raise UnknownCategoryError(key) from None

    @property
    def channels(self) -> List[int]:
        return sorted(self._channels)

    def __contains__(self, channel: int) -> bool:
        return channel in self._channels

    def snapshot(self, channel: int) -> Dict[Hashable, Any]:
        """Copy of all entries recorded for one channel."""
        return dict(self._channel(channel))

    def clear(self) -> None:
        """Reset every channel to the family defaults."""
        self._channels = {ch: dict(self._defaults) for ch in self._channels}
