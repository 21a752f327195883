"""
Exception hierarchy shared by all instrument families.
"""

from typing import Any, Optional


class BenchkitError(Exception):
    """Base class for all errors raised by benchkit."""


class ConfigurationError(BenchkitError):
    """Requested value is not supported by this device/category combination."""


class UnknownChannelError(BenchkitError, KeyError):
    """Channel was never initialized in the configuration store."""

    def __init__(self, channel: Any):
        super().__init__(channel)
        self.channel = channel

    def __str__(self) -> str:
        return f"Unknown channel: {self.channel!r}"


class UnknownCategoryError(BenchkitError, KeyError):
    """Property category is not registered, or has no entry at the requested slot."""

    def __init__(self, category: Any):
        super().__init__(category)
        self.category = category

    def __str__(self) -> str:
        return f"Unknown category: {self.category!r}"


class DuplicateKindError(BenchkitError):
    """A kind with this name was already declared in the registry."""


class DuplicateCategoryError(BenchkitError):
    """A category with this name was already declared in the registry."""


class RegistryFrozenError(BenchkitError):
    """Registry was modified after initialization."""


class InvalidTimeoutError(BenchkitError, ValueError):
    """Timeout is non-zero but below the driver's 1 ms resolution."""


class InvalidChannelCountError(BenchkitError, ValueError):
    """Channel count passed to the store is not positive."""


class DeviceError(BenchkitError, RuntimeError):
    """
    Error reported by the instrument or its driver.

    Attributes:
        instrument: The device object that reported the error
        code: Original error code (SCPI error number or negative driver result),
            or None when the device gave no usable code
        message: Human-readable description, if one is available
    """

    def __init__(self, instrument: Any, code: Optional[int], message: Optional[str] = None):
        self.instrument = instrument
        self.code = code
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        name = getattr(self.instrument, 'name', type(self.instrument).__name__)
        if self.code is None:
            return f"{name} error: {self.message}"
        if self.message:
            return f"{name} error {self.code}: {self.message}"
        return f"{name} error {self.code}"
