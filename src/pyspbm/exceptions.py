"""Exceptions for SPBM telemetry access.

All exceptions inherit from :class:`SpbmError` so callers can use a single
``except SpbmError`` to catch discovery, mapping and channel failures.

Inactive telemetry is deliberately not an exception: a binding whose sanity
read returns a sentinel still succeeds, and reports the condition through
``DeviceBinding.telemetry_active`` and a warning log line.
"""

from __future__ import annotations


class SpbmError(Exception):
    """Base exception for all SPBM errors."""

    pass


class ResourceNotFoundError(SpbmError):
    """The telemetry window could not be located in the device resources."""

    pass


class ResourceEnumerationError(ResourceNotFoundError):
    """Enumerating the device's declared resources failed.

    The underlying platform error is available as ``__cause__``.
    """

    pass


class MapFailedError(SpbmError):
    """The physical telemetry window could not be mapped."""

    pass


class WindowClosedError(SpbmError):
    """A read was attempted on a register window that has been closed."""

    pass


class BindingClosedError(SpbmError):
    """A read was attempted on a device binding after unbind."""

    pass


class ChannelOutOfRangeError(SpbmError, IndexError):
    """Requested channel index is outside the catalog for its kind.

    This is an integration error, not a hardware condition: an adapter that
    only enumerates catalog channels never triggers it.
    """

    def __init__(self, kind: str, index: object, count: int) -> None:
        """Initialize with the offending channel details.

        Args:
            kind: Channel kind that was requested
            index: The rejected index (may not be an int)
            count: Number of channels defined for the kind
        """
        self.kind = kind
        self.index = index
        self.count = count
        super().__init__(f"{kind} channel {index!r} out of range (0..{count - 1})")


class UnsupportedAttributeError(SpbmError):
    """The requested hwmon attribute is not provided for this channel."""

    def __init__(self, attr: str, operation: str) -> None:
        """Initialize with attribute and operation details.

        Args:
            attr: The attribute name that was requested
            operation: The adapter operation that rejected it
        """
        self.attr = attr
        self.operation = operation
        super().__init__(f"Attribute '{attr}' is not supported by {operation}")


__all__ = [
    "BindingClosedError",
    "ChannelOutOfRangeError",
    "MapFailedError",
    "ResourceEnumerationError",
    "ResourceNotFoundError",
    "SpbmError",
    "UnsupportedAttributeError",
    "WindowClosedError",
]
