"""Exceptions raised while resolving and applying transforms.

All errors are local and synchronous: they are raised to the immediate caller and
never retried. Construction-time validation of transform parameters raises
`ValueError` instead, since it happens before any item is involved.
"""

from __future__ import annotations

import attrs


@attrs.define
class TransformError(Exception):
    """Base exception for transform errors.

    Attributes:
        message: Human-readable error message.
        details: Dictionary containing additional error details and context.
    """

    message: str
    details: dict = attrs.field(factory=dict)

    def __str__(self) -> str:
        """Return the error message."""
        return self.message


class BoundsError(TransformError):
    """Raised when bounds or shapes are zero, negative or otherwise unusable."""

    pass


class ItemTypeError(TransformError):
    """Raised when a transform is applied to an item kind it does not accept."""

    pass


class UnsupportedOperationError(TransformError):
    """Raised when buffered application is requested from a transform without it."""

    pass


class ChannelCountError(TransformError):
    """Raised when a channel count is ambiguous or does not match a color type."""

    pass


class ClassIndexError(TransformError):
    """Raised when a mask contains a class index outside of its declared classes."""

    pass


class DegenerateInputError(TransformError):
    """Raised when statistics of an input cannot be used (e.g., zero deviation)."""

    pass
