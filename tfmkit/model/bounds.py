"""Spatial extent of items.

Bounds are expressed as `(height, width)`, matching the order of the first two axes
of image arrays. Affine maps operate on `(y, x)` coordinate pairs in the same order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import attrs
import numpy as np

from tfmkit.errors import BoundsError, ItemTypeError

if TYPE_CHECKING:
    from tfmkit.model.item import Item


@attrs.define(frozen=True)
class Bounds:
    """Spatial extent of an item.

    Attributes:
        height: Extent along the first (row) axis.
        width: Extent along the second (column) axis.
    """

    height: float = attrs.field(converter=float)
    width: float = attrs.field(converter=float)

    @classmethod
    def from_shape(cls, shape: tuple[int, ...]) -> "Bounds":
        """Create bounds from the leading two entries of an array shape.

        Args:
            shape: Array shape with at least two dimensions.

        Returns:
            The `Bounds` spanning `shape[:2]`.

        Raises:
            BoundsError: If the shape has fewer than two dimensions.
        """
        if len(shape) < 2:
            raise BoundsError(
                f"Expected at least 2 spatial dimensions, got shape {tuple(shape)}.",
                details={"shape": tuple(shape)},
            )
        return cls(shape[0], shape[1])

    @property
    def size(self) -> tuple[float, float]:
        """Return the extent as a `(height, width)` tuple."""
        return (self.height, self.width)

    @property
    def shape(self) -> tuple[int, int]:
        """Return the extent as an integer `(height, width)` array shape."""
        return (int(round(self.height)), int(round(self.width)))

    def validate(self) -> "Bounds":
        """Check that both dimensions are finite and positive.

        Returns:
            These bounds, for chaining.

        Raises:
            BoundsError: If either dimension is zero, negative or not finite. The
                offending dimension is named in the message and in `details`.
        """
        for name, value in (("height", self.height), ("width", self.width)):
            if not np.isfinite(value) or value <= 0:
                raise BoundsError(
                    f"Bounds {name} must be positive, got {value}.",
                    details={"dimension": name, "value": value},
                )
        return self

    def transform(self, matrix: np.ndarray, rounded: bool = True) -> "Bounds":
        """Compute the bounds of this extent after applying a 2x2 linear map.

        The extent is treated as the box spanned by `(0, 0)` and `(height, width)`.
        Its transformed corners are measured and, by default, rounded to whole
        pixels.

        Args:
            matrix: A 2x2 matrix acting on `(y, x)` coordinates.
            rounded: If `False`, keep the exact extent. Used for intermediate
                bounds when composing several maps.

        Returns:
            The transformed `Bounds`.
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        corners = np.array(
            [[0, 0], [self.height, 0], [0, self.width], [self.height, self.width]],
            dtype=np.float64,
        )
        mapped = corners @ matrix.T
        extent = mapped.max(axis=0) - mapped.min(axis=0)
        if rounded:
            extent = np.round(extent)
        return Bounds(*extent)


def get_bounds(item: "Item") -> Bounds:
    """Return the spatial extent of an item.

    Args:
        item: An item with spatial extent (e.g., `Image`, `MaskMulti`, `Keypoints`).

    Returns:
        The `Bounds` of the item.

    Raises:
        ItemTypeError: If the item has no spatial extent.
    """
    bounds = getattr(item, "bounds", None)
    if bounds is None:
        raise ItemTypeError(
            f"Item of type {type(item).__name__} has no spatial bounds.",
            details={"item_type": type(item).__name__},
        )
    return bounds
