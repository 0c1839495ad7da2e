"""Data structures for the items that flow through transform pipelines.

An item wraps a raw array payload together with its kind and metadata. The kind
decides which transforms accept the item:

- `ArrayItem`: a plain N-dimensional numeric array (e.g., a tensor).
- `Image`: a 2D image. Color images are structured arrays with one field per
  channel, grayscale images are plain arrays (see `tfmkit.model.colors`).
- `MaskMulti`: a categorical segmentation mask of class indices.
- `MaskBinary`: a boolean segmentation mask.
- `Keypoints`: `(y, x)` point coordinates living inside some `Bounds`.

Items are replaced rather than mutated by allocating transforms. Buffered
transforms write into the payload of an existing item instead.
"""

from __future__ import annotations

from typing import Any, Optional

import attrs
import numpy as np

from tfmkit.model.bounds import Bounds
from tfmkit.model.colors import ColorType, color_type_of


def _check_2d(instance, attribute, value):
    if value.ndim != 2:
        raise ValueError(
            f"{type(instance).__name__} data must be 2D, got shape {value.shape}."
        )


def _check_integer(instance, attribute, value):
    if not np.issubdtype(value.dtype, np.integer):
        raise ValueError(
            f"{type(instance).__name__} data must have an integer dtype, "
            f"got {value.dtype}."
        )


@attrs.define(eq=False)
class Item:
    """Base class for items.

    Attributes:
        data: The array payload of the item.
    """

    data: np.ndarray = attrs.field(converter=np.asarray)

    @property
    def shape(self) -> tuple[int, ...]:
        """Return the shape of the payload."""
        return self.data.shape

    @property
    def dtype(self) -> np.dtype:
        """Return the dtype of the payload."""
        return self.data.dtype

    def with_data(self, data: np.ndarray) -> "Item":
        """Return a new item of the same kind with its payload replaced.

        Args:
            data: The new payload.

        Returns:
            A new item of the same type, carrying over all other attributes.
        """
        return attrs.evolve(self, data=data)

    def __repr__(self) -> str:
        """Return a readable representation of the item."""
        return f"{type(self).__name__}(shape={self.shape}, dtype={self.dtype})"


@attrs.define(eq=False, repr=False)
class ArrayItem(Item):
    """An N-dimensional numeric array without spatial semantics."""

    pass


@attrs.define(eq=False, repr=False)
class Image(Item):
    """A 2D image.

    Attributes:
        data: Array of shape `(height, width)`. Color images use a structured dtype
            with one field per channel, grayscale images a plain numeric dtype.
    """

    data: np.ndarray = attrs.field(converter=np.asarray, validator=_check_2d)

    @property
    def color(self) -> ColorType:
        """Return the color type of the image."""
        return color_type_of(self.data.dtype)

    @property
    def bounds(self) -> Bounds:
        """Return the spatial extent of the image."""
        return Bounds.from_shape(self.data.shape)

    def __repr__(self) -> str:
        """Return a readable representation of the image."""
        return f"Image(shape={self.shape}, color={self.color.name})"


@attrs.define(eq=False, repr=False)
class MaskMulti(Item):
    """A categorical segmentation mask.

    Attributes:
        data: Integer array of shape `(height, width)` holding class indices into
            `classes`. Indices are validated when the mask is encoded, not here.
        classes: Labels of the classes, in index order.
    """

    data: np.ndarray = attrs.field(
        converter=np.asarray, validator=[_check_2d, _check_integer]
    )
    classes: tuple[Any, ...] = attrs.field(converter=tuple, kw_only=True)

    @classmethod
    def from_labels(cls, labels: np.ndarray, classes: Optional[list] = None):
        """Create a mask from an array of class labels.

        Args:
            labels: Array of class labels.
            classes: Labels of all classes. If `None`, the sorted unique values of
                `labels` are used.

        Returns:
            A `MaskMulti` whose data are indices into `classes`.

        Raises:
            ValueError: If `labels` contains a value not listed in `classes`.
        """
        labels = np.asarray(labels)
        if classes is None:
            classes = np.unique(labels).tolist()
        lookup = {c: i for i, c in enumerate(classes)}
        try:
            indices = np.vectorize(lookup.__getitem__, otypes=[np.int64])(labels)
        except KeyError as e:
            raise ValueError(f"Label {e.args[0]!r} is not one of {classes}.")
        return cls(indices, classes=classes)

    @property
    def n_classes(self) -> int:
        """Return the number of declared classes."""
        return len(self.classes)

    @property
    def bounds(self) -> Bounds:
        """Return the spatial extent of the mask."""
        return Bounds.from_shape(self.data.shape)

    def __repr__(self) -> str:
        """Return a readable representation of the mask."""
        return f"MaskMulti(shape={self.shape}, n_classes={self.n_classes})"


@attrs.define(eq=False, repr=False)
class MaskBinary(Item):
    """A binary segmentation mask."""

    data: np.ndarray = attrs.field(converter=lambda x: np.asarray(x, dtype=bool))

    @property
    def bounds(self) -> Bounds:
        """Return the spatial extent of the mask."""
        return Bounds.from_shape(self.data.shape)


@attrs.define(eq=False, repr=False)
class Keypoints(Item):
    """Point coordinates inside a spatial extent.

    Attributes:
        data: Float array of shape `(n_points, 2)` with `(y, x)` coordinates. Rows
            with NaN values denote missing points.
        bounds: The extent of the space the points live in.
    """

    data: np.ndarray = attrs.field(
        converter=lambda x: np.asarray(x, dtype=np.float64).reshape(-1, 2)
    )
    bounds: Bounds = attrs.field(kw_only=True)

    @property
    def n_points(self) -> int:
        """Return the number of points."""
        return len(self.data)

    @property
    def n_visible(self) -> int:
        """Return the number of points that are not missing."""
        return int((~np.isnan(self.data).any(axis=-1)).sum())


def get_data(item: Item) -> np.ndarray:
    """Return the payload of an item."""
    return item.data
