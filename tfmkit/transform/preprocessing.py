"""Preprocessing transforms that prepare items for model consumption.

This module provides transforms for:
- Element type conversion (`ToEltype`)
- Per-channel normalization and its inverse (`Normalize`, `Denormalize`)
- Global intensity normalization (`NormalizeIntensity`)
- Image/tensor layout conversion (`ImageToTensor`, `TensorToImage`)
- One-hot encoding of categorical masks (`OneHot`)

Array-level helpers are exposed alongside the transforms. Functions ending in an
underscore modify their first argument in place.

Example:
    Preprocess an RGB image for a network:

    >>> import numpy as np
    >>> from tfmkit import Image, ImageToTensor, Normalize, Sequence, apply
    >>> from tfmkit.model.colors import RGB
    >>> img = Image(np.zeros((64, 64), dtype=RGB.dtype(np.float32)))
    >>> tfm = Sequence([ImageToTensor(), Normalize((0.5,) * 3, (0.25,) * 3)])
    >>> apply(tfm, img).shape
    (64, 64, 3)
"""

from __future__ import annotations

import warnings
from typing import Any, Optional, Union

import attrs
import numpy as np
import numpy.typing as npt

from tfmkit.errors import (
    ChannelCountError,
    ClassIndexError,
    DegenerateInputError,
    ItemTypeError,
)
from tfmkit.model.colors import ColorType, channel_view, color_view
from tfmkit.model.item import ArrayItem, Image, Item, MaskBinary, MaskMulti
from tfmkit.transform.core import BufferedTransform, Transform, check_buffer


def _element_dtype(dtype: np.dtype) -> np.dtype:
    """Return the type of a single element, the first field for color dtypes."""
    if dtype.names is None:
        return dtype
    return dtype[0]


@attrs.define(frozen=True)
class ToEltype(BufferedTransform):
    """Convert the elements of an array-backed item to another dtype.

    The item kind is kept. Color images are converted channel by channel, so an
    RGB image stays an RGB image with a new channel type. Items that already
    have the requested element type are returned unchanged.

    Masks constrain their element type: `MaskMulti` needs an integer type and
    `MaskBinary` a boolean one. Other targets raise `ItemTypeError`.

    Attributes:
        dtype: Target element type.
    """

    dtype: np.dtype = attrs.field(converter=np.dtype)

    item_types = (ArrayItem, Image, MaskMulti, MaskBinary)

    def check_item(self, item: Item) -> None:
        """Check the item kind and that it can hold the target element type."""
        super().check_item(item)
        if isinstance(item, MaskMulti):
            allowed = np.issubdtype(self.dtype, np.integer)
        elif isinstance(item, MaskBinary):
            allowed = self.dtype == bool
        else:
            allowed = True
        if not allowed:
            raise ItemTypeError(
                f"{type(item).__name__} cannot hold elements of type {self.dtype}.",
                details={
                    "transform": type(self).__name__,
                    "item_type": type(item).__name__,
                    "dtype": str(self.dtype),
                },
            )

    def target_dtype(self, dtype: np.dtype) -> np.dtype:
        """Return the array dtype with its elements converted to `self.dtype`."""
        if dtype.names is None:
            return self.dtype
        return np.dtype([(name, self.dtype) for name in dtype.names])

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Convert `item` to the target element type."""
        self.check_item(item)
        target = self.target_dtype(item.data.dtype)
        if item.data.dtype == target:
            return item
        source = _element_dtype(item.data.dtype)
        if np.issubdtype(source, np.floating) and np.issubdtype(
            self.dtype, np.integer
        ):
            warnings.warn(f"Converting {source} to {self.dtype} truncates values.")
        return item.with_data(item.data.astype(target))

    def apply_buffered(self, buf: Item, item: Item, randstate: Any = None) -> Item:
        """Copy `item` into `buf`, converting to the dtype of the buffer."""
        self.check_item(item)
        check_buffer(buf, item.data.shape)
        np.copyto(buf.data, item.data, casting="unsafe")
        return buf


def _check_stats(instance, attribute, value):
    if len(instance.means) != len(instance.stds):
        raise ValueError("`means` and `stds` must have same length")
    if any(s == 0 for s in instance.stds):
        raise ValueError(f"`stds` must be nonzero, got {instance.stds}.")


def _stats_for(
    a: np.ndarray, means: tuple[float, ...], stds: tuple[float, ...]
) -> tuple[np.ndarray, np.ndarray]:
    """Convert channel statistics to the dtype of `a`, checking the channel count."""
    if a.ndim == 0 or a.shape[-1] != len(means):
        raise ChannelCountError(
            f"Expected {len(means)} channels along the last axis, got array of "
            f"shape {a.shape}.",
            details={"shape": a.shape, "n_channels": len(means)},
        )
    return np.asarray(means, dtype=a.dtype), np.asarray(stds, dtype=a.dtype)


def _as_float(a: np.ndarray) -> np.ndarray:
    """Return a floating point copy of `a`."""
    if np.issubdtype(a.dtype, np.floating):
        return a.copy()
    return a.astype(np.float32)


def normalize_(
    a: np.ndarray, means: tuple[float, ...], stds: tuple[float, ...]
) -> np.ndarray:
    """Normalize the last axis of a floating point array in place.

    Args:
        a: Array of shape (..., n_channels).
        means: Per-channel means.
        stds: Per-channel standard deviations.

    Returns:
        `a`, with `(a - means) / stds` applied along the last axis.

    Raises:
        ChannelCountError: If the last axis does not have one entry per channel.
    """
    means, stds = _stats_for(a, means, stds)
    a -= means
    a /= stds
    return a


def normalize(a, means, stds):
    """Return a normalized floating point copy of `a`. See `normalize_`."""
    return normalize_(_as_float(a), means, stds)


def denormalize_(
    a: np.ndarray, means: tuple[float, ...], stds: tuple[float, ...]
) -> np.ndarray:
    """Invert `normalize_` in place, computing `a * stds + means`."""
    means, stds = _stats_for(a, means, stds)
    a *= stds
    a += means
    return a


def denormalize(a, means, stds):
    """Return a denormalized floating point copy of `a`. See `denormalize_`."""
    return denormalize_(_as_float(a), means, stds)


@attrs.define(frozen=True)
class Normalize(BufferedTransform):
    """Normalize the last axis of an array item with per-channel statistics.

    Integer arrays are converted to float32 first.

    Attributes:
        means: Per-channel means.
        stds: Per-channel standard deviations. Must be nonzero.
    """

    means: tuple[float, ...] = attrs.field(converter=tuple)
    stds: tuple[float, ...] = attrs.field(converter=tuple, validator=_check_stats)

    item_types = (ArrayItem,)

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Return a normalized copy of `item`."""
        self.check_item(item)
        return ArrayItem(normalize(item.data, self.means, self.stds))

    def apply_buffered(self, buf: Item, item: Item, randstate: Any = None) -> Item:
        """Copy `item` into `buf` and normalize it in place."""
        self.check_item(item)
        check_buffer(buf, item.data.shape)
        np.copyto(buf.data, item.data, casting="unsafe")
        normalize_(buf.data, self.means, self.stds)
        return buf


@attrs.define(frozen=True)
class Denormalize(Transform):
    """Invert `Normalize` with the same statistics.

    Attributes:
        means: Per-channel means.
        stds: Per-channel standard deviations. Must be nonzero.
    """

    means: tuple[float, ...] = attrs.field(converter=tuple)
    stds: tuple[float, ...] = attrs.field(converter=tuple, validator=_check_stats)

    item_types = (ArrayItem,)

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Return a denormalized copy of `item`."""
        self.check_item(item)
        return ArrayItem(denormalize(item.data, self.means, self.stds))


@attrs.define(frozen=True)
class NormalizeIntensity(Transform):
    """Normalize an array item with the mean and sample std of all its elements."""

    item_types = (ArrayItem,)

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Return a copy of `item` with zero mean and unit standard deviation.

        Raises:
            DegenerateInputError: If the standard deviation is zero or undefined
                (e.g., constant arrays or single elements).
        """
        self.check_item(item)
        a = _as_float(item.data)
        mean = a.mean()
        std = a.std(ddof=1) if a.size > 1 else np.nan
        if not np.isfinite(std) or std == 0:
            raise DegenerateInputError(
                f"Cannot normalize intensity with standard deviation {std}.",
                details={"mean": float(mean), "std": float(std)},
            )
        a -= mean
        a /= std
        return ArrayItem(a)


def image_to_tensor(image: np.ndarray, dtype: npt.DTypeLike = np.float32):
    """Expand an image array into a tensor with a trailing channel axis.

    Args:
        image: Image array of shape (H, W), structured for color images.
        dtype: Element type of the tensor.

    Returns:
        Array of shape (H, W, n_channels).
    """
    return channel_view(image).astype(dtype)


def image_to_tensor_(buf: np.ndarray, image: np.ndarray) -> np.ndarray:
    """Write the channels of an image array into a tensor buffer.

    Args:
        buf: Array of shape (H, W, n_channels).
        image: Image array of shape (H, W).

    Returns:
        `buf`.
    """
    np.copyto(buf, channel_view(image), casting="unsafe")
    return buf


def tensor_to_image(
    a: np.ndarray, color: Optional[Union[str, ColorType]] = None
) -> np.ndarray:
    """Reassemble an image array from a tensor with a trailing channel axis.

    Args:
        a: Array of shape (H, W, n_channels).
        color: Color type of the image. If `None`, tensors with 1 channel become
            grayscale and tensors with 3 channels become RGB.

    Returns:
        Image array of shape (H, W). This is a new array.

    Raises:
        ChannelCountError: If no color type is given and the channel count is not
            1 or 3, or if it does not match `color`.
    """
    return np.array(color_view(color, a))


@attrs.define(frozen=True)
class ImageToTensor(BufferedTransform):
    """Convert an `Image` to an `ArrayItem` with a trailing channel axis.

    Grayscale images gain a channel axis of size 1.

    Attributes:
        dtype: Element type of the tensor.
    """

    dtype: np.dtype = attrs.field(default=np.float32, converter=np.dtype)

    item_types = (Image,)

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Return `item` as a tensor of shape (H, W, n_channels)."""
        self.check_item(item)
        return ArrayItem(image_to_tensor(item.data, self.dtype))

    def apply_buffered(self, buf: Item, item: Item, randstate: Any = None) -> Item:
        """Write the channels of `item` into `buf`."""
        self.check_item(item)
        check_buffer(buf, item.data.shape + (item.color.n_channels,))
        image_to_tensor_(buf.data, item.data)
        return buf


@attrs.define(frozen=True)
class TensorToImage(Transform):
    """Convert an `ArrayItem` with a trailing channel axis to an `Image`.

    Attributes:
        color: Color type of the image, or `None` to pick it from the channel
            count (1: grayscale, 3: RGB).
    """

    color: Optional[Union[str, ColorType]] = None

    item_types = (ArrayItem,)

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Return `item` as an image."""
        self.check_item(item)
        return Image(tensor_to_image(item.data, self.color))


def onehot(x: int, n: int, dtype: npt.DTypeLike = np.float32) -> np.ndarray:
    """Return the one-hot vector of length `n` for class index `x`.

    Raises:
        ClassIndexError: If `x` is not in `[0, n)`.
    """
    if not 0 <= x < n:
        raise ClassIndexError(
            f"Class index {x} is out of range for {n} classes.",
            details={"index": x, "n_classes": n},
        )
    v = np.zeros(n, dtype=dtype)
    v[x] = 1
    return v


def _check_class_indices(mask: np.ndarray, n: int) -> None:
    """Raise on the first out-of-range class index in row-major order."""
    invalid = (mask < 0) | (mask >= n)
    if invalid.any():
        position = tuple(int(i) for i in np.argwhere(invalid)[0])
        raise ClassIndexError(
            f"Class index {mask[position]} at position {position} is out of range "
            f"for {n} classes.",
            details={
                "position": position,
                "index": int(mask[position]),
                "n_classes": n,
            },
        )


def onehot_(buf: np.ndarray, mask: np.ndarray, n: int) -> np.ndarray:
    """One-hot encode a mask of class indices into a buffer.

    Args:
        buf: Array of shape (*mask.shape, n). It is zero-filled first.
        mask: Integer array of class indices in `[0, n)`.
        n: Number of classes.

    Returns:
        `buf`.

    Raises:
        ClassIndexError: If any class index is out of range. The buffer is not
            modified in that case.
    """
    _check_class_indices(mask, n)
    buf.fill(0)
    np.put_along_axis(buf, mask[..., np.newaxis], 1, axis=-1)
    return buf


@attrs.define(frozen=True)
class OneHot(BufferedTransform):
    """One-hot encode a `MaskMulti` into an `ArrayItem`.

    A mask of shape `sz` with `n` classes becomes an array of shape `(*sz, n)`.

    Attributes:
        dtype: Element type of the encoded array.
    """

    dtype: np.dtype = attrs.field(default=np.float32, converter=np.dtype)

    item_types = (MaskMulti,)

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Return the one-hot encoding of `item`.

        Raises:
            ClassIndexError: If a class index is out of range.
        """
        self.check_item(item)
        a = np.empty(item.data.shape + (item.n_classes,), dtype=self.dtype)
        return ArrayItem(onehot_(a, item.data, item.n_classes))

    def apply_buffered(self, buf: Item, item: Item, randstate: Any = None) -> Item:
        """Encode `item` into `buf` without reallocating it."""
        self.check_item(item)
        check_buffer(buf, item.data.shape + (item.n_classes,))
        onehot_(buf.data, item.data, item.n_classes)
        return buf
