"""Affine transforms resolved against the bounds of an item.

Affine transforms are declared independently of the size of their inputs (e.g.,
"scale the shortest side to 224"). They are turned into a concrete 2x2 matrix by
`get_affine` once the bounds of an item and a random state are known. Matrices act
on `(y, x)` column vectors, matching the `(height, width)` order of `Bounds`.

Resolved matrices compose by ordinary matrix multiplication, so consecutive affine
transforms can be combined into one matrix with `ComposedAffine` and the data is
resampled only once.

Example:
    >>> from tfmkit import Bounds, ScaleKeepAspect, resolve
    >>> resolve(ScaleKeepAspect(50), Bounds(100, 200))
    array([[0.5, 0. ],
           [0. , 0.5]], dtype=float32)
"""

from __future__ import annotations

import functools
from typing import Any, Union

import attrs
import numpy as np
import numpy.typing as npt

from tfmkit.model.bounds import Bounds, get_bounds
from tfmkit.model.item import Image, Item, Keypoints, MaskBinary, MaskMulti
from tfmkit.transform.core import BufferedTransform, check_buffer
from tfmkit.transform.points import transform_points
from tfmkit.transform.warp import warp_array

# Floating point precision of resolved matrices unless specified otherwise.
DEFAULT_DTYPE = np.float32

# Interpolation used when resampling each item kind.
ITEM_QUALITY = {Image: "bilinear", MaskMulti: "nearest", MaskBinary: "nearest"}


def _to_pair(value: Union[float, tuple[float, float]]) -> tuple[float, float]:
    """Convert a scalar or a pair into a `(y, x)` pair."""
    if np.ndim(value) == 0:
        return (value, value)
    value = tuple(value)
    if len(value) != 2:
        raise ValueError(f"Expected a number or a pair of numbers, got {value}.")
    return value


def _check_positive(instance, attribute, value):
    for v in value:
        if not np.isfinite(v) or v <= 0:
            raise ValueError(f"`{attribute.name}` must be positive, got {value}.")


def _as_bounds(bounds: Union[Bounds, tuple[float, float]]) -> Bounds:
    if isinstance(bounds, Bounds):
        return bounds
    return Bounds(*bounds)


@attrs.define(frozen=True)
class AffineTransform(BufferedTransform):
    """Base class for transforms that resolve to a 2x2 linear map.

    Subclasses implement `get_affine`. Applying the transform resamples images and
    masks to the transformed bounds and maps keypoints point-wise.

    Buffered application writes the resampled data into a buffer of the same
    shape, which is only possible when the output size is the same for every
    application (e.g., `ScaleFixed`).
    """

    item_types = (Image, MaskMulti, MaskBinary, Keypoints)

    def get_affine(
        self,
        bounds: Bounds,
        randstate: Any = None,
        dtype: npt.DTypeLike = DEFAULT_DTYPE,
    ) -> np.ndarray:
        """Resolve the transform against the bounds of an item.

        Args:
            bounds: Bounds of the item being transformed.
            randstate: Random state from `get_randstate`.
            dtype: Floating point type of the arithmetic and of the result.

        Returns:
            A 2x2 matrix acting on `(y, x)` coordinates.
        """
        raise NotImplementedError

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Resolve the transform against `item` and project it."""
        self.check_item(item)
        matrix = self.get_affine(get_bounds(item), randstate)
        return project(matrix, item)

    def apply_buffered(self, buf: Item, item: Item, randstate: Any = None) -> Item:
        """Resolve the transform against `item` and project it into `buf`."""
        self.check_item(item)
        matrix = self.get_affine(get_bounds(item), randstate)
        return project_(buf, matrix, item)


@attrs.define(frozen=True)
class ScaleRatio(AffineTransform):
    """Scale by fixed ratios.

    Ratios must be positive. Resolved maps carry no translation, so a negative
    ratio would mirror the item out of its own bounds instead of flipping it.

    Attributes:
        ratios: Scale factors as `(fy, fx)`. A single number scales both axes.
    """

    ratios: tuple[float, float] = attrs.field(
        converter=_to_pair, validator=_check_positive
    )

    def get_affine(self, bounds, randstate=None, dtype=DEFAULT_DTYPE):
        """Return the diagonal matrix of the scale ratios."""
        fy, fx = self.ratios
        return np.array([[fy, 0], [0, fx]], dtype=dtype)


@attrs.define(frozen=True)
class ScaleFixed(AffineTransform):
    """Scale to a fixed output size.

    Attributes:
        size: Output size as `(height, width)`.
    """

    size: tuple[float, float] = attrs.field(
        converter=_to_pair, validator=_check_positive
    )

    def get_affine(self, bounds, randstate=None, dtype=DEFAULT_DTYPE):
        """Resolve to the ratios between the target size and `bounds`.

        Raises:
            BoundsError: If `bounds` has a zero or negative dimension.
        """
        bounds = _as_bounds(bounds).validate()
        ratios = np.asarray(self.size, dtype=dtype) / np.asarray(
            bounds.size, dtype=dtype
        )
        return ScaleRatio(tuple(ratios)).get_affine(bounds, randstate, dtype)


@attrs.define(frozen=True)
class ScaleKeepAspect(AffineTransform):
    """Scale the shortest side to a minimum length, keeping the aspect ratio.

    The ratio is the maximum of the per-axis ratios `min_length / bound`, so both
    sides of the output are at least as long as requested.

    Attributes:
        min_lengths: Minimum output lengths as `(height, width)`. A single number
            applies to both axes.
    """

    min_lengths: tuple[float, float] = attrs.field(
        converter=_to_pair, validator=_check_positive
    )

    def get_affine(self, bounds, randstate=None, dtype=DEFAULT_DTYPE):
        """Resolve to a uniform ratio guaranteeing the minimum lengths.

        Raises:
            BoundsError: If `bounds` has a zero or negative dimension.
        """
        bounds = _as_bounds(bounds).validate()
        ratios = np.asarray(self.min_lengths, dtype=dtype) / np.asarray(
            bounds.size, dtype=dtype
        )
        ratio = ratios.max()
        return ScaleRatio((ratio, ratio)).get_affine(bounds, randstate, dtype)


@attrs.define(frozen=True)
class ScaleRandom(AffineTransform):
    """Scale both axes by a ratio drawn uniformly from a range.

    The drawn ratio is the random state of the transform, so the same scale can be
    replayed on several items (e.g., an image and its mask).

    Attributes:
        min_ratio: Lower end of the ratio range.
        max_ratio: Upper end of the ratio range.
    """

    min_ratio: float = attrs.field(converter=float)
    max_ratio: float = attrs.field(converter=float)

    @max_ratio.validator
    def _check_range(self, attribute, value):
        if not 0 < self.min_ratio <= value:
            raise ValueError(
                f"Expected 0 < min_ratio <= max_ratio, got "
                f"({self.min_ratio}, {value})."
            )

    def get_randstate(self, rng: np.random.Generator) -> float:
        """Draw a scale ratio."""
        return float(rng.uniform(self.min_ratio, self.max_ratio))

    def get_affine(self, bounds, randstate=None, dtype=DEFAULT_DTYPE):
        """Resolve to the drawn ratio.

        Raises:
            ValueError: If no random state is given.
        """
        if randstate is None:
            raise ValueError(
                "ScaleRandom needs a random state. Draw one with `get_randstate`."
            )
        return ScaleRatio(randstate).get_affine(bounds, randstate, dtype)


@attrs.define(frozen=True)
class ComposedAffine(AffineTransform):
    """Several affine transforms pre-composed into a single matrix.

    Each transform is resolved against the exact, unrounded bounds produced by the
    previous one and the matrices are multiplied, so items are resampled only once.
    Only the final output size is rounded to whole pixels.

    Attributes:
        transforms: Affine transforms in application order.
        dtype: Floating point type of the composed matrix.
    """

    transforms: tuple[AffineTransform, ...] = attrs.field(converter=tuple)
    dtype: npt.DTypeLike = attrs.field(default=DEFAULT_DTYPE, kw_only=True)

    @transforms.validator
    def _check_transforms(self, attribute, value):
        for tfm in value:
            if not isinstance(tfm, AffineTransform):
                raise ValueError(
                    f"ComposedAffine only accepts affine transforms, got "
                    f"{type(tfm).__name__}."
                )

    def get_randstate(self, rng: np.random.Generator) -> tuple:
        """Draw one random state per transform."""
        return tuple(tfm.get_randstate(rng) for tfm in self.transforms)

    def get_affine(self, bounds, randstate=None, dtype=None):
        """Resolve every transform in turn and compose the matrices."""
        dtype = self.dtype if dtype is None else dtype
        if randstate is None:
            randstate = (None,) * len(self.transforms)

        bounds = _as_bounds(bounds)
        matrices = []
        for tfm, r in zip(self.transforms, randstate):
            matrix = tfm.get_affine(bounds, r, dtype)
            bounds = bounds.transform(matrix, rounded=False)
            matrices.append(matrix)
        return compose_affine(matrices, dtype=dtype)


def compose_affine(
    matrices: list[np.ndarray], dtype: npt.DTypeLike = DEFAULT_DTYPE
) -> np.ndarray:
    """Compose resolved matrices given in application order.

    Args:
        matrices: 2x2 matrices. The first one is applied first.
        dtype: Floating point type of the result.

    Returns:
        The product `matrices[-1] @ ... @ matrices[0]`, or the identity if
        `matrices` is empty.
    """
    identity = np.eye(2, dtype=dtype)
    return functools.reduce(lambda acc, m: m @ acc, matrices, identity).astype(dtype)


def resolve(
    tfm: AffineTransform,
    bounds: Union[Bounds, tuple[float, float]],
    randstate: Any = None,
    dtype: npt.DTypeLike = DEFAULT_DTYPE,
) -> np.ndarray:
    """Resolve an affine transform against bounds.

    Args:
        tfm: The affine transform.
        bounds: `Bounds` or a `(height, width)` tuple. Both must be positive.
        randstate: Random state. Deterministic transforms ignore it.
        dtype: Floating point type of the arithmetic and of the result.

    Returns:
        The resolved 2x2 matrix.

    Raises:
        TypeError: If `tfm` is not an affine transform.
        BoundsError: If the bounds are not positive.
    """
    if not isinstance(tfm, AffineTransform):
        raise TypeError(f"Expected an affine transform, got {type(tfm).__name__}.")
    bounds = _as_bounds(bounds).validate()
    return tfm.get_affine(bounds, randstate, dtype)


def project(matrix: np.ndarray, item: Item) -> Item:
    """Apply a resolved matrix to an item, allocating a new item.

    Args:
        matrix: Resolved 2x2 matrix.
        item: An `Image`, `MaskMulti`, `MaskBinary` or `Keypoints` item.

    Returns:
        The projected item. Images and masks are resampled to the transformed
        bounds, keypoints are mapped and carry the transformed bounds.
    """
    bounds = get_bounds(item).validate().transform(matrix)
    if isinstance(item, Keypoints):
        return attrs.evolve(
            item, data=transform_points(item.data, matrix), bounds=bounds
        )
    data = warp_array(item.data, matrix, bounds.shape, quality=ITEM_QUALITY[type(item)])
    return item.with_data(data)


def project_(buf: Item, matrix: np.ndarray, item: Item) -> Item:
    """Apply a resolved matrix to an item, writing into a buffer item.

    Args:
        buf: Buffer item of the same kind and output shape as `project` produces.
        matrix: Resolved 2x2 matrix.
        item: The input item.

    Returns:
        The buffer.

    Raises:
        BoundsError: If the buffer shape differs from the projected shape.
    """
    bounds = get_bounds(item).validate().transform(matrix)
    if isinstance(item, Keypoints):
        check_buffer(buf, item.data.shape)
        buf.data[...] = transform_points(item.data, matrix)
        buf.bounds = bounds
        return buf
    check_buffer(buf, bounds.shape + item.data.shape[2:])
    warp_array(
        item.data,
        matrix,
        bounds.shape,
        quality=ITEM_QUALITY[type(item)],
        out=buf.data,
    )
    return buf
