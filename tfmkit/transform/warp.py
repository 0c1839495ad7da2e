"""Array resampling with resolved linear maps using PIL.

Each channel is resampled independently as a 32-bit float PIL image, so any
numeric dtype is supported. Results are cast back to the dtype of the output
array, rounding and clipping for integer types.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from PIL import Image

from tfmkit.errors import BoundsError

# Map quality string to PIL resampling filter
QUALITY_TO_RESAMPLE = {
    "nearest": Image.Resampling.NEAREST,
    "bilinear": Image.Resampling.BILINEAR,
    "bicubic": Image.Resampling.BICUBIC,
}


def affine_coefficients(matrix: np.ndarray) -> tuple[float, ...]:
    """Compute PIL affine coefficients for a 2x2 map on (y, x) coordinates.

    PIL maps each output pixel (x, y) back to the input, so the coefficients
    describe the inverse of `matrix` in (x, y) order.

    Args:
        matrix: 2x2 matrix mapping input (y, x) to output (y, x).

    Returns:
        The six coefficients `(a, b, c, d, e, f)` expected by
        `PIL.Image.Image.transform` with `Image.Transform.AFFINE`.

    Raises:
        BoundsError: If the matrix is singular.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    try:
        inv = np.linalg.inv(matrix)
    except np.linalg.LinAlgError:
        raise BoundsError(
            "Cannot resample with a singular matrix.",
            details={"matrix": matrix.tolist()},
        )
    return (inv[1, 1], inv[1, 0], 0.0, inv[0, 1], inv[0, 0], 0.0)


def _cast(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    """Cast resampled float values to the output dtype."""
    if dtype == bool:
        return values > 0.5
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def _warp_channel(
    channel: np.ndarray,
    coeffs: tuple[float, ...],
    out_shape: tuple[int, int],
    resample: Image.Resampling,
    fill: float,
) -> np.ndarray:
    """Resample a single 2D channel."""
    pil_img = Image.fromarray(np.ascontiguousarray(channel, dtype=np.float32))
    pil_img = pil_img.transform(
        (out_shape[1], out_shape[0]),
        Image.Transform.AFFINE,
        coeffs,
        resample=resample,
        fillcolor=float(fill),
    )
    return np.asarray(pil_img)


def warp_array(
    data: np.ndarray,
    matrix: np.ndarray,
    out_shape: tuple[int, int],
    quality: str = "bilinear",
    fill: float = 0,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Resample an array with a linear map over its first two axes.

    Args:
        data: Array of shape (H, W, ...). Structured arrays (color images) are
            resampled field by field. Trailing axes are treated as channels.
        matrix: 2x2 matrix mapping input (y, x) to output (y, x).
        out_shape: Output (height, width).
        quality: Interpolation quality. One of "nearest", "bilinear", "bicubic".
        fill: Fill value for output pixels that map outside of the input.
        out: Optional array of shape `(*out_shape, *data.shape[2:])` to write the
            result into. Its dtype determines the output dtype.

    Returns:
        The resampled array (`out` if given).

    Raises:
        BoundsError: If the output shape is not positive or `out` has the wrong
            shape.
        ValueError: If `quality` is not a known interpolation quality.
    """
    out_shape = (int(out_shape[0]), int(out_shape[1]))
    if out_shape[0] <= 0 or out_shape[1] <= 0:
        raise BoundsError(
            f"Invalid output dimensions: {out_shape[0]}x{out_shape[1]}",
            details={"out_shape": out_shape},
        )

    full_shape = out_shape + data.shape[2:]
    if out is None:
        out = np.empty(full_shape, dtype=data.dtype)
    elif out.shape != full_shape:
        raise BoundsError(
            f"Output array has shape {out.shape}, expected {full_shape}.",
            details={"out_shape": out.shape, "expected_shape": full_shape},
        )

    if quality not in QUALITY_TO_RESAMPLE:
        raise ValueError(
            f"Unknown quality: '{quality}'. "
            f"Available: {list(QUALITY_TO_RESAMPLE.keys())}"
        )
    resample = QUALITY_TO_RESAMPLE[quality]
    coeffs = affine_coefficients(matrix)

    if data.dtype.names is not None:
        for name in data.dtype.names:
            warp_array(data[name], matrix, out_shape, quality, fill, out=out[name])
        return out

    for idx in np.ndindex(*data.shape[2:]):
        key = (slice(None), slice(None)) + idx
        resampled = _warp_channel(data[key], coeffs, out_shape, resample, fill)
        out[key] = _cast(resampled, out.dtype)

    return out
