"""Color types and channel layout utilities for images.

Color images are stored as structured numpy arrays where each field is one color
channel, so the channel axis is implicit and the array shape only holds spatial
dimensions. Grayscale images are stored as plain numeric arrays.

`channel_view` exposes the channels as an explicit trailing axis and `color_view`
reassembles an image from such an axis.
"""

from __future__ import annotations

from typing import Optional, Union

import attrs
import numpy as np
import numpy.typing as npt
from numpy.lib import recfunctions as rfn

from tfmkit.errors import ChannelCountError


@attrs.define(frozen=True)
class ColorType:
    """A color representation with named channels.

    Attributes:
        name: Name of the color type (e.g., "rgb").
        channels: Channel field names in storage order.
    """

    name: str
    channels: tuple[str, ...] = attrs.field(converter=tuple)

    @property
    def n_channels(self) -> int:
        """Return the number of channels."""
        return len(self.channels)

    def dtype(self, dtype: npt.DTypeLike = np.float32) -> np.dtype:
        """Return the array dtype used to store an image of this color type.

        Args:
            dtype: Numeric type of each channel.

        Returns:
            A plain numeric dtype for single-channel colors, otherwise a structured
            dtype with one field per channel.
        """
        if self.n_channels == 1:
            return np.dtype(dtype)
        return np.dtype([(ch, dtype) for ch in self.channels])


GRAY = ColorType("gray", ("gray",))
RGB = ColorType("rgb", ("r", "g", "b"))
RGBA = ColorType("rgba", ("r", "g", "b", "a"))
BGR = ColorType("bgr", ("b", "g", "r"))

COLOR_TYPES: dict[str, ColorType] = {c.name: c for c in (GRAY, RGB, RGBA, BGR)}

# Color types picked when the channel count alone is unambiguous.
DEFAULT_COLOR_TYPES: dict[int, ColorType] = {1: GRAY, 3: RGB}


def get_color_type(color: Union[str, ColorType]) -> ColorType:
    """Resolve a color type from its name.

    Args:
        color: A `ColorType` or the name of a built-in one.

    Returns:
        The `ColorType`.

    Raises:
        ValueError: If the name is not a known color type.
    """
    if isinstance(color, ColorType):
        return color
    try:
        return COLOR_TYPES[color.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown color type: '{color}'. Available: {list(COLOR_TYPES.keys())}"
        )


def color_type_of(dtype: npt.DTypeLike) -> ColorType:
    """Infer the color type of an image array from its dtype.

    Args:
        dtype: Dtype of an image array.

    Returns:
        `GRAY` for plain numeric dtypes, otherwise the built-in color type whose
        channel names match the structured fields. Unknown field layouts yield a
        "custom" color type with the same channel names.
    """
    dtype = np.dtype(dtype)
    if dtype.names is None:
        return GRAY
    for color in COLOR_TYPES.values():
        if color.channels == dtype.names:
            return color
    return ColorType("custom", dtype.names)


def channel_view(img: np.ndarray) -> np.ndarray:
    """Expose the color channels of an image as an explicit trailing axis.

    Single-channel images still gain a trailing axis of size 1.

    Args:
        img: Image array, structured (color) or plain (grayscale).

    Returns:
        Array of shape `(*img.shape, n_channels)`. This is a view of `img` whenever
        numpy can express it, so it should not be written to.
    """
    if img.dtype.names is None:
        return img[..., np.newaxis]
    return rfn.structured_to_unstructured(img, copy=False)


def color_view(color: Optional[Union[str, ColorType]], arr: np.ndarray) -> np.ndarray:
    """Reassemble an image from an array with a trailing channel axis.

    Args:
        color: Color type of the result. If `None`, the color type is picked from
            the channel count (1: grayscale, 3: RGB).
        arr: Array of shape `(..., n_channels)`.

    Returns:
        The image array: structured for multi-channel colors, plain for grayscale.

    Raises:
        ChannelCountError: If no color type is given and the channel count is not 1
            or 3, or if the channel count does not match the given color type.
    """
    n_channels = arr.shape[-1]
    if color is None:
        if n_channels not in DEFAULT_COLOR_TYPES:
            raise ChannelCountError(
                f"Found image tensor with {n_channels} color channels. "
                "Pass in color type explicitly.",
                details={"n_channels": n_channels},
            )
        color = DEFAULT_COLOR_TYPES[n_channels]
    color = get_color_type(color)

    if color.n_channels != n_channels:
        raise ChannelCountError(
            f"Color type '{color.name}' has {color.n_channels} channels, "
            f"but the tensor has {n_channels}.",
            details={"n_channels": n_channels, "color": color.name},
        )

    if color.n_channels == 1:
        return arr[..., 0]
    return rfn.unstructured_to_structured(arr, dtype=color.dtype(arr.dtype))
