"""Core transform protocol.

Every transform implements `Transform.apply`, which allocates and returns a new
item. Transforms whose output shape is stable for a given buffer additionally
subclass `BufferedTransform` and implement `apply_buffered`, which writes into the
payload of a preallocated buffer item instead. Both paths must produce identical
data for the same item and random state.

Randomized transforms draw their random state in `get_randstate` and only ever
consume it in `apply`/`apply_buffered`. Callers draw one state per logical
application and pass the same value to every item that should be transformed
identically (e.g., an image and its segmentation mask).

Example:
    >>> import numpy as np
    >>> from tfmkit import ArrayItem, Normalize, apply, apply_buffered, make_buffer
    >>> item = ArrayItem(np.random.rand(32, 32, 3).astype("float32"))
    >>> tfm = Normalize((0.5, 0.5, 0.5), (0.2, 0.2, 0.2))
    >>> out = apply(tfm, item)
    >>> buf = make_buffer(tfm, item)
    >>> buf = apply_buffered(buf, tfm, item)
"""

from __future__ import annotations

import copy
from typing import Any, Optional, Sequence, Union

import attrs
import numpy as np

from tfmkit.errors import BoundsError, ItemTypeError, UnsupportedOperationError
from tfmkit.model.item import Item

Items = Union[Item, Sequence[Item]]


@attrs.define(frozen=True)
class Transform:
    """Base class for transforms.

    Subclasses set `item_types` to the item kinds they accept and implement
    `apply`. Transform instances are immutable and may be shared across threads.
    """

    # Item kinds accepted by the transform. Subclasses override this.
    item_types = (Item,)

    def check_item(self, item: Item) -> None:
        """Check that the transform accepts an item.

        Args:
            item: The item to check.

        Raises:
            ItemTypeError: If the item is not one of `item_types`.
        """
        if not isinstance(item, self.item_types):
            accepted = ", ".join(t.__name__ for t in self.item_types)
            raise ItemTypeError(
                f"{type(self).__name__} cannot be applied to "
                f"{type(item).__name__} (accepts: {accepted}).",
                details={
                    "transform": type(self).__name__,
                    "item_type": type(item).__name__,
                },
            )

    def get_randstate(self, rng: np.random.Generator) -> Any:
        """Draw the random state for one application of the transform.

        Args:
            rng: Random number generator to draw from.

        Returns:
            `None` for deterministic transforms. Randomized transforms return the
            values that `apply` needs to reproduce the same outcome.
        """
        return None

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Apply the transform to an item, allocating a new result.

        Args:
            item: The input item. It is not modified.
            randstate: Random state from `get_randstate`. Ignored by deterministic
                transforms.

        Returns:
            A new item with the transformed data.
        """
        raise NotImplementedError

    @property
    def buffered(self) -> bool:
        """Return True if the transform supports buffered application."""
        return False

    def make_buffer(self, item: Item, randstate: Any = None) -> Any:
        """Create a buffer for buffered application of the transform to `item`.

        Args:
            item: A representative input item.
            randstate: Random state used for the allocating application.

        Returns:
            A copy of the allocating result that shares no memory with `item`.
        """
        return copy.deepcopy(self.apply(item, randstate=randstate))

    def apply_buffered(self, buf: Item, item: Item, randstate: Any = None) -> Item:
        """Apply the transform to an item, writing the result into `buf`.

        Args:
            buf: A buffer item previously created with `make_buffer`.
            item: The input item. It is not modified.
            randstate: Random state from `get_randstate`.

        Returns:
            The buffer, holding the transformed data.

        Raises:
            UnsupportedOperationError: Always, unless the transform subclasses
                `BufferedTransform`.
        """
        raise UnsupportedOperationError(
            f"{type(self).__name__} does not support buffered application.",
            details={"transform": type(self).__name__},
        )


@attrs.define(frozen=True)
class BufferedTransform(Transform):
    """Base class for transforms that support buffered application."""

    @property
    def buffered(self) -> bool:
        """Return True, since buffered application is implemented."""
        return True

    def apply_buffered(self, buf: Item, item: Item, randstate: Any = None) -> Item:
        """Apply the transform to an item, writing the result into `buf`."""
        raise NotImplementedError


def supports_buffered(tfm: Transform) -> bool:
    """Return True if the transform supports buffered application.

    This only inspects the transform, so callers can check it before any item is
    processed.
    """
    return tfm.buffered


def check_buffer(buf: Item, shape: tuple[int, ...]) -> None:
    """Check that a buffer has the shape a transform would produce.

    Args:
        buf: The buffer item.
        shape: Expected payload shape.

    Raises:
        BoundsError: If the shapes differ.
    """
    if tuple(buf.data.shape) != tuple(shape):
        raise BoundsError(
            f"Buffer has shape {buf.data.shape}, expected {tuple(shape)}.",
            details={"buffer_shape": buf.data.shape, "expected_shape": tuple(shape)},
        )


def get_randstate(
    tfm: Transform, rng: Optional[Union[np.random.Generator, int]] = None
) -> Any:
    """Draw a random state for a transform.

    Args:
        tfm: The transform.
        rng: A numpy `Generator`, a seed, or `None` for fresh entropy.

    Returns:
        The random state returned by `tfm.get_randstate`.
    """
    return tfm.get_randstate(np.random.default_rng(rng))


def _is_multiple(items: Items) -> bool:
    return isinstance(items, (tuple, list))


def apply(
    tfm: Transform,
    items: Items,
    randstate: Any = None,
    rng: Optional[Union[np.random.Generator, int]] = None,
) -> Items:
    """Apply a transform to an item or to several items with shared randomness.

    Args:
        tfm: The transform to apply.
        items: A single item, or a tuple/list of items. All items of a tuple are
            transformed with the same random state.
        randstate: Random state to use. If `None`, one is drawn with
            `get_randstate(tfm, rng)`.
        rng: Generator or seed used when `randstate` is not given.

    Returns:
        The transformed item, or a tuple of transformed items.
    """
    if randstate is None:
        randstate = get_randstate(tfm, rng)

    if _is_multiple(items):
        for item in items:
            tfm.check_item(item)
        return tuple(tfm.apply(item, randstate=randstate) for item in items)

    return tfm.apply(items, randstate=randstate)


def apply_buffered(
    bufs: Items,
    tfm: Transform,
    items: Items,
    randstate: Any = None,
    rng: Optional[Union[np.random.Generator, int]] = None,
) -> Items:
    """Apply a transform in buffered mode.

    Args:
        bufs: Buffer item(s) matching `items`, e.g. from `make_buffer`.
        tfm: The transform to apply. Must support buffered application.
        items: A single item, or a tuple/list of items sharing one random state.
        randstate: Random state to use. If `None`, one is drawn with
            `get_randstate(tfm, rng)`.
        rng: Generator or seed used when `randstate` is not given.

    Returns:
        The buffer(s), holding the transformed data.

    Raises:
        UnsupportedOperationError: If the transform does not support buffered
            application.
        ValueError: If the number of buffers and items differ.
    """
    if not supports_buffered(tfm):
        raise UnsupportedOperationError(
            f"{type(tfm).__name__} does not support buffered application.",
            details={"transform": type(tfm).__name__},
        )

    if randstate is None:
        randstate = get_randstate(tfm, rng)

    if _is_multiple(items):
        if not _is_multiple(bufs) or len(bufs) != len(items):
            raise ValueError("Expected one buffer per item.")
        for item in items:
            tfm.check_item(item)
        return tuple(
            tfm.apply_buffered(buf, item, randstate=randstate)
            for buf, item in zip(bufs, items)
        )

    return tfm.apply_buffered(bufs, items, randstate=randstate)


def make_buffer(tfm: Transform, items: Items, randstate: Any = None) -> Items:
    """Create buffer item(s) for repeated buffered application of a transform.

    The buffer is built from an allocating application, so it has the shape and
    dtype that `apply_buffered` expects.

    Args:
        tfm: The transform.
        items: Representative input item(s).
        randstate: Random state used for the allocating application.

    Returns:
        Buffer item(s) that do not share memory with `items`.
    """
    if randstate is None:
        randstate = get_randstate(tfm)

    if _is_multiple(items):
        for item in items:
            tfm.check_item(item)
        return tuple(tfm.make_buffer(item, randstate=randstate) for item in items)

    return tfm.make_buffer(items, randstate=randstate)
