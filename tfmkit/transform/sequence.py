"""Ordered composition of transforms.

`Sequence` applies its transforms one after another. Runs of consecutive affine
transforms are fused into a single `ComposedAffine` step, so their matrices are
multiplied once and the data is resampled once instead of once per transform.
"""

from __future__ import annotations

import copy
from typing import Any

import attrs
import numpy as np
import numpy.typing as npt

from tfmkit.errors import UnsupportedOperationError
from tfmkit.model.item import Item
from tfmkit.transform.affine import DEFAULT_DTYPE, AffineTransform, ComposedAffine
from tfmkit.transform.core import BufferedTransform, Transform, supports_buffered


def fuse_affines(
    transforms: tuple[Transform, ...], dtype: npt.DTypeLike = DEFAULT_DTYPE
) -> tuple[Transform, ...]:
    """Group runs of consecutive affine transforms into `ComposedAffine` steps.

    Args:
        transforms: Transforms in application order.
        dtype: Floating point type of the composed matrices.

    Returns:
        The steps to apply. Non-affine transforms are kept as they are.
    """
    steps = []
    run = []
    for tfm in transforms:
        if isinstance(tfm, AffineTransform):
            run.append(tfm)
            continue
        if run:
            steps.append(ComposedAffine(run, dtype=dtype))
            run = []
        steps.append(tfm)
    if run:
        steps.append(ComposedAffine(run, dtype=dtype))
    return tuple(steps)


@attrs.define(frozen=True)
class Sequence(BufferedTransform):
    """Apply several transforms in order.

    The random state of a sequence is a tuple with one entry per fused step, so
    replaying it on an image and its mask transforms both identically.

    Buffered application keeps one buffer per step. It is only supported if every
    step supports it, which `supports_buffered` reports from the steps alone;
    otherwise `apply_buffered` raises `UnsupportedOperationError`.

    Attributes:
        transforms: Transforms in application order.
        dtype: Floating point type used to resolve affine transforms.
        steps: The fused steps that are actually applied.
    """

    transforms: tuple[Transform, ...] = attrs.field(converter=tuple)
    dtype: npt.DTypeLike = attrs.field(default=DEFAULT_DTYPE, kw_only=True)
    steps: tuple[Transform, ...] = attrs.field(init=False)

    @steps.default
    def _fuse_steps(self):
        return fuse_affines(self.transforms, dtype=self.dtype)

    @property
    def item_types(self) -> tuple[type, ...]:
        """Return the item kinds accepted by the first step."""
        if not self.steps:
            return (Item,)
        return self.steps[0].item_types

    @property
    def buffered(self) -> bool:
        """Return True if every step supports buffered application."""
        return all(supports_buffered(step) for step in self.steps)

    def get_randstate(self, rng: np.random.Generator) -> tuple:
        """Draw one random state per step."""
        return tuple(step.get_randstate(rng) for step in self.steps)

    def _randstates(self, randstate: Any) -> tuple:
        if randstate is None:
            return (None,) * len(self.steps)
        return randstate

    def apply(self, item: Item, randstate: Any = None) -> Item:
        """Apply every step in order."""
        for step, r in zip(self.steps, self._randstates(randstate)):
            step.check_item(item)
            item = step.apply(item, randstate=r)
        return item

    def make_buffer(self, item: Item, randstate: Any = None) -> list[Item]:
        """Create one buffer per step.

        Returns:
            A list of buffer items. The last one holds the final output.
        """
        buffers = []
        for step, r in zip(self.steps, self._randstates(randstate)):
            step.check_item(item)
            item = step.apply(item, randstate=r)
            buffers.append(copy.deepcopy(item))
        return buffers

    def apply_buffered(
        self, buf: list[Item], item: Item, randstate: Any = None
    ) -> list[Item]:
        """Apply every step in buffered mode, each into its own buffer.

        Args:
            buf: Buffers from `make_buffer`, one per step.
            item: The input item.
            randstate: Random state from `get_randstate`.

        Returns:
            The buffers. The last one holds the final output.

        Raises:
            UnsupportedOperationError: If a step does not support buffered
                application.
            ValueError: If the number of buffers does not match the steps.
        """
        if not self.buffered:
            step = next(s for s in self.steps if not supports_buffered(s))
            raise UnsupportedOperationError(
                f"Sequence step {type(step).__name__} does not support "
                "buffered application.",
                details={"transform": type(step).__name__},
            )
        if len(buf) != len(self.steps):
            raise ValueError(f"Expected {len(self.steps)} buffers, got {len(buf)}.")

        for step, step_buf, r in zip(self.steps, buf, self._randstates(randstate)):
            step.check_item(item)
            item = step.apply_buffered(step_buf, item, randstate=r)
        return buf
