"""Transform module for preparing items for machine learning.

This module provides the transform protocol and its implementations:
- Affine transforms: Scale specifications resolved against item bounds
- Preprocessing: Element type conversion, normalization, layout conversion and
  one-hot encoding
- Sequences: Ordered composition with fused affine resampling

Every transform can be applied by allocating a new item. Transforms subclassing
`BufferedTransform` can also write into a preallocated buffer.

Example:
    >>> import numpy as np
    >>> import tfmkit as tk
    >>> image = tk.Image(np.random.rand(100, 200).astype("float32"))
    >>> tfm = tk.Sequence([tk.ScaleKeepAspect(50), tk.ImageToTensor()])
    >>> tk.apply(tfm, image).shape
    (50, 100, 1)
"""

from tfmkit.transform.affine import (
    AffineTransform,
    ComposedAffine,
    ScaleFixed,
    ScaleKeepAspect,
    ScaleRandom,
    ScaleRatio,
    compose_affine,
    resolve,
)
from tfmkit.transform.core import (
    BufferedTransform,
    Transform,
    apply,
    apply_buffered,
    get_randstate,
    make_buffer,
    supports_buffered,
)
from tfmkit.transform.preprocessing import (
    Denormalize,
    ImageToTensor,
    Normalize,
    NormalizeIntensity,
    OneHot,
    TensorToImage,
    ToEltype,
)
from tfmkit.transform.sequence import Sequence

__all__ = [
    "AffineTransform",
    "BufferedTransform",
    "ComposedAffine",
    "Denormalize",
    "ImageToTensor",
    "Normalize",
    "NormalizeIntensity",
    "OneHot",
    "ScaleFixed",
    "ScaleKeepAspect",
    "ScaleRandom",
    "ScaleRatio",
    "Sequence",
    "TensorToImage",
    "ToEltype",
    "Transform",
    "apply",
    "apply_buffered",
    "compose_affine",
    "get_randstate",
    "make_buffer",
    "resolve",
    "supports_buffered",
]
