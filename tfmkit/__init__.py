"""This module exposes all high level APIs for tfmkit."""

import lazy_loader as lazy

# Version is lightweight, keep it eager
from tfmkit.version import __version__

# Lazy load everything else using lazy_loader
__getattr__, __dir__, __all__ = lazy.attach(
    __name__,
    submodules=["errors", "model", "transform"],
    submod_attrs={
        # Exceptions from tfmkit.errors
        "errors": [
            "BoundsError",
            "ChannelCountError",
            "ClassIndexError",
            "DegenerateInputError",
            "ItemTypeError",
            "TransformError",
            "UnsupportedOperationError",
        ],
        # Item kinds and their collaborators from tfmkit.model.*
        "model.bounds": ["Bounds", "get_bounds"],
        "model.colors": ["ColorType", "channel_view", "color_view"],
        "model.item": [
            "ArrayItem",
            "Image",
            "Item",
            "Keypoints",
            "MaskBinary",
            "MaskMulti",
            "get_data",
        ],
        # Transform protocol from tfmkit.transform.core
        "transform.core": [
            "BufferedTransform",
            "Transform",
            "apply",
            "apply_buffered",
            "get_randstate",
            "make_buffer",
            "supports_buffered",
        ],
        # Affine transforms from tfmkit.transform.affine
        "transform.affine": [
            "AffineTransform",
            "ComposedAffine",
            "ScaleFixed",
            "ScaleKeepAspect",
            "ScaleRandom",
            "ScaleRatio",
            "compose_affine",
            "resolve",
        ],
        # Preprocessing from tfmkit.transform.preprocessing
        "transform.preprocessing": [
            "Denormalize",
            "ImageToTensor",
            "Normalize",
            "NormalizeIntensity",
            "OneHot",
            "TensorToImage",
            "ToEltype",
        ],
        "transform.sequence": ["Sequence"],
    },
)

# Add __version__ to __all__ (it's not in lazy_loader's __all__)
__all__ = ["__version__"] + __all__
