"""Tests for the top-level tfmkit namespace."""

import numpy as np

import tfmkit as tk


def test_version():
    assert isinstance(tk.__version__, str)
    assert "__version__" in tk.__all__


def test_lazy_attributes():
    for name in ["Sequence", "ScaleFixed", "OneHot", "Image", "BoundsError"]:
        assert name in tk.__all__
        assert getattr(tk, name) is not None


def test_pipeline_from_top_level():
    image = tk.Image(np.ones((10, 20), dtype=np.float32))
    tfm = tk.Sequence([tk.ScaleFixed((5, 10)), tk.ImageToTensor()])
    out = tk.apply(tfm, image)
    assert isinstance(out, tk.ArrayItem)
    assert out.shape == (5, 10, 1)
