"""Tests for the tfmkit.transform.preprocessing file."""

import numpy as np
import pytest

from tfmkit.errors import (
    BoundsError,
    ChannelCountError,
    ClassIndexError,
    DegenerateInputError,
    ItemTypeError,
    UnsupportedOperationError,
)
from tfmkit.model.colors import GRAY, RGB, RGBA, channel_view
from tfmkit.model.item import ArrayItem, Image, MaskMulti
from tfmkit.transform.core import apply, apply_buffered, make_buffer
from tfmkit.transform.preprocessing import (
    Denormalize,
    ImageToTensor,
    Normalize,
    NormalizeIntensity,
    OneHot,
    TensorToImage,
    ToEltype,
    denormalize,
    image_to_tensor,
    normalize,
    onehot,
    tensor_to_image,
)

# ============================================================================
# ToEltype
# ============================================================================


class TestToEltype:
    """Tests for ToEltype."""

    def test_noop(self, array_item):
        assert apply(ToEltype(np.float32), array_item) is array_item

    def test_convert(self):
        item = ArrayItem(np.arange(6).reshape(2, 3))
        out = apply(ToEltype(np.float32), item)
        assert out.dtype == np.float32
        np.testing.assert_array_equal(out.data, item.data)
        assert item.dtype != np.float32

    def test_lossy_warning(self, array_item):
        with pytest.warns(UserWarning, match="truncates"):
            out = apply(ToEltype(np.uint8), array_item)
        assert out.dtype == np.uint8

    def test_buffered(self, rng):
        tfm = ToEltype(np.float32)
        item = ArrayItem(rng.integers(0, 100, size=(4, 5)))
        buf = make_buffer(tfm, item)
        other = ArrayItem(rng.integers(0, 100, size=(4, 5)))
        apply_buffered(buf, tfm, other)
        np.testing.assert_array_equal(buf.data, apply(tfm, other).data)

    def test_make_buffer_copies_noop_result(self, array_item):
        buf = make_buffer(ToEltype(np.float32), array_item)
        assert buf is not array_item
        assert not np.shares_memory(buf.data, array_item.data)

    def test_gray_image(self, uint8_image):
        out = apply(ToEltype(np.float32), uint8_image)
        assert isinstance(out, Image)
        assert out.dtype == np.float32
        assert out.color == GRAY
        np.testing.assert_array_equal(out.data, uint8_image.data)

    def test_rgb_image_per_channel(self, rgb_image):
        out = apply(ToEltype(np.float64), rgb_image)
        assert isinstance(out, Image)
        assert out.color == RGB
        assert out.dtype == RGB.dtype(np.float64)
        np.testing.assert_array_equal(out.data["g"], rgb_image.data["g"])
        assert apply(ToEltype(np.float32), rgb_image) is rgb_image

    def test_rgb_image_buffered(self, rgb_image):
        tfm = ToEltype(np.float64)
        buf = make_buffer(tfm, rgb_image)
        buf.data[...] = np.zeros((), dtype=buf.data.dtype)
        apply_buffered(buf, tfm, rgb_image)
        assert (buf.data == apply(tfm, rgb_image).data).all()

    def test_mask_multi(self, mask_multi):
        out = apply(ToEltype(np.uint8), mask_multi)
        assert isinstance(out, MaskMulti)
        assert out.dtype == np.uint8
        assert out.classes == mask_multi.classes
        with pytest.raises(ItemTypeError, match="cannot hold"):
            apply(ToEltype(np.float32), mask_multi)

    def test_mask_binary(self, mask_binary):
        assert apply(ToEltype(bool), mask_binary) is mask_binary
        with pytest.raises(ItemTypeError):
            apply(ToEltype(np.float32), mask_binary)

    def test_rejects_keypoints(self, keypoints):
        with pytest.raises(ItemTypeError):
            apply(ToEltype(np.float32), keypoints)


# ============================================================================
# Normalize / Denormalize
# ============================================================================


class TestNormalize:
    """Tests for Normalize and Denormalize."""

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError, match="same length"):
            Normalize((0.1, 0.2), (1.0,))
        with pytest.raises(ValueError, match="same length"):
            Denormalize((0.1,), (1.0, 2.0))

    def test_zero_std(self):
        with pytest.raises(ValueError, match="nonzero"):
            Normalize((0.0, 0.0), (1.0, 0.0))

    def test_values(self):
        data = np.array([[[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]], dtype=np.float32)
        out = apply(Normalize((1.0, 2.0, 3.0), (1.0, 2.0, 0.5)), ArrayItem(data))
        np.testing.assert_allclose(out.data, [[[0, 0, 0], [3, 1.5, 6]]])
        assert out.dtype == np.float32

    def test_does_not_mutate(self, array_item):
        original = array_item.data.copy()
        apply(Normalize((0.5,) * 3, (0.2,) * 3), array_item)
        np.testing.assert_array_equal(array_item.data, original)

    def test_integer_input(self):
        item = ArrayItem(np.full((2, 2, 1), 10, dtype=np.uint8))
        out = apply(Normalize((5,), (2,)), item)
        assert out.dtype == np.float32
        np.testing.assert_allclose(out.data, 2.5)

    def test_float64_preserved(self, rng):
        item = ArrayItem(rng.random((3, 2)))
        assert apply(Normalize((0, 0), (1, 1)), item).dtype == np.float64

    def test_channel_mismatch(self, array_item):
        with pytest.raises(ChannelCountError):
            apply(Normalize((0.5, 0.5), (0.2, 0.2)), array_item)

    def test_buffered(self, rng, array_item):
        tfm = Normalize((0.1, 0.2, 0.3), (0.5, 1.5, 2.5))
        buf = make_buffer(tfm, array_item)
        other = ArrayItem(rng.random((8, 8, 3), dtype=np.float32))
        apply_buffered(buf, tfm, other)
        np.testing.assert_array_equal(buf.data, apply(tfm, other).data)

    def test_round_trip(self, rng):
        means, stds = (0.485, 0.456, 0.406), (0.229, 0.224, 0.225)
        for shape in [(3,), (5, 3), (4, 6, 3), (2, 2, 2, 3)]:
            a = rng.random(shape)
            np.testing.assert_allclose(
                denormalize(normalize(a, means, stds), means, stds), a, atol=1e-12
            )
            item = ArrayItem(a.astype(np.float32))
            out = apply(Denormalize(means, stds), apply(Normalize(means, stds), item))
            np.testing.assert_allclose(out.data, item.data, atol=1e-6)

    def test_denormalize_unbuffered(self, array_item):
        tfm = Denormalize((0.5,) * 3, (0.2,) * 3)
        with pytest.raises(UnsupportedOperationError):
            apply_buffered(array_item, tfm, array_item)
        with pytest.raises(UnsupportedOperationError):
            tfm.apply_buffered(array_item, array_item)


# ============================================================================
# NormalizeIntensity
# ============================================================================


class TestNormalizeIntensity:
    """Tests for NormalizeIntensity."""

    def test_statistics(self, rng):
        item = ArrayItem(rng.random((10, 10)) * 5 + 3)
        out = apply(NormalizeIntensity(), item)
        assert out.data.mean() == pytest.approx(0, abs=1e-9)
        assert out.data.std(ddof=1) == pytest.approx(1)

    def test_does_not_mutate(self, array_item):
        original = array_item.data.copy()
        apply(NormalizeIntensity(), array_item)
        np.testing.assert_array_equal(array_item.data, original)

    def test_integer_input(self):
        out = apply(NormalizeIntensity(), ArrayItem(np.array([1, 2, 3])))
        assert out.dtype == np.float32
        np.testing.assert_allclose(out.data, [-1, 0, 1])

    @pytest.mark.parametrize("data", [np.ones((4, 4)), np.array([2.0])])
    def test_degenerate(self, data):
        with pytest.raises(DegenerateInputError):
            apply(NormalizeIntensity(), ArrayItem(data))

    def test_unbuffered(self, array_item):
        with pytest.raises(UnsupportedOperationError):
            apply_buffered(array_item, NormalizeIntensity(), array_item)


# ============================================================================
# Image <-> tensor
# ============================================================================


class TestImageToTensor:
    """Tests for ImageToTensor and TensorToImage."""

    def test_rgb(self, rgb_image):
        out = apply(ImageToTensor(), rgb_image)
        assert isinstance(out, ArrayItem)
        assert out.shape == (16, 24, 3)
        assert out.dtype == np.float32
        np.testing.assert_array_equal(out.data[..., 1], rgb_image.data["g"])

    def test_gray(self, uint8_image):
        out = apply(ImageToTensor(np.float64), uint8_image)
        assert out.shape == (16, 24, 1)
        assert out.dtype == np.float64
        np.testing.assert_array_equal(out.data[..., 0], uint8_image.data)

    def test_buffered(self, rng, rgb_image):
        tfm = ImageToTensor()
        buf = make_buffer(tfm, rgb_image)
        other = Image(np.zeros((16, 24), dtype=RGB.dtype(np.uint8)))
        other.data["r"] = rng.integers(0, 256, size=(16, 24))
        apply_buffered(buf, tfm, other)
        np.testing.assert_array_equal(buf.data, apply(tfm, other).data)

    def test_buffered_shape_mismatch(self, rgb_image, gray_image):
        tfm = ImageToTensor()
        buf = make_buffer(tfm, rgb_image)
        with pytest.raises(BoundsError):
            apply_buffered(buf, tfm, gray_image)

    def test_rejects_array(self, array_item):
        with pytest.raises(ItemTypeError):
            apply(ImageToTensor(), array_item)

    def test_round_trip(self, rgb_image, gray_image):
        img = tensor_to_image(image_to_tensor(rgb_image.data))
        np.testing.assert_array_equal(channel_view(img), channel_view(rgb_image.data))

        out = apply(TensorToImage(), apply(ImageToTensor(), rgb_image))
        assert out.color == RGB
        assert (out.data == rgb_image.data).all()

        out = apply(TensorToImage(), apply(ImageToTensor(), gray_image))
        assert out.color == GRAY
        np.testing.assert_array_equal(out.data, gray_image.data)

    def test_tensor_to_image_copies(self):
        tensor = np.zeros((2, 3, 1), dtype=np.float32)
        img = tensor_to_image(tensor)
        assert not np.shares_memory(img, tensor)

    def test_tensor_to_image_explicit_color(self, rng):
        tensor = ArrayItem(rng.random((4, 5, 4)))
        with pytest.raises(ChannelCountError, match="explicitly"):
            apply(TensorToImage(), tensor)

        out = apply(TensorToImage("rgba"), tensor)
        assert out.color == RGBA
        np.testing.assert_array_equal(out.data["a"], tensor.data[..., 3])

        with pytest.raises(ChannelCountError):
            apply(TensorToImage(RGB), tensor)

    def test_tensor_to_image_unbuffered(self, array_item):
        with pytest.raises(UnsupportedOperationError):
            apply_buffered(array_item, TensorToImage(), array_item)


# ============================================================================
# OneHot
# ============================================================================


class TestOneHot:
    """Tests for OneHot."""

    def test_concrete_scenario(self):
        mask = MaskMulti(np.array([[0, 1], [1, 0]]), classes=["a", "b"])
        out = apply(OneHot(), mask)
        assert isinstance(out, ArrayItem)
        assert out.shape == (2, 2, 2)
        assert out.dtype == np.float32
        np.testing.assert_array_equal(out.data[0, 0], [1, 0])
        np.testing.assert_array_equal(out.data[0, 1], [0, 1])
        np.testing.assert_array_equal(out.data[1, 0], [0, 1])
        np.testing.assert_array_equal(out.data[1, 1], [1, 0])

    def test_argmax_recovers_mask(self, mask_multi):
        out = apply(OneHot(np.uint8), mask_multi)
        assert out.shape == (16, 24, 4)
        assert out.dtype == np.uint8
        np.testing.assert_array_equal(out.data.argmax(axis=-1), mask_multi.data)
        np.testing.assert_array_equal(out.data.sum(axis=-1), 1)

    @pytest.mark.parametrize(
        "data,position", [([[0, 5], [1, 0]], (0, 1)), ([[0, 1], [-1, 2]], (1, 0))]
    )
    def test_out_of_range(self, data, position):
        mask = MaskMulti(np.array(data), classes=["a", "b"])
        with pytest.raises(ClassIndexError) as exc_info:
            apply(OneHot(), mask)
        assert exc_info.value.details["position"] == position

    def test_buffered(self, rng, mask_multi):
        tfm = OneHot()
        buf = make_buffer(tfm, mask_multi)
        buf.data[...] = 7
        other = mask_multi.with_data(rng.integers(0, 4, size=(16, 24)))
        apply_buffered(buf, tfm, other)
        np.testing.assert_array_equal(buf.data, apply(tfm, other).data)

    def test_buffered_out_of_range_leaves_buffer(self, mask_multi):
        tfm = OneHot()
        buf = make_buffer(tfm, mask_multi)
        before = buf.data.copy()
        bad = mask_multi.with_data(np.full((16, 24), 4))
        with pytest.raises(ClassIndexError):
            apply_buffered(buf, tfm, bad)
        np.testing.assert_array_equal(buf.data, before)

    def test_rejects_image(self, gray_image):
        with pytest.raises(ItemTypeError):
            apply(OneHot(), gray_image)


def test_onehot_vector():
    np.testing.assert_array_equal(onehot(2, 4), [0, 0, 1, 0])
    assert onehot(0, 2, np.int32).dtype == np.int32
    with pytest.raises(ClassIndexError):
        onehot(4, 4)
