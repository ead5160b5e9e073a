#!/usr/bin/env python3
"""
Unit Tests for Image Loading

Tests decoding of paths, bytes and arrays into RGBA buffers.
"""

import numpy as np
import pytest
from PIL import Image

from cccd_parser.exceptions import ImageDecodeError
from cccd_parser.image_io import from_array, load_image, save_image, to_pil
from tests.conftest import encode_png, uniform_image


class TestLoadImage:
    """Test cases for load_image."""

    def test_png_bytes(self):
        image = load_image(encode_png(uniform_image(120, width=8, height=5)))
        assert image.pixels.shape == (5, 8, 4)
        assert int(image.pixels[0, 0, 0]) == 120
        assert int(image.pixels[0, 0, 3]) == 255

    def test_path(self, tmp_path):
        path = tmp_path / "front.png"
        path.write_bytes(encode_png(uniform_image(90)))
        image = load_image(str(path))
        assert (image.width, image.height) == (30, 20)

    def test_pil_image(self):
        image = load_image(Image.new("L", (4, 3), color=77))
        assert image.pixels.shape == (3, 4, 4)
        assert int(image.pixels[2, 3, 1]) == 77

    def test_missing_file(self, tmp_path):
        with pytest.raises(ImageDecodeError) as exc_info:
            load_image(tmp_path / "missing.png")
        assert exc_info.value.http_status == 400

    def test_empty_bytes(self):
        with pytest.raises(ImageDecodeError):
            load_image(b"")

    def test_garbage_bytes(self):
        with pytest.raises(ImageDecodeError):
            load_image(b"definitely not an image")

    def test_unsupported_type(self):
        with pytest.raises(ImageDecodeError):
            load_image(12345)


class TestFromArray:
    """Test cases for numpy conversion."""

    def test_grayscale_array(self):
        image = from_array(np.full((3, 4), 42, dtype=np.uint8))
        assert image.pixels.shape == (3, 4, 4)
        assert image.pixels[:, :, :3].max() == 42
        assert image.pixels[:, :, 3].min() == 255

    def test_float_array_is_clipped(self):
        image = from_array(np.array([[[-5.0, 127.6, 300.0]]]))
        assert image.pixels[0, 0].tolist() == [0, 128, 255, 255]

    def test_rgba_array_is_copied(self):
        array = np.zeros((2, 2, 4), dtype=np.uint8)
        image = from_array(array)
        image.pixels[0, 0, 0] = 9
        assert array[0, 0, 0] == 0

    def test_empty_array(self):
        with pytest.raises(ImageDecodeError):
            from_array(np.zeros((0, 0, 3), dtype=np.uint8))


def test_save_and_reload(tmp_path):
    image = from_array(uniform_image(33, width=6, height=4))
    path = save_image(image, tmp_path / "debug" / "enhanced.png")
    reloaded = load_image(path)
    np.testing.assert_array_equal(reloaded.pixels, image.pixels)
    assert to_pil(image).mode == "RGBA"
