#!/usr/bin/env python3
"""
Unit Tests for Image Enhancement

Tests the single transforms and the three enhancement variants.
"""

import numpy as np
import pytest

from cccd_parser.config import EnhancementConfig
from cccd_parser.enhancement import EnhancementMode, ImageEnhancer, otsu_threshold_value
from cccd_parser.image_io import from_array
from cccd_parser.models import EnhancedImage, Region
from tests.conftest import striped_image, uniform_image


def two_level_image(low: int, high: int, size: int = 8) -> np.ndarray:
    image = np.full((size, size, 3), low, dtype=np.uint8)
    image[:, size // 2:] = high
    return image


class TestImageEnhancer:
    """Test cases for the single transforms."""

    @pytest.fixture
    def enhancer(self):
        return ImageEnhancer(EnhancementConfig())

    @pytest.fixture
    def noisy_image(self):
        rng = np.random.default_rng(7)
        return from_array(rng.integers(0, 256, size=(12, 16, 3), dtype=np.uint8))

    def test_grayscale(self, enhancer):
        rgba = np.zeros((1, 1, 4), dtype=np.uint8)
        rgba[0, 0] = [255, 0, 0, 128]
        pixels = enhancer.to_grayscale(from_array(rgba))
        assert pixels[0, 0].tolist() == [76, 76, 76, 255]

    def test_upscale_dimensions(self, enhancer):
        pixels = enhancer.upscale(from_array(uniform_image(50, width=20, height=10)), 2.0)
        assert pixels.shape == (20, 40, 4)
        assert pixels[:, :, 3].min() == 255

    def test_upscale_capped_by_max_dimension(self):
        enhancer = ImageEnhancer(EnhancementConfig(max_dimension=32))
        pixels = enhancer.upscale(from_array(uniform_image(50, width=20, height=10)), 6.0)
        assert pixels.shape == (16, 32, 4)

    def test_upscale_rejects_non_positive_factor(self, enhancer):
        with pytest.raises(ValueError):
            enhancer.upscale(from_array(uniform_image(50)), 0)

    def test_stretch_contrast_clamps(self, enhancer):
        image = from_array(np.array([[[100, 150, 250]]], dtype=np.uint8))
        pixels = enhancer.stretch_contrast(image, factor=1.5)
        # (v - 128) * 1.5 + 128
        assert pixels[0, 0].tolist() == [86, 161, 255, 255]

    def test_clahe_keeps_uniform_tiles(self, enhancer):
        pixels = enhancer.apply_clahe(from_array(uniform_image(90, width=16, height=16)))
        assert np.all(pixels[:, :, :3] == 90)

    def test_clahe_without_clip_stretches_tile(self, enhancer):
        pixels = enhancer.apply_clahe(from_array(two_level_image(0, 100)), clip_limit=None)
        assert set(np.unique(pixels[:, :, 0]).tolist()) == {0, 255}

    def test_clahe_clip_limits_contrast(self, enhancer):
        pixels = enhancer.apply_clahe(from_array(two_level_image(0, 100)), clip_limit=2.0)
        assert pixels[0, 0, 0] == 0
        assert 0 < pixels[0, 7, 0] < 255

    def test_clahe_uses_configured_clip_when_omitted(self, enhancer):
        configured = enhancer.apply_clahe(from_array(two_level_image(0, 100)))
        unclipped = enhancer.apply_clahe(from_array(two_level_image(0, 100)), clip_limit=None)
        assert configured[0, 7, 0] == 102
        assert unclipped[0, 7, 0] == 255

    def test_binarize_with_fixed_threshold(self, enhancer):
        pixels, threshold = enhancer.binarize(from_array(two_level_image(50, 200)), threshold=199)
        assert threshold == 199
        assert pixels[0, 7, 0] == 255
        assert pixels[0, 0, 0] == 0

    def test_otsu_threshold_bimodal(self, enhancer):
        image = from_array(two_level_image(50, 200))
        assert enhancer.otsu_threshold(image) == 50

        pixels, threshold = enhancer.binarize(image)
        assert threshold == 50
        assert pixels[0, 0, 0] == 0
        assert pixels[0, 7, 0] == 255

    def test_otsu_threshold_uniform(self):
        assert otsu_threshold_value(np.full((4, 4), 77.0)) == 0

    def test_median_removes_salt(self, enhancer):
        image = uniform_image(40, width=5, height=5)
        image[2, 2] = 255
        pixels = enhancer.median_denoise(from_array(image))
        assert pixels[2, 2, 0] == 40
        assert pixels[2, 2, 2] == 40

    def test_sharpen_leaves_edges_unchanged(self, enhancer, noisy_image):
        pixels = enhancer.sharpen(noisy_image)
        np.testing.assert_array_equal(pixels[0, :, :3], noisy_image.pixels[0, :, :3])
        np.testing.assert_array_equal(pixels[:, -1, :3], noisy_image.pixels[:, -1, :3])
        assert pixels[:, :, 3].min() == 255

    def test_sharpen_uniform_is_identity(self, enhancer):
        pixels = enhancer.sharpen(from_array(uniform_image(100)))
        assert np.all(pixels[:, :, :3] == 100)

    def test_sharpen_interior_value(self, enhancer):
        image = uniform_image(100, width=3, height=3)
        image[1, 1] = 120
        pixels = enhancer.sharpen(from_array(image))
        # 5 * 120 - 4 * 100
        assert pixels[1, 1, 0] == 200

    def test_brightness(self, enhancer):
        pixels = enhancer.adjust_brightness(from_array(uniform_image(200)), 1.5)
        assert np.all(pixels[:, :, :3] == 255)
        with pytest.raises(ValueError):
            enhancer.adjust_brightness(from_array(uniform_image(200)), -1)

    def test_crop_is_clipped_to_bounds(self, enhancer):
        pixels = enhancer.crop(from_array(uniform_image(10, width=20, height=20)), Region(-5, -5, 10, 10))
        assert pixels.shape == (5, 5, 4)

    def test_crop_outside_image(self, enhancer):
        with pytest.raises(ValueError):
            enhancer.crop(from_array(uniform_image(10)), Region(100, 100, 10, 10))

    def test_transforms_do_not_modify_input(self, enhancer, noisy_image):
        before = noisy_image.pixels.copy()
        enhancer.sharpen(noisy_image)
        enhancer.median_denoise(noisy_image)
        enhancer.apply_clahe(noisy_image)
        enhancer.binarize(noisy_image)
        np.testing.assert_array_equal(noisy_image.pixels, before)


class TestEnhancementVariants:
    """Test cases for the enhancement variants."""

    @pytest.fixture
    def enhancer(self):
        return ImageEnhancer(EnhancementConfig())

    def test_lightweight(self, enhancer):
        result = enhancer.enhance(from_array(striped_image(width=10, height=8)), EnhancementMode.LIGHTWEIGHT)
        assert isinstance(result, EnhancedImage)
        assert result.transforms == ["upscale_6x", "grayscale"]
        assert (result.width, result.height) == (60, 48)
        assert result.pixels[:, :, 3].min() == 255

    def test_full(self, enhancer):
        result = enhancer.enhance_full(from_array(striped_image(width=10, height=8)))
        assert result.transforms == ["upscale_2x", "grayscale", "clahe", "median", "sharpen", "otsu"]
        assert result.otsu_threshold is not None
        assert set(np.unique(result.pixels[:, :, :3]).tolist()) <= {0, 255}

    def test_full_with_brightness(self, enhancer):
        result = enhancer.enhance_full(from_array(striped_image(width=10, height=8)), brightness_multiplier=0.5)
        assert result.transforms[-1] == "brightness_0.5"

    def test_selection(self, enhancer):
        image = from_array(striped_image(width=20, height=20))
        result = enhancer.enhance(image, EnhancementMode.SELECTION, region=Region(2, 2, 10, 5))
        assert result.transforms == ["crop", "upscale_3x", "sharpen", "brightness_1"]
        assert (result.width, result.height) == (30, 15)

    def test_default_mode_from_config(self):
        enhancer = ImageEnhancer(EnhancementConfig(mode="full"))
        result = enhancer.enhance(from_array(uniform_image(80, width=6, height=6)))
        assert result.transforms[-1] == "otsu"

    def test_mode_from_string(self):
        assert EnhancementMode.from_string("LightWeight") == EnhancementMode.LIGHTWEIGHT
