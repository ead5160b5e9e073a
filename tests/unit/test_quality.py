#!/usr/bin/env python3
"""
Unit Tests for the Image Quality Gate

Tests blur and exposure classification on synthetic images.
"""

import numpy as np
import pytest

from cccd_parser.config import QualityConfig
from cccd_parser.image_io import from_array
from cccd_parser.models import BrightnessLevel
from cccd_parser.quality import ImageQualityChecker, check_quality, laplacian_variance, luminance
from tests.conftest import striped_image, uniform_image


class TestImageQualityChecker:
    """Test cases for ImageQualityChecker."""

    @pytest.fixture
    def checker(self):
        return ImageQualityChecker(QualityConfig())

    def test_luminance_weights(self):
        image = from_array(np.array([[[255, 0, 0], [0, 255, 0], [0, 0, 255]]], dtype=np.uint8))
        assert luminance(image)[0].tolist() == pytest.approx([76.245, 149.685, 29.07])
        assert luminance(image, rounded=True).tolist() == [[76.0, 150.0, 29.0]]

    def test_fractional_luminance_counts_as_dark(self, checker):
        # RGB(0, 85, 0) has luminance 49.895, just under the dark level
        image = uniform_image(120, width=10, height=10)
        image[:6] = [0, 85, 0]
        level, _, dark_ratio, _ = checker.detect_brightness(from_array(image))
        assert dark_ratio == pytest.approx(0.6)
        assert level == BrightnessLevel.TOO_DARK

    def test_flat_image_is_blurry(self, checker):
        is_blurry, variance, label = checker.detect_blur(from_array(uniform_image(128)))
        assert is_blurry is True
        assert variance == 0.0
        assert label == "blurry"

    def test_striped_image_is_sharp(self, checker):
        is_blurry, variance, label = checker.detect_blur(from_array(striped_image()))
        assert is_blurry is False
        assert variance > 200
        assert label == "sharp"

    def test_tiny_image_has_zero_variance(self):
        assert laplacian_variance(np.full((2, 2), 255.0)) == 0.0

    def test_dark_image(self, checker):
        level, avg, dark_ratio, _ = checker.detect_brightness(from_array(uniform_image(20)))
        assert level == BrightnessLevel.TOO_DARK
        assert avg == 20.0
        assert dark_ratio == 1.0

    def test_bright_image(self, checker):
        level, avg, _, bright_ratio = checker.detect_brightness(from_array(uniform_image(230)))
        assert level == BrightnessLevel.TOO_BRIGHT
        assert bright_ratio == 1.0

    def test_mostly_dark_pixels(self, checker):
        # Mean is acceptable but most pixels are below the dark level
        image = uniform_image(10, width=10, height=10)
        image[:, 7:] = 255
        level, avg, dark_ratio, _ = checker.detect_brightness(from_array(image))
        assert avg > 60
        assert dark_ratio == pytest.approx(0.7)
        assert level == BrightnessLevel.TOO_DARK

    def test_good_image_passes(self, checker):
        report = checker.check(from_array(striped_image()))
        assert report.passed is True
        assert report.brightness == BrightnessLevel.GOOD
        assert report.has_missing_corners is False
        assert report.issues == []

    def test_check_quality_reports_issues(self):
        report = check_quality(from_array(uniform_image(20)))
        assert report.passed is False
        assert report.to_dict()["issues"] == [
            "Image is blurry, please recapture",
            "Image is too dark, increase lighting",
        ]

    def test_input_is_not_modified(self, checker):
        image = from_array(striped_image())
        before = image.pixels.copy()
        checker.check(image)
        np.testing.assert_array_equal(image.pixels, before)
