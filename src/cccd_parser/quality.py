#!/usr/bin/env python3
"""
Image Quality Gate

Scores a captured card photo for blur, exposure and framing before any
OCR work is spent on it.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .config import QualityConfig
from .models import BrightnessLevel, QualityReport, RawImage

# Configure logging
logger = logging.getLogger(__name__)

LUMA_WEIGHTS = np.array([299, 587, 114], dtype=np.int64)


def luminance(image: RawImage, rounded: bool = False) -> np.ndarray:
    """
    Per-pixel luminance 0.299R + 0.587G + 0.114B as a float array of shape (H, W).

    Integer weights keep gray pixels exact. ``rounded`` snaps values to the
    nearest integer for transforms that write a uint8 buffer.
    """
    rgb = image.pixels[:, :, :3].astype(np.int64)
    gray = (rgb @ LUMA_WEIGHTS) / 1000.0
    if rounded:
        gray = np.rint(gray)
    return gray


def laplacian_variance(gray: np.ndarray) -> float:
    """Mean squared 4-neighbour Laplacian over interior pixels."""
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0
    center = gray[1:-1, 1:-1]
    laplacian = (4 * center
                 - gray[:-2, 1:-1]
                 - gray[2:, 1:-1]
                 - gray[1:-1, :-2]
                 - gray[1:-1, 2:])
    return float(np.mean(laplacian ** 2))


class ImageQualityChecker:
    """Blur, brightness and corner checks over an RGBA buffer."""

    def __init__(self, config: Optional[QualityConfig] = None):
        self.config = config or QualityConfig()

    def detect_blur(self, image: RawImage) -> Tuple[bool, float, str]:
        """
        Measure sharpness with the Laplacian focus measure.

        Args:
            image: RGBA image

        Returns:
            Tuple of (is_blurry, variance, quality label)
        """
        variance = laplacian_variance(luminance(image))
        if variance < self.config.blur_threshold:
            label = "blurry"
        elif variance > self.config.sharp_threshold:
            label = "sharp"
        else:
            label = "acceptable"
        return variance < self.config.blur_threshold, variance, label

    def detect_brightness(self, image: RawImage) -> Tuple[BrightnessLevel, float, float, float]:
        """
        Classify exposure from mean luminance and the share of extreme pixels.

        Returns:
            Tuple of (level, average luminance, dark ratio, bright ratio)
        """
        gray = luminance(image)
        if gray.size == 0:
            return BrightnessLevel.TOO_DARK, 0.0, 1.0, 0.0

        avg = float(gray.mean())
        dark_ratio = float(np.count_nonzero(gray < self.config.dark_pixel_level)) / gray.size
        bright_ratio = float(np.count_nonzero(gray > self.config.bright_pixel_level)) / gray.size

        if avg < self.config.min_avg_brightness or dark_ratio > self.config.max_dark_ratio:
            level = BrightnessLevel.TOO_DARK
        elif avg > self.config.max_avg_brightness or bright_ratio > self.config.max_bright_ratio:
            level = BrightnessLevel.TOO_BRIGHT
        else:
            level = BrightnessLevel.GOOD
        return level, avg, dark_ratio, bright_ratio

    def detect_corners(self, image: RawImage) -> bool:
        """Return True when a card corner is missing from the frame."""
        # Corner detection is not implemented; every frame is treated as complete.
        return False

    def check(self, image: RawImage) -> QualityReport:
        """Run every check and assemble a QualityReport."""
        is_blurry, variance, label = self.detect_blur(image)
        level, avg, dark_ratio, bright_ratio = self.detect_brightness(image)
        report = QualityReport(
            is_blurry=is_blurry,
            blur_variance=variance,
            blur_quality=label,
            brightness=level,
            avg_brightness=avg,
            dark_ratio=dark_ratio,
            bright_ratio=bright_ratio,
            has_missing_corners=self.detect_corners(image)
        )
        logger.debug(
            f"Quality check {image.width}x{image.height}: variance={variance:.1f} ({label}), "
            f"brightness={avg:.1f} ({level.value})"
        )
        return report


def check_quality(image: RawImage, config: Optional[QualityConfig] = None) -> QualityReport:
    """Convenience function for a one-off quality check."""
    return ImageQualityChecker(config).check(image)
