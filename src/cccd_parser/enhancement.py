#!/usr/bin/env python3
"""
Image Enhancement Module

Pure image transforms that prepare a card photo for OCR: upscaling,
grayscale, contrast limited histogram equalization, median denoising,
sharpening, Otsu binarization and brightness adjustment. Every transform
returns a new buffer with alpha forced to 255.
"""

import logging
from enum import Enum
from typing import Any, Optional, Tuple

import cv2
import numpy as np

from .config import EnhancementConfig
from .models import EnhancedImage, RawImage, Region
from .quality import luminance

# Configure logging
logger = logging.getLogger(__name__)

SHARPEN_KERNEL = np.array([
    [0, -1, 0],
    [-1, 5, -1],
    [0, -1, 0]
], dtype=np.float64)

_CONFIGURED = object()


class EnhancementMode(Enum):
    """Enhancement variants."""
    LIGHTWEIGHT = "lightweight"
    FULL = "full"
    SELECTION = "selection"

    @classmethod
    def from_string(cls, value: str) -> 'EnhancementMode':
        """Create EnhancementMode from string value."""
        return cls(value.lower())


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _gray_to_rgba(gray: np.ndarray) -> np.ndarray:
    gray = _to_uint8(gray)
    alpha = np.full(gray.shape, 255, dtype=np.uint8)
    return np.dstack([gray, gray, gray, alpha])


def _with_opaque_alpha(rgb: np.ndarray) -> np.ndarray:
    alpha = np.full(rgb.shape[:2], 255, dtype=np.uint8)
    return np.dstack([_to_uint8(rgb), alpha])


def otsu_threshold_value(gray: np.ndarray) -> int:
    """Otsu threshold of a grayscale array; ties keep the lowest level."""
    threshold, _ = cv2.threshold(_to_uint8(gray), 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return int(threshold)


def _equalize_tile(tile: np.ndarray, clip_limit: Optional[float]) -> np.ndarray:
    levels = tile.astype(np.int64)
    if levels.min() == levels.max():
        return tile

    pixels = levels.size
    histogram = np.bincount(levels.ravel(), minlength=256).astype(np.float64)

    if clip_limit is not None:
        limit = max(clip_limit * pixels / 256.0, 1.0)
        excess = np.sum(np.maximum(histogram - limit, 0.0))
        histogram = np.minimum(histogram, limit) + excess / 256.0

    cdf = np.cumsum(histogram)
    cdf_min = cdf[np.argmax(histogram > 0)]
    denominator = cdf[-1] - cdf_min
    if denominator <= 0:
        return tile
    return np.rint((cdf[levels] - cdf_min) / denominator * 255.0)


class ImageEnhancer:
    """
    Image enhancement transforms for OCR.

    Features:
    - Lightweight path (upscale + grayscale) for clean photos
    - Full path (CLAHE, denoise, sharpen, binarize) for poor captures
    - Selection path for a user-cropped region
    """

    def __init__(self, config: Optional[EnhancementConfig] = None):
        self.config = config or EnhancementConfig()

    # Single transforms

    def to_grayscale(self, image: RawImage) -> np.ndarray:
        return _gray_to_rgba(luminance(image, rounded=True))

    def upscale(self, image: RawImage, scale_factor: float) -> np.ndarray:
        """
        Resize by ``scale_factor`` with bicubic interpolation.

        The effective factor is reduced so the longest side never exceeds
        ``max_dimension``.
        """
        if scale_factor <= 0:
            raise ValueError(f"Scale factor must be positive: {scale_factor}")

        longest = max(image.width, image.height)
        effective = min(scale_factor, self.config.max_dimension / float(longest))
        if effective != scale_factor:
            logger.debug(f"Scale factor {scale_factor} capped to {effective:.3f} by max dimension")

        new_width = max(1, int(round(image.width * effective)))
        new_height = max(1, int(round(image.height * effective)))
        resized = cv2.resize(
            np.ascontiguousarray(image.pixels[:, :, :3]),
            (new_width, new_height),
            interpolation=cv2.INTER_CUBIC
        )
        return _with_opaque_alpha(resized)

    def stretch_contrast(self, image: RawImage, factor: Optional[float] = None,
                         pivot: float = 128.0) -> np.ndarray:
        factor = self.config.contrast_factor if factor is None else factor
        rgb = image.pixels[:, :, :3].astype(np.float64)
        return _with_opaque_alpha((rgb - pivot) * factor + pivot)

    def apply_clahe(self, image: RawImage, clip_limit: Any = _CONFIGURED,
                    tile_size: Optional[int] = None) -> np.ndarray:
        """
        Tile-wise contrast limited histogram equalization of the luminance.

        Args:
            image: RGBA image
            clip_limit: Histogram clip factor relative to a flat histogram;
                None disables clipping, omitted uses the configured limit
            tile_size: Tile edge length in pixels

        Returns:
            np.ndarray: Equalized grayscale RGBA pixels
        """
        if clip_limit is _CONFIGURED:
            clip_limit = self.config.clahe_clip_limit
        tile_size = tile_size or self.config.clahe_tile_size

        gray = luminance(image, rounded=True)
        output = gray.copy()
        height, width = gray.shape

        for y0 in range(0, height, tile_size):
            for x0 in range(0, width, tile_size):
                y1 = min(y0 + tile_size, height)
                x1 = min(x0 + tile_size, width)
                output[y0:y1, x0:x1] = _equalize_tile(gray[y0:y1, x0:x1], clip_limit)

        return _gray_to_rgba(output)

    def median_denoise(self, image: RawImage) -> np.ndarray:
        """3x3 median of the first channel over interior pixels; borders are kept."""
        output = image.pixels.copy()
        output[:, :, 3] = 255
        if image.width < 3 or image.height < 3:
            return output

        median = cv2.medianBlur(np.ascontiguousarray(image.pixels[:, :, 0]), 3)
        interior = median[1:-1, 1:-1]
        for channel in range(3):
            output[1:-1, 1:-1, channel] = interior
        return output

    def sharpen(self, image: RawImage) -> np.ndarray:
        """Apply the 3x3 sharpening kernel to RGB; edge pixels are left unchanged."""
        output = image.pixels.copy()
        output[:, :, 3] = 255
        if image.width < 3 or image.height < 3:
            return output

        rgb = image.pixels[:, :, :3].astype(np.float64)
        filtered = cv2.filter2D(rgb, cv2.CV_64F, SHARPEN_KERNEL, borderType=cv2.BORDER_REPLICATE)
        output[1:-1, 1:-1, :3] = _to_uint8(filtered[1:-1, 1:-1])
        return output

    def otsu_threshold(self, image: RawImage) -> int:
        return otsu_threshold_value(luminance(image))

    def binarize(self, image: RawImage, threshold: Optional[int] = None) -> Tuple[np.ndarray, int]:
        """Black/white image from the Otsu threshold: gray > threshold becomes 255."""
        gray = _to_uint8(luminance(image))
        if threshold is None:
            threshold, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        else:
            threshold, binary = cv2.threshold(gray, threshold, 255, cv2.THRESH_BINARY)
        return _gray_to_rgba(binary), int(threshold)

    def adjust_brightness(self, image: RawImage, multiplier: float) -> np.ndarray:
        if multiplier < 0:
            raise ValueError(f"Brightness multiplier must be non-negative: {multiplier}")
        rgb = image.pixels[:, :, :3].astype(np.float64)
        return _with_opaque_alpha(rgb * multiplier)

    def crop(self, image: RawImage, region: Region) -> np.ndarray:
        """Crop to ``region`` clipped to the image bounds."""
        x1, y1 = max(region.x, 0), max(region.y, 0)
        x2, y2 = min(region.x2, image.width), min(region.y2, image.height)
        if x2 <= x1 or y2 <= y1:
            raise ValueError(f"Selection {region.to_dict()} does not overlap the image")
        output = image.pixels[y1:y2, x1:x2].copy()
        output[:, :, 3] = 255
        return output

    # Variants

    def enhance_lightweight(self, image: RawImage, scale_factor: Optional[float] = None) -> EnhancedImage:
        """Upscale and convert to grayscale."""
        scale_factor = scale_factor or self.config.lightweight_scale
        result = EnhancedImage.from_raw(image)
        result = result.with_transform(self.upscale(result, scale_factor), f"upscale_{scale_factor:g}x")
        result = result.with_transform(self.to_grayscale(result), "grayscale")
        return result

    def enhance_full(self, image: RawImage, scale_factor: Optional[float] = None,
                     brightness_multiplier: Optional[float] = None) -> EnhancedImage:
        """Upscale, grayscale, CLAHE, median, sharpen, Otsu and optional brightness."""
        scale_factor = scale_factor or self.config.full_scale
        if brightness_multiplier is None:
            brightness_multiplier = self.config.brightness_multiplier

        result = EnhancedImage.from_raw(image)
        result = result.with_transform(self.upscale(result, scale_factor), f"upscale_{scale_factor:g}x")
        result = result.with_transform(self.to_grayscale(result), "grayscale")
        result = result.with_transform(self.apply_clahe(result), "clahe")
        result = result.with_transform(self.median_denoise(result), "median")
        result = result.with_transform(self.sharpen(result), "sharpen")

        binary, threshold = self.binarize(result)
        result = result.with_transform(binary, "otsu", otsu_threshold=threshold)
        logger.debug(f"Otsu threshold: {threshold}")

        if brightness_multiplier is not None and brightness_multiplier != 1.0:
            result = result.with_transform(
                self.adjust_brightness(result, brightness_multiplier),
                f"brightness_{brightness_multiplier:g}"
            )
        return result

    def enhance_selection(self, image: RawImage, region: Region,
                          scale_factor: Optional[float] = None,
                          brightness_multiplier: float = 1.0) -> EnhancedImage:
        """Crop a selection, upscale, sharpen and adjust brightness."""
        scale_factor = scale_factor or self.config.selection_scale
        result = EnhancedImage.from_raw(image)
        result = result.with_transform(self.crop(result, region), "crop")
        result = result.with_transform(self.upscale(result, scale_factor), f"upscale_{scale_factor:g}x")
        result = result.with_transform(self.sharpen(result), "sharpen")
        result = result.with_transform(
            self.adjust_brightness(result, brightness_multiplier),
            f"brightness_{brightness_multiplier:g}"
        )
        return result

    def enhance(self, image: RawImage, mode: Optional[EnhancementMode] = None,
                region: Optional[Region] = None, scale_factor: Optional[float] = None,
                brightness_multiplier: Optional[float] = None) -> EnhancedImage:
        """Dispatch to the enhancement variant for ``mode``."""
        if mode is None:
            mode = EnhancementMode.from_string(self.config.mode)

        if mode == EnhancementMode.LIGHTWEIGHT:
            result = self.enhance_lightweight(image, scale_factor)
        elif mode == EnhancementMode.FULL:
            result = self.enhance_full(image, scale_factor, brightness_multiplier)
        elif mode == EnhancementMode.SELECTION:
            if region is None:
                region = Region(0, 0, image.width, image.height)
            result = self.enhance_selection(
                image, region, scale_factor,
                1.0 if brightness_multiplier is None else brightness_multiplier
            )
        else:
            raise ValueError(f"Unknown enhancement mode: {mode}")

        logger.debug(f"Enhanced {image.width}x{image.height} -> {result.width}x{result.height} "
                     f"via {', '.join(result.transforms)}")
        return result
