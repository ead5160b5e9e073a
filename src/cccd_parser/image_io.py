#!/usr/bin/env python3
"""
Image Loading Utilities

Turns file paths, encoded bytes, PIL images and numpy arrays into the RGBA
RawImage buffers the pipeline works on.
"""

import io
import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .exceptions import ImageDecodeError
from .models import RawImage

# Configure logging
logger = logging.getLogger(__name__)

ImageInput = Union[str, Path, bytes, bytearray, np.ndarray, Image.Image, RawImage]


def load_image(image_input: ImageInput) -> RawImage:
    """
    Load an image from various input formats.

    Args:
        image_input: Path, encoded bytes, PIL image, numpy array or RawImage.
            Numpy arrays are taken as RGB(A) or grayscale in that channel order.

    Returns:
        RawImage: RGBA buffer owned by the caller

    Raises:
        ImageDecodeError: If the input cannot be read or decoded
    """
    if isinstance(image_input, RawImage):
        return image_input
    if isinstance(image_input, (str, Path)):
        path = Path(image_input)
        if not path.is_file():
            raise ImageDecodeError(f"Image file not found: {path}", {"path": str(path)})
        return _from_pil(_open_pil(path.read_bytes(), source=str(path)))
    if isinstance(image_input, (bytes, bytearray)):
        return _from_pil(_open_pil(bytes(image_input), source="bytes"))
    if isinstance(image_input, Image.Image):
        return _from_pil(image_input)
    if isinstance(image_input, np.ndarray):
        return from_array(image_input)
    raise ImageDecodeError(f"Unsupported image input type: {type(image_input).__name__}")


def _open_pil(data: bytes, source: str) -> Image.Image:
    if not data:
        raise ImageDecodeError("Image buffer is empty", {"source": source})
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Could not decode image from {source}: {e}", {"source": source})
    logger.debug(f"Decoded {image.format} image {image.size} from {source}")
    return image


def _from_pil(image: Image.Image) -> RawImage:
    if image.width == 0 or image.height == 0:
        raise ImageDecodeError("Image has no pixels")
    return RawImage(np.array(image.convert("RGBA"), dtype=np.uint8))


def from_array(array: np.ndarray) -> RawImage:
    """Wrap a grayscale, RGB or RGBA array as a RawImage copy."""
    if array.size == 0:
        raise ImageDecodeError("Image has no pixels")
    if array.dtype != np.uint8:
        array = np.clip(np.rint(array), 0, 255).astype(np.uint8)

    if array.ndim == 2:
        rgba = cv2.cvtColor(array, cv2.COLOR_GRAY2RGBA)
    elif array.ndim == 3 and array.shape[2] == 1:
        rgba = cv2.cvtColor(array[:, :, 0], cv2.COLOR_GRAY2RGBA)
    elif array.ndim == 3 and array.shape[2] == 3:
        rgba = cv2.cvtColor(array, cv2.COLOR_RGB2RGBA)
    elif array.ndim == 3 and array.shape[2] == 4:
        rgba = array.copy()
    else:
        raise ImageDecodeError(f"Unsupported array shape: {array.shape}")

    return RawImage(np.ascontiguousarray(rgba))


def to_pil(image: RawImage) -> Image.Image:
    """Convert a RawImage to a PIL image for the OCR engines."""
    return Image.fromarray(image.pixels)


def to_rgb_array(image: RawImage) -> np.ndarray:
    return np.ascontiguousarray(image.pixels[:, :, :3])


def save_image(image: RawImage, path: Union[str, Path]) -> Path:
    """Write a RawImage to disk as PNG, mainly for debugging enhancement output."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    to_pil(image).save(path, format="PNG")
    logger.info(f"Saved image to {path}")
    return path
