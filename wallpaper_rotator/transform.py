#!/usr/bin/env python3
"""Crop, rotate and scale a decoded image to the display size.

Crop is applied before rotation: the normalized crop rect is always measured
against the unrotated source, which is also the frame the crop editor shows.
"""
from typing import Tuple

from PIL import Image

from .errors import DecodeError
from .logger import setup_logger
from .models import CropRect

logger = setup_logger('wallpaper_rotator.transform')

# Lossless transposes for clockwise quarter turns
_QUARTER_TURNS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


def crop_box(crop_rect: CropRect, width: int, height: int) -> Tuple[int, int, int, int]:
    """Convert a normalized crop rect into a pixel box (left, upper, right, lower).

    The box is clamped into the image and is never smaller than one pixel in
    either dimension, so degenerate or inverted rects still yield a region.
    """
    if width <= 0 or height <= 0:
        raise DecodeError(f"Cannot crop an empty image ({width}x{height})")

    x = min(max(int(crop_rect.left * width), 0), width - 1)
    y = min(max(int(crop_rect.top * height), 0), height - 1)
    crop_width = min(max(int((crop_rect.right - crop_rect.left) * width), 1), width - x)
    crop_height = min(max(int((crop_rect.bottom - crop_rect.top) * height), 1), height - y)
    return x, y, x + crop_width, y + crop_height


def rotate_image(image: Image.Image, degrees: float) -> Image.Image:
    """Rotate clockwise about the image centre, expanding to the rotated bounds.

    Always returns a new image; the input is left open for the caller.
    """
    normalized = degrees % 360
    if normalized == 0:
        return image.copy()
    if normalized in _QUARTER_TURNS:
        return image.transpose(_QUARTER_TURNS[int(normalized)])
    # Pillow rotates counter-clockwise
    return image.rotate(-normalized, resample=Image.Resampling.BILINEAR, expand=True)


def transform_image(image: Image.Image, crop_rect: CropRect, rotation_degrees: float,
                    width: int, height: int) -> Image.Image:
    """Produce the final wallpaper image at exactly ``width`` x ``height``.

    Args:
        image: Decoded source image; not modified or closed
        crop_rect: Normalized crop window in source-image space
        rotation_degrees: Clockwise rotation applied to the cropped region
        width: Output width in pixels
        height: Output height in pixels

    Raises:
        DecodeError: If the source has no pixels or the output size is not positive
    """
    if width <= 0 or height <= 0:
        raise DecodeError(f"Invalid output size {width}x{height}")

    box = crop_box(crop_rect, image.width, image.height)
    logger.debug(f"Cropping {image.width}x{image.height} to box {box}")

    cropped = None
    rotated = None
    try:
        cropped = image.crop(box)
        rotated = rotate_image(cropped, rotation_degrees)
        logger.debug(f"Rotated {cropped.width}x{cropped.height} by {rotation_degrees:g} -> "
                     f"{rotated.width}x{rotated.height}")
        return rotated.resize((width, height), Image.Resampling.LANCZOS)
    finally:
        if rotated is not None:
            rotated.close()
        if cropped is not None:
            cropped.close()
