from typing import BinaryIO, Tuple

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError
from .logger import setup_logger

logger = setup_logger('wallpaper_rotator.decoder')

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError)


def read_bounds(stream: BinaryIO) -> Tuple[int, int]:
    """Read the image size from the header without decoding any pixels."""
    try:
        with Image.open(stream) as img:
            width, height = img.size
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Cannot identify image: {e}") from e
    if width <= 0 or height <= 0:
        raise DecodeError(f"Image has no pixels ({width}x{height})")
    return width, height


def decode_sampled(stream: BinaryIO, sample_size: int = 1) -> Image.Image:
    """Decode an image downsampled by ``sample_size``.

    JPEGs are scaled by the decoder itself (draft mode), other formats are
    decoded fully and then reduced. The result is RGB or RGBA with its pixels
    loaded.
    """
    img = None
    try:
        img = Image.open(stream)
        width, height = img.size
        if sample_size > 1:
            img.draft('RGB', (max(1, width // sample_size), max(1, height // sample_size)))
        img.load()

        if sample_size > 1 and img.size == (width, height):
            reduced = img.reduce(sample_size)
            img.close()
            img = reduced

        if img.mode not in ('RGB', 'RGBA'):
            converted = img.convert('RGBA' if 'A' in img.getbands() or 'transparency' in img.info else 'RGB')
            img.close()
            img = converted
        return img
    except _DECODE_ERRORS as e:
        if img is not None:
            img.close()
        raise DecodeError(f"Failed to decode image: {e}") from e
