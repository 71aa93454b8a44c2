import os
from pathlib import Path
from typing import BinaryIO
from urllib.parse import unquote, urlparse

from .errors import AccessError
from .logger import setup_logger

logger = setup_logger('wallpaper_rotator.image_source')


class ImageSource:
    """Resolves an image reference to a readable binary stream."""

    def open(self, image_ref: str) -> BinaryIO:
        """Open the referenced image for reading.

        Raises:
            AccessError: If the image cannot be read
        """
        raise NotImplementedError


class FileImageSource(ImageSource):
    """Image source for local paths and file:// URIs."""

    @staticmethod
    def resolve_path(image_ref: str) -> Path:
        if image_ref.startswith('file://'):
            parsed = urlparse(image_ref)
            path = unquote(parsed.path)
            # file:///C:/... on Windows
            if os.name == 'nt' and path.startswith('/') and len(path) > 2 and path[2] == ':':
                path = path[1:]
            return Path(path)
        return Path(image_ref).expanduser()

    def open(self, image_ref: str) -> BinaryIO:
        path = self.resolve_path(image_ref)
        try:
            return open(path, 'rb')
        except FileNotFoundError as e:
            logger.error(f"Image file not found: {path}")
            raise AccessError(f"Image file not found: {path}") from e
        except OSError as e:
            logger.error(f"Cannot read image file: {path}: {e}")
            raise AccessError(f"Cannot read image file: {path}") from e
