#!/usr/bin/env python3
import time
from typing import Callable, List, Optional

from PIL import Image

from .constants import DEFAULT_APPLY_ATTEMPTS, ScreenTarget
from .decoder import decode_sampled, read_bounds
from .errors import ApplyError
from .image_source import ImageSource
from .logger import setup_logger
from .models import WallpaperConfig
from .sampling import calculate_sample_size
from .sinks import WallpaperSink
from .transform import transform_image

logger = setup_logger('wallpaper_rotator.applier')


class ImageScope:
    """Owns the images created while applying one wallpaper.

    Every tracked image is closed when the scope exits, whichever step failed.
    """

    def __init__(self):
        self.tracked: List[Image.Image] = []
        self.released = False

    def track(self, image: Image.Image) -> Image.Image:
        self.tracked.append(image)
        return image

    def release(self, image: Image.Image) -> None:
        """Close an image early once the next step no longer needs it."""
        # Identity, not Image.__eq__, which compares pixel data
        self.tracked = [tracked for tracked in self.tracked if tracked is not image]
        image.close()

    def close(self) -> None:
        while self.tracked:
            self.tracked.pop().close()
        self.released = True

    def __enter__(self) -> 'ImageScope':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class WallpaperApplier:
    """Decodes, transforms and applies one configured wallpaper."""

    def __init__(self, image_source: ImageSource, sink: WallpaperSink,
                 max_attempts: int = DEFAULT_APPLY_ATTEMPTS, backoff_seconds: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep,
                 scope_factory: Callable[[], ImageScope] = ImageScope):
        self.image_source = image_source
        self.sink = sink
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep
        self.scope_factory = scope_factory

    def apply(self, config: WallpaperConfig, target: ScreenTarget, width: int, height: int) -> None:
        """Apply ``config`` to ``target`` at the given display size.

        Raises:
            AccessError: If the image cannot be read, or the platform denied permission
            DecodeError: If the image cannot be decoded
            ApplyError: If the platform kept rejecting the image after all attempts
        """
        logger.info(f"Applying {config.image_ref} (config {config.id}) to {target.label.lower()}")

        with self.scope_factory() as scope:
            with self.image_source.open(config.image_ref) as stream:
                orig_width, orig_height = read_bounds(stream)
                sample_size = calculate_sample_size(orig_width, orig_height, width, height)
                stream.seek(0)
                decoded = scope.track(decode_sampled(stream, sample_size))

            logger.debug(f"Loaded {decoded.width}x{decoded.height} from {orig_width}x{orig_height} "
                         f"(sampled by {sample_size})")

            final = scope.track(transform_image(decoded, config.crop_rect, config.rotation_degrees,
                                                width, height))
            scope.release(decoded)

            self._submit(final, target)

    def _submit(self, image: Image.Image, target: ScreenTarget) -> None:
        last_error: Optional[ApplyError] = None
        for attempt in range(self.max_attempts):
            if attempt:
                delay = self.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(f"Retrying {target.label.lower()} in {delay:g}s "
                               f"(attempt {attempt + 1}/{self.max_attempts})")
                self.sleep(delay)
            try:
                self.sink.apply_to_target(image, target)
                return
            except ApplyError as e:
                logger.error(f"Platform rejected {target.label.lower()} wallpaper: {e}")
                last_error = e
        raise last_error
