import io

import pytest
from PIL import Image

from wallpaper_rotator.applier import WallpaperApplier
from wallpaper_rotator.config import Config
from wallpaper_rotator.constants import ScreenTarget
from wallpaper_rotator.errors import AccessError
from wallpaper_rotator.image_source import ImageSource
from wallpaper_rotator.sinks import WallpaperSink


class RecordingSink(WallpaperSink):
    """Sink that remembers what it was asked to apply instead of touching the desktop."""

    def __init__(self, failures=0, error=None, supported=(ScreenTarget.HOME, ScreenTarget.LOCK)):
        self.calls = []
        self.colors = []
        self.attempts = 0
        self.failures = failures
        self.error = error
        self.supported = supported

    def supports(self, target):
        return target in self.supported

    def apply_to_target(self, image, target):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error
        self.calls.append((image.size, target))
        self.colors.append(image.convert('RGB').getpixel((image.width // 2, image.height // 2)))


class MemoryImageSource(ImageSource):
    """Serves encoded images from memory; unknown refs behave like missing files."""

    def __init__(self, images=None):
        self.images = dict(images or {})
        self.opened = []

    def open(self, image_ref):
        self.opened.append(image_ref)
        if image_ref not in self.images:
            raise AccessError(f"Image file not found: {image_ref}")
        return io.BytesIO(self.images[image_ref])


def encode_image(size=(64, 48), color=(200, 30, 30), fmt='PNG'):
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def config(tmp_path):
    return Config(tmp_path / 'config.json')


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def image_source():
    return MemoryImageSource({
        'a.png': encode_image(color=(255, 0, 0)),
        'b.png': encode_image(color=(0, 255, 0)),
        'c.png': encode_image(color=(0, 0, 255)),
    })


@pytest.fixture
def applier(image_source, sink):
    return WallpaperApplier(image_source, sink, sleep=lambda seconds: None)
