import os
import platform
from typing import Tuple

from .config import Config
from .constants import DEFAULT_DISPLAY_SIZE
from .logger import setup_logger

logger = setup_logger('wallpaper_rotator.display')


def has_display() -> bool:
    """Whether a graphical session is reachable from this process.

    Scheduled runs from cron have no X11 or Wayland connection, and Qt aborts
    the process instead of raising when it cannot connect to one.
    """
    if platform.system().lower() != 'linux':
        return True
    return bool(os.getenv('DISPLAY') or os.getenv('WAYLAND_DISPLAY'))


def detect_screen_size() -> Tuple[int, int]:
    """Primary screen size in device pixels, as reported by Qt."""
    if not has_display():
        raise RuntimeError("No display connection (DISPLAY and WAYLAND_DISPLAY are unset)")

    from PySide6.QtGui import QGuiApplication

    app = QGuiApplication.instance() or QGuiApplication([])
    screen = app.primaryScreen()
    if screen is None:
        raise RuntimeError("No screen available")
    size = screen.size()
    ratio = screen.devicePixelRatio()
    return round(size.width() * ratio), round(size.height() * ratio)


def get_display_size(config: Config) -> Tuple[int, int]:
    """Return the configured display size, detecting and storing it on first use.

    The default size is used, and not stored, when detection is impossible.
    """
    size = config.get_display_size()
    if size is not None:
        return size

    try:
        size = detect_screen_size()
    except (RuntimeError, ImportError) as e:
        logger.warning(f"Could not detect screen size ({e}), using {DEFAULT_DISPLAY_SIZE[0]}x{DEFAULT_DISPLAY_SIZE[1]}. "
                       f"Set it with --display WxH")
        return DEFAULT_DISPLAY_SIZE

    logger.info(f"Detected screen size {size[0]}x{size[1]}")
    config.update(display_width=size[0], display_height=size[1])
    return size
