#!/usr/bin/env python3
import logging
import os
import sys

LOG_LEVEL_ENV = 'WALLPAPER_ROTATOR_LOG_LEVEL'

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
}


def setup_logger(name: str = 'wallpaper_rotator', level: int = logging.INFO) -> logging.Logger:
    """Create or update a project logger.

    Every logger gets exactly one stderr StreamHandler; calling this again for the
    same name updates the level and formatter instead of adding handlers. The
    WALLPAPER_ROTATOR_LOG_LEVEL environment variable overrides ``level``.
    """
    logger = logging.getLogger(name)

    env_level = (os.getenv(LOG_LEVEL_ENV) or '').strip().lower()
    logger.setLevel(_LEVELS.get(env_level, level))

    handler = None
    for existing in logger.handlers:
        if isinstance(existing, logging.StreamHandler) and getattr(existing, 'stream', None) is sys.stderr:
            handler = existing
            break
    if handler is None:
        handler = logging.StreamHandler(stream=sys.stderr)
        logger.addHandler(handler)

    handler.setFormatter(logging.Formatter(
        fmt='[%(asctime)s] %(levelname)s %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    return logger
