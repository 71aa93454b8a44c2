#!/usr/bin/env python3
from contextlib import contextmanager
import json
import os
from pathlib import Path
import tempfile
import time
from typing import Iterable, List, Optional

from filelock import FileLock

from .constants import (DEFAULT_APPLY_ATTEMPTS, DEFAULT_ROTATION_INTERVAL, SUPPORTED_FORMATS,
                        RotationMode, ScreenTarget)
from .logger import setup_logger
from .models import CropRect, WallpaperConfig
from .selector import NO_INDEX, RotationState

logger = setup_logger('wallpaper_rotator.config')

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

CONFIG_ENV = 'WALLPAPER_ROTATOR_CONFIG'
LOCK_TIMEOUT = 120  # seconds


class Config:
    """Configuration manager for the wallpaper rotator.

    Holds the configured wallpapers and the scalar settings in one JSON file.
    Scheduled runs and the command line are separate processes sharing that
    file, so every change is a read-modify-write under a lock file next to it,
    and the file is replaced atomically.
    """

    def __init__(self, config_file=None, lock_timeout=None):
        config_file = config_file or os.getenv(CONFIG_ENV) or os.path.join(project_root, '.wallpaper_rotator_config.json')
        self.config_file = Path(config_file)
        self.lock_file = self.config_file.with_name(self.config_file.name + '.lock')
        self._file_lock = FileLock(str(self.lock_file), timeout=LOCK_TIMEOUT if lock_timeout is None else lock_timeout)
        self.default_config = {
            'configs': [],
            'rotation_interval': DEFAULT_ROTATION_INTERVAL,
            'rotation_mode': RotationMode.SEQUENTIAL.value,
            'last_index_home': NO_INDEX,
            'last_index_lock': NO_INDEX,
            'change_on_unlock': False,
            'display_width': None,
            'display_height': None,
            'apply_retry_attempts': DEFAULT_APPLY_ATTEMPTS,
            'output_dir': None,
        }
        self.config = self.load_config()

    @property
    def data_dir(self) -> Path:
        return self.config_file.parent

    def load_config(self):
        """Load configuration from file."""
        config = self.default_config.copy()

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    saved_config = json.load(f)
                config.update(saved_config)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not load config file: {e}")

        return config

    @contextmanager
    def locked(self):
        """Hold the config file lock and work on the current file contents.

        Reentrant within a thread. Raises filelock.Timeout if another process
        keeps the lock longer than the timeout.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with self._file_lock:
            self.config = self.load_config()
            yield self

    def save_config(self):
        """Save configuration to file."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with self._file_lock:
                self._atomic_write()
        except OSError as e:
            logger.warning(f"Could not save config file: {e}")

    def _atomic_write(self):
        fd, tmp = tempfile.mkstemp(prefix='.config.', suffix='.tmp', dir=str(self.data_dir))
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(self.config, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.config_file)
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    def get(self, key, default=None):
        """Get a configuration value."""
        return self.config.get(key, default)

    def set(self, key, value):
        """Set a configuration value and save to file."""
        self.update(**{key: value})

    def update(self, **kwargs):
        """Update multiple configuration values on top of the current file and save it."""
        with self.locked():
            self.config.update(kwargs)
            self.save_config()

    # Wallpaper configs

    def get_configs(self) -> List[WallpaperConfig]:
        """Get the configured wallpapers in stored order. Malformed entries are skipped."""
        configs = []
        for entry in self.config.get('configs') or []:
            try:
                configs.append(WallpaperConfig.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid wallpaper config {entry!r}: {e}")
        return configs

    def save_configs(self, configs: Iterable[WallpaperConfig]):
        """Replace the stored list of wallpapers."""
        self.set('configs', [config.to_dict() for config in configs])

    def new_config_id(self) -> int:
        """Return a creation-time id that does not collide with any stored config."""
        new_id = int(time.time() * 1000)
        existing = [config.id for config in self.get_configs()]
        if existing and new_id <= max(existing):
            new_id = max(existing) + 1
        return new_id

    def add_config(self, config: WallpaperConfig) -> WallpaperConfig:
        with self.locked():
            configs = self.get_configs()
            if any(existing.id == config.id for existing in configs):
                config.id = self.new_config_id()
            configs.append(config)
            self.save_configs(configs)
        logger.info(f"Added wallpaper config {config.id} for {config.image_ref}")
        return config

    def update_config(self, config: WallpaperConfig) -> bool:
        """Replace the stored config with the same id. Returns False if there is none."""
        with self.locked():
            configs = self.get_configs()
            for i, existing in enumerate(configs):
                if existing.id == config.id:
                    configs[i] = config
                    self.save_configs(configs)
                    return True
        return False

    def remove_configs(self, ids: Iterable[int]) -> int:
        """Remove configs by id and return how many were removed."""
        ids = set(ids)
        with self.locked():
            configs = self.get_configs()
            kept = [config for config in configs if config.id not in ids]
            removed = len(configs) - len(kept)
            if removed:
                self.save_configs(kept)
        if removed:
            logger.info(f"Removed {removed} wallpaper config(s)")
        return removed

    def add_folder_images(self, folder, for_home: bool = True, for_lock: bool = False,
                          recurse: bool = False) -> List[WallpaperConfig]:
        """Add every supported image in a folder with a full-image crop.

        Images that are already configured are skipped.

        Returns:
            The newly added configs.
        """
        folder = Path(folder)
        if not folder.is_dir():
            raise NotADirectoryError(f"Not a directory: {folder}")

        pattern = '**/*' if recurse else '*'
        images = sorted(p for p in folder.glob(pattern)
                        if p.is_file() and p.suffix.lower() in SUPPORTED_FORMATS)

        with self.locked():
            configs = self.get_configs()
            known = {config.image_ref for config in configs}
            next_id = self.new_config_id()
            added = []
            for image in images:
                image_ref = str(image.resolve())
                if image_ref in known:
                    continue
                config = WallpaperConfig(image_ref=image_ref, crop_rect=CropRect.full(),
                                         targets_home=for_home, targets_lock=for_lock, id=next_id)
                next_id += 1
                added.append(config)
                known.add(image_ref)

            if added:
                self.save_configs(configs + added)
        logger.info(f"Added {len(added)} image(s) from {folder}")
        return added

    # Rotation settings

    def get_rotation_mode(self) -> RotationMode:
        try:
            return RotationMode.from_string(self.get('rotation_mode', RotationMode.SEQUENTIAL.value))
        except ValueError as e:
            logger.warning(f"{e}. Using sequential rotation.")
            return RotationMode.SEQUENTIAL

    def get_last_index(self, target: ScreenTarget) -> int:
        value = self.get(f'last_index_{target.key}', NO_INDEX)
        return value if isinstance(value, int) else NO_INDEX

    def save_last_index(self, target: ScreenTarget, index: int):
        self.set(f'last_index_{target.key}', index)

    def save_rotation_state(self, state: RotationState):
        """Persist the per-target indices of a rotation state."""
        self.update(last_index_home=state.home_index, last_index_lock=state.lock_index)

    def get_rotation_state(self) -> RotationState:
        return RotationState(
            mode=self.get_rotation_mode(),
            home_index=self.get_last_index(ScreenTarget.HOME),
            lock_index=self.get_last_index(ScreenTarget.LOCK),
        )

    def get_rotation_interval(self) -> int:
        """Rotation interval in minutes, never below one."""
        try:
            return max(1, int(self.get('rotation_interval', DEFAULT_ROTATION_INTERVAL)))
        except (TypeError, ValueError):
            return DEFAULT_ROTATION_INTERVAL

    def get_display_size(self) -> Optional[tuple]:
        width, height = self.get('display_width'), self.get('display_height')
        if width and height:
            return int(width), int(height)
        return None

    def get_output_dir(self) -> Path:
        output_dir = self.get('output_dir')
        return Path(output_dir) if output_dir else self.data_dir / 'wallpapers'

    def get_history_file(self) -> Path:
        return self.data_dir / '.wallpaper_rotator_history.json'
