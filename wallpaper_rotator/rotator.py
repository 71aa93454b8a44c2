#!/usr/bin/env python3
from dataclasses import dataclass, field
import random
import threading
from typing import List, Optional, Tuple

from .applier import WallpaperApplier
from .config import Config
from .constants import (DEFAULT_APPLY_ATTEMPTS, DEFAULT_DISPLAY_SIZE, ChangeSource, RotationStatus, RotatorState,
                        ScreenTarget, TargetStatus)
from .display import get_display_size
from .errors import AccessError, ApplyError, DecodeError
from .history import WallpaperHistory
from .image_source import FileImageSource
from .logger import setup_logger
from .selector import select_config
from .sinks import get_platform_sink

logger = setup_logger('wallpaper_rotator.rotator')


@dataclass
class TargetOutcome:
    target: ScreenTarget
    status: TargetStatus
    config_id: Optional[int] = None
    error: Optional[Exception] = None


@dataclass
class RotationResult:
    """Per-target outcomes of one rotation run."""
    outcomes: List[TargetOutcome] = field(default_factory=list)

    @property
    def applied(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if o.status == TargetStatus.APPLIED]

    @property
    def failed(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if o.status == TargetStatus.FAILED]

    @property
    def status(self) -> RotationStatus:
        if not self.failed:
            return RotationStatus.SUCCESS
        if self.applied:
            return RotationStatus.PARTIAL_FAILURE
        return RotationStatus.FAILURE

    @property
    def succeeded(self) -> bool:
        return self.status == RotationStatus.SUCCESS

    @property
    def should_retry(self) -> bool:
        """Whether the scheduler should run this trigger again.

        Partial failures are retried. Full failures only when every error was
        the platform rejecting the image, since missing or corrupt images will
        not fix themselves.
        """
        if self.status == RotationStatus.PARTIAL_FAILURE:
            return True
        if self.status == RotationStatus.FAILURE:
            return all(isinstance(o.error, ApplyError) for o in self.failed)
        return False


class WallpaperRotator:
    """Runs one rotation: pick the next config per screen target and apply it.

    Runs are serialized through the config file lock, so triggers from
    separate processes never race on the stored indices or the config list.
    """

    def __init__(self, config: Config, applier: WallpaperApplier,
                 history: Optional[WallpaperHistory] = None,
                 rng: Optional[random.Random] = None,
                 display_size: Optional[Tuple[int, int]] = None):
        self.config = config
        self.applier = applier
        self.history = history
        self.rng = rng
        self.display_size = display_size
        self.state = RotatorState.IDLE
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, display_size: Optional[Tuple[int, int]] = None) -> 'WallpaperRotator':
        """Build a rotator wired to local files and this platform's wallpaper setter."""
        applier = WallpaperApplier(
            FileImageSource(),
            get_platform_sink(config.get_output_dir()),
            max_attempts=int(config.get('apply_retry_attempts', DEFAULT_APPLY_ATTEMPTS)),
        )
        history = WallpaperHistory(config.get_history_file())
        return cls(config, applier, history=history, display_size=display_size or get_display_size(config))

    def run_rotation(self, lock_only: bool = False, source: ChangeSource = ChangeSource.MANUAL) -> RotationResult:
        """Rotate the home and lock screen wallpapers, or only the lock screen.

        Args:
            lock_only: Only rotate the lock screen
            source: What triggered the rotation, recorded in the history

        Raises:
            filelock.Timeout: If another process held the config lock for too long
        """
        with self._lock, self.config.locked():
            self.state = RotatorState.RUNNING
            try:
                result = self._rotate(lock_only, source)
            finally:
                self.state = RotatorState.IDLE

        if result.failed:
            logger.warning(f"Rotation finished with status {result.status.name} "
                           f"({len(result.applied)} applied, {len(result.failed)} failed)")
        else:
            logger.info(f"Rotation finished: {len(result.applied)} screen(s) changed")
        return result

    def _rotate(self, lock_only: bool, source: ChangeSource) -> RotationResult:
        result = RotationResult()
        configs = self.config.get_configs()
        if not configs:
            logger.warning("No wallpaper configurations found")
            return result

        state = self.config.get_rotation_state()
        width, height = self._resolve_display_size()
        targets = [ScreenTarget.LOCK] if lock_only else [ScreenTarget.HOME, ScreenTarget.LOCK]

        for target in targets:
            eligible = [config for config in configs if config.targets(target)]
            if not eligible:
                logger.debug(f"No wallpapers configured for the {target.label.lower()}")
                continue
            if not self.applier.sink.supports(target):
                logger.warning(f"{target.label} wallpapers are not supported on this platform, skipping")
                result.outcomes.append(TargetOutcome(target, TargetStatus.SKIPPED))
                continue

            selection = select_config(eligible, state.mode, state.index_for(target), self.rng)
            config = selection.config
            logger.info(f"Selected next {target.label.lower()} wallpaper: {config.image_ref}")

            try:
                self.applier.apply(config, target, width, height)
            except AccessError as e:
                logger.error(f"Cannot access image for config {config.id}: {e}")
                result.outcomes.append(TargetOutcome(target, TargetStatus.FAILED, config.id, e))
                continue
            except DecodeError as e:
                logger.error(f"Cannot decode image for config {config.id}, it should be replaced or removed: {e}")
                result.outcomes.append(TargetOutcome(target, TargetStatus.FAILED, config.id, e))
                continue
            except ApplyError as e:
                logger.error(f"Giving up on {target.label.lower()} after {self.applier.max_attempts} attempt(s): {e}")
                result.outcomes.append(TargetOutcome(target, TargetStatus.FAILED, config.id, e))
                continue
            except Exception as e:
                logger.exception(f"Unexpected error applying config {config.id} to {target.label.lower()}")
                result.outcomes.append(TargetOutcome(target, TargetStatus.FAILED, config.id, e))
                continue

            # Only advance after the wallpaper was actually applied
            if selection.index is not None:
                state = state.advanced(target, selection.index)
                self.config.save_rotation_state(state)
            if self.history is not None:
                self.history.add(target, config.id, config.image_ref, source)
            result.outcomes.append(TargetOutcome(target, TargetStatus.APPLIED, config.id))

        return result

    def _resolve_display_size(self) -> Tuple[int, int]:
        if self.display_size:
            return self.display_size
        return self.config.get_display_size() or DEFAULT_DISPLAY_SIZE
