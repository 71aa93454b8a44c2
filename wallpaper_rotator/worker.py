#!/usr/bin/env python3
from concurrent.futures import Future, ThreadPoolExecutor
import threading
from typing import Dict, Optional

from .constants import ChangeSource
from .logger import setup_logger
from .rotator import RotationResult, WallpaperRotator

logger = setup_logger('wallpaper_rotator.worker')


class RotationWorker:
    """Runs rotations off the calling thread, one at a time.

    A trigger that arrives while an identical request is still waiting in the
    queue is merged into that request and gets the same future back.
    """

    def __init__(self, rotator: WallpaperRotator):
        self.rotator = rotator
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='wallpaper-rotation')
        self._pending: Dict[bool, Future] = {}
        self._lock = threading.Lock()

    def trigger(self, lock_only: bool = False, source: ChangeSource = ChangeSource.MANUAL) -> Future:
        """Queue a rotation and return a future resolving to its RotationResult."""
        with self._lock:
            pending = self._pending.get(lock_only)
            if pending is not None:
                logger.debug("Rotation already queued, coalescing trigger")
                return pending
            future = self._executor.submit(self._run, lock_only, source)
            self._pending[lock_only] = future
            return future

    def _run(self, lock_only: bool, source: ChangeSource) -> RotationResult:
        with self._lock:
            self._pending.pop(lock_only, None)
        return self.rotator.run_rotation(lock_only=lock_only, source=source)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class IntervalScheduler:
    """Triggers a rotation every ``interval_minutes`` from a background thread."""

    def __init__(self, worker: RotationWorker, interval_minutes: int, run_immediately: bool = False):
        self.worker = worker
        self.interval_seconds = max(1, int(interval_minutes)) * 60
        self.run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name='wallpaper-rotation-timer', daemon=True)
        self._thread.start()
        logger.info(f"Rotating wallpapers every {self.interval_seconds // 60} minute(s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        if self.run_immediately:
            self._tick()
        while not self._stop_event.wait(self.interval_seconds):
            self._tick()

    def _tick(self) -> None:
        future = self.worker.trigger(source=ChangeSource.AUTOMATED)
        future.add_done_callback(self._report)

    @staticmethod
    def _report(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Scheduled rotation crashed: {error}")
        elif future.result().should_retry:
            logger.warning("Scheduled rotation failed, it will be retried on the next tick")
