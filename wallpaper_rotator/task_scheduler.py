#!/usr/bin/env python3
import platform
import shlex
import subprocess
import sys
from typing import List, Optional

from .logger import setup_logger

logger = setup_logger('wallpaper_rotator.task_scheduler')

TASK_NAME = 'RotateWallpaper'
LOGON_TASK_NAME = 'RotateWallpaperLogon'
CRON_MARKER = '# wallpaper_rotator'
# Steps that divide an hour or a day evenly, so cron fires at a constant interval
CRON_MINUTE_STEPS = (1, 2, 3, 4, 5, 6, 10, 12, 15, 20, 30)
CRON_HOUR_STEPS = (1, 2, 3, 4, 6, 8, 12, 24)


class TaskScheduler:
    """Handles creation and management of OS-scheduled wallpaper rotation tasks."""

    def __init__(self, python_executable: Optional[str] = None):
        self.system = platform.system().lower()
        self.python_executable = python_executable or sys.executable

    def rotate_command(self, config_file: str, source: str = 'automated') -> List[str]:
        return [self.python_executable, '-m', 'wallpaper_rotator', '--rotate',
                '--config', str(config_file), '--source', source]

    def check_existing_task(self) -> bool:
        """Check if a wallpaper rotation task already exists.

        Returns:
            bool: True if a task exists, False otherwise
        """
        if self.system == 'windows':
            try:
                result = subprocess.run(['schtasks', '/query', '/tn', TASK_NAME],
                                        capture_output=True, text=True)
                return result.returncode == 0
            except OSError:
                return False
        elif self.system in ['linux', 'darwin']:  # darwin is macOS
            try:
                result = subprocess.run(['crontab', '-l'], capture_output=True, text=True)
                return CRON_MARKER in result.stdout
            except OSError:
                return False
        return False

    def create_task(self, config_file: str, interval_minutes: int, on_logon: bool = False) -> None:
        """Create a scheduled task for wallpaper rotation.

        Args:
            config_file: Configuration file the scheduled run should use
            interval_minutes: Minutes between rotations (at least 1)
            on_logon: Also rotate when the user logs on or the machine boots

        Raises:
            RuntimeError: If task creation fails
            NotImplementedError: If OS is not supported
        """
        interval_minutes = max(1, int(interval_minutes))
        if self.system == 'windows':
            self._create_windows_task(config_file, interval_minutes, on_logon)
        elif self.system in ['linux', 'darwin']:  # darwin is macOS
            self._create_unix_task(config_file, interval_minutes, on_logon)
        else:
            raise NotImplementedError(f"Task scheduling not supported on {self.system}")
        logger.info(f"Scheduled wallpaper rotation every {interval_minutes} minute(s)"
                    f"{' and at logon' if on_logon else ''}")

    def remove_task(self) -> None:
        """Remove the scheduled wallpaper rotation task.

        Raises:
            RuntimeError: If task removal fails
            NotImplementedError: If OS is not supported
        """
        if self.system == 'windows':
            self._remove_windows_task()
        elif self.system in ['linux', 'darwin']:  # darwin is macOS
            self._remove_unix_task()
        else:
            raise NotImplementedError(f"Task scheduling not supported on {self.system}")
        logger.info("Removed scheduled wallpaper rotation")

    @staticmethod
    def cron_interval(interval_minutes: int) -> int:
        """Shortest interval cron can repeat evenly that is not shorter than the one asked for."""
        interval_minutes = max(1, int(interval_minutes))
        for step in CRON_MINUTE_STEPS:
            if interval_minutes <= step:
                return step
        for step in CRON_HOUR_STEPS:
            if interval_minutes <= step * 60:
                return step * 60
        return -(-interval_minutes // 1440) * 1440

    @classmethod
    def cron_schedule(cls, interval_minutes: int) -> str:
        """Cron time fields for an interval in minutes, rounded up by ``cron_interval``."""
        interval = cls.cron_interval(interval_minutes)
        if interval < 60:
            return f"*/{interval} * * * *"
        if interval < 1440:
            return f"0 */{interval // 60} * * *"
        return f"0 0 */{interval // 1440} * *"

    def _create_windows_task(self, config_file: str, interval_minutes: int, on_logon: bool) -> None:
        """Create Windows scheduled tasks."""
        action = subprocess.list2cmdline(self.rotate_command(config_file))
        cmd = [
            'schtasks', '/create', '/tn', TASK_NAME,
            '/tr', action, '/sc', 'minute', '/mo', str(interval_minutes),
            '/f'  # Force creation (overwrite if exists)
        ]
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"Failed to create task: {result.stderr}")

        if on_logon:
            logon_action = subprocess.list2cmdline(self.rotate_command(config_file, source='logon'))
            result = subprocess.run(['schtasks', '/create', '/tn', LOGON_TASK_NAME,
                                     '/tr', logon_action, '/sc', 'onlogon', '/f'],
                                    capture_output=True, text=True)
            if result.returncode != 0:
                raise RuntimeError(f"Failed to create logon task: {result.stderr}")
        else:
            subprocess.run(['schtasks', '/delete', '/tn', LOGON_TASK_NAME, '/f'],
                           capture_output=True, text=True)

    def _read_crontab(self) -> List[str]:
        result = subprocess.run(['crontab', '-l'], capture_output=True, text=True)
        current_crontab = result.stdout if result.returncode == 0 else ""
        # Drop any existing wallpaper rotation entries
        return [line for line in current_crontab.splitlines() if CRON_MARKER not in line]

    def _write_crontab(self, lines: List[str], action: str) -> None:
        new_crontab = '\n'.join(lines) + '\n'
        result = subprocess.run(['crontab', '-'], input=new_crontab, text=True, capture_output=True)
        if result.returncode != 0:
            raise RuntimeError(f"Failed to {action} cron job: {result.stderr}")

    def _create_unix_task(self, config_file: str, interval_minutes: int, on_logon: bool) -> None:
        """Create a Unix cron job (Linux or macOS)."""
        effective = self.cron_interval(interval_minutes)
        if effective != interval_minutes:
            logger.warning(f"cron cannot repeat every {interval_minutes} minute(s), "
                           f"rotating every {effective} minute(s) instead")
        lines = self._read_crontab()
        command = shlex.join(self.rotate_command(config_file))
        lines.append(f"{self.cron_schedule(interval_minutes)} {command} {CRON_MARKER}")
        if on_logon:
            logon_command = shlex.join(self.rotate_command(config_file, source='logon'))
            lines.append(f"@reboot {logon_command} {CRON_MARKER}")
        self._write_crontab(lines, 'create')

    def _remove_windows_task(self) -> None:
        """Remove the Windows scheduled tasks."""
        result = subprocess.run(['schtasks', '/delete', '/tn', TASK_NAME, '/f'],
                                capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"Failed to remove task: {result.stderr}")
        subprocess.run(['schtasks', '/delete', '/tn', LOGON_TASK_NAME, '/f'],
                       capture_output=True, text=True)

    def _remove_unix_task(self) -> None:
        """Remove the Unix cron job (Linux or macOS)."""
        self._write_crontab(self._read_crontab(), 'remove')
