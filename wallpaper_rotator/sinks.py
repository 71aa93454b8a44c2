#!/usr/bin/env python3
"""Platform wallpaper sinks.

Each sink writes the final image to a file in its output directory and hands
that file to the operating system's wallpaper setter. The rest of the
pipeline only calls ``apply_to_target``.
"""
from pathlib import Path
import platform
import subprocess
import time

from PIL import Image

from .constants import ScreenTarget
from .errors import ApplyError, PermissionDeniedError
from .logger import setup_logger
from .utils import check_linux_dependencies, check_powershell_execution_policy

logger = setup_logger('wallpaper_rotator.sinks')

_DENIED_MARKERS = ('access is denied', 'permission denied', 'unauthorizedaccess', 'not authorized')


class WallpaperSink:
    """Accepts a final image and applies it to a screen target."""

    def supports(self, target: ScreenTarget) -> bool:
        return True

    def apply_to_target(self, image: Image.Image, target: ScreenTarget) -> None:
        """Apply the image to the given screen target.

        Raises:
            ApplyError: If the platform rejected the image
            PermissionDeniedError: If the platform refused for lack of permission
        """
        raise NotImplementedError


class FileWallpaperSink(WallpaperSink):
    """Base class for sinks that set the wallpaper from an image file."""

    def __init__(self, output_dir):
        self.output_dir = Path(output_dir)

    def apply_to_target(self, image: Image.Image, target: ScreenTarget) -> None:
        if not self.supports(target):
            raise ApplyError(f"{target.label} wallpapers are not supported on {platform.system()}")
        path = self.write_image(image, target)
        try:
            self.set_from_file(path, target)
        except Exception:
            # The previous file is still in use, only drop the rejected one
            self._remove(path)
            raise
        self.remove_older_images(target, keep=path)
        logger.info(f"Successfully set {target.label.lower()} wallpaper from {path}")

    def write_image(self, image: Image.Image, target: ScreenTarget) -> Path:
        """Save the image under a fresh name for the target.

        A new file name per change makes desktops that cache by path or URI
        pick up the change.
        """
        stamp = int(time.time() * 1000)
        path = self.output_dir / f"{target.key}-{stamp}.png"
        while path.exists():
            stamp += 1
            path = self.output_dir / f"{target.key}-{stamp}.png"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            image.save(path, format='PNG')
        except PermissionError as e:
            raise PermissionDeniedError(f"Cannot write wallpaper file {path}: {e}") from e
        except OSError as e:
            raise ApplyError(f"Cannot write wallpaper file {path}: {e}") from e
        return path

    def remove_older_images(self, target: ScreenTarget, keep: Path) -> None:
        """Delete the files of earlier wallpapers for the target once ``keep`` is in use."""
        for old in self.output_dir.glob(f"{target.key}-*.png"):
            if old != keep:
                self._remove(old)

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove wallpaper file {path}: {e}")

    def set_from_file(self, path: Path, target: ScreenTarget) -> None:
        raise NotImplementedError

    @staticmethod
    def run_command(cmd, description: str, **kwargs) -> subprocess.CompletedProcess:
        """Run a setter command, translating failures into pipeline errors."""
        try:
            return subprocess.run(cmd, check=True, capture_output=True, text=True, **kwargs)
        except FileNotFoundError as e:
            raise ApplyError(f"{description} failed: {cmd[0]} is not available") from e
        except subprocess.CalledProcessError as e:
            output = f"{e.stderr or ''}{e.stdout or ''}".strip()
            if any(marker in output.lower() for marker in _DENIED_MARKERS):
                raise PermissionDeniedError(f"{description} was denied: {output}") from e
            raise ApplyError(f"{description} failed: {output or e}") from e


class WindowsWallpaperSink(FileWallpaperSink):
    """Sets the desktop via SystemParametersInfo and the lock screen via PersonalizationCSP."""

    def set_from_file(self, path: Path, target: ScreenTarget) -> None:
        check_powershell_execution_policy()
        abs_path = str(path.resolve())
        if target == ScreenTarget.HOME:
            self.run_command(['powershell', '-Command', self._desktop_command(abs_path)],
                             "Setting Windows wallpaper")
        else:
            self.run_command(['powershell', '-Command', self._lock_screen_command(abs_path)],
                             "Setting Windows lock screen")

    @staticmethod
    def _desktop_command(abs_path: str) -> str:
        # WallpaperStyle 10 = Fill; the image already matches the screen
        return f'''
    Add-Type @"
    using System;
    using System.Runtime.InteropServices;
    public class Wallpaper {{
        [DllImport("user32.dll", CharSet=CharSet.Auto)]
        public static extern int SystemParametersInfo(int uAction, int uParam, string lpvParam, int fuWinIni);
    }}
"@
    Set-ItemProperty -Path 'HKCU:\\Control Panel\\Desktop' -Name WallpaperStyle -Value 10
    Set-ItemProperty -Path 'HKCU:\\Control Panel\\Desktop' -Name TileWallpaper -Value 0
    $SPI_SETDESKWALLPAPER = 0x0014
    $fWinIni = 0x01 -bor 0x02
    if ([Wallpaper]::SystemParametersInfo($SPI_SETDESKWALLPAPER, 0, "{abs_path}", $fWinIni) -eq 0) {{
        throw "SystemParametersInfo failed"
    }}
    '''

    @staticmethod
    def _lock_screen_command(abs_path: str) -> str:
        return f'''
    $ErrorActionPreference = "Stop"
    $LockScreenPath = "HKLM:\\SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\PersonalizationCSP"
    if (!(Test-Path $LockScreenPath)) {{
        New-Item -Path $LockScreenPath -Force | Out-Null
    }}
    Set-ItemProperty -Path $LockScreenPath -Name "LockScreenImagePath" -Value "{abs_path}" -Type String -Force
    Set-ItemProperty -Path $LockScreenPath -Name "LockScreenImageUrl" -Value "{abs_path}" -Type String -Force
    Set-ItemProperty -Path $LockScreenPath -Name "LockScreenImageStatus" -Value 1 -Type DWord -Force
    '''


class MacOSWallpaperSink(FileWallpaperSink):
    """Sets the desktop picture through Finder. macOS has no separate lock screen image."""

    def supports(self, target: ScreenTarget) -> bool:
        return target == ScreenTarget.HOME

    def set_from_file(self, path: Path, target: ScreenTarget) -> None:
        abs_path = str(path.resolve())
        script = f'''
    tell application "Finder"
        set desktop picture to POSIX file "{abs_path}"
    end tell
    '''
        self.run_command(['osascript', '-e', script], "Setting macOS desktop picture")


class LinuxWallpaperSink(FileWallpaperSink):
    """Sets wallpapers with gsettings (GNOME), falling back to feh for the desktop."""

    def __init__(self, output_dir):
        super().__init__(output_dir)
        self._checked_dependencies = False

    def set_from_file(self, path: Path, target: ScreenTarget) -> None:
        if not self._checked_dependencies:
            check_linux_dependencies()
            self._checked_dependencies = True

        uri = path.resolve().as_uri()
        if target == ScreenTarget.LOCK:
            self.run_command(['gsettings', 'set', 'org.gnome.desktop.screensaver', 'picture-uri', uri],
                             "Setting GNOME lock screen")
            return

        try:
            self.run_command(['gsettings', 'set', 'org.gnome.desktop.background', 'picture-options', 'zoom'],
                             "Setting GNOME picture options")
            self.run_command(['gsettings', 'set', 'org.gnome.desktop.background', 'picture-uri', uri],
                             "Setting GNOME wallpaper")
        except ApplyError as e:
            logger.warning(f"gsettings failed, trying feh: {e}")
        else:
            try:
                self.run_command(['gsettings', 'set', 'org.gnome.desktop.background', 'picture-uri-dark', uri],
                                 "Setting GNOME dark wallpaper")
            except ApplyError as e:
                # GNOME before 42 has no dark variant key
                logger.debug(f"Skipping dark wallpaper: {e}")
            return

        self.run_command(['feh', '--bg-fill', str(path.resolve())], "Setting wallpaper with feh")


def get_platform_sink(output_dir) -> WallpaperSink:
    """Return the wallpaper sink for the current operating system."""
    system = platform.system().lower()
    logger.debug(f"Detected operating system: {system}")
    if system == 'windows':
        return WindowsWallpaperSink(output_dir)
    if system == 'darwin':
        return MacOSWallpaperSink(output_dir)
    if system == 'linux':
        return LinuxWallpaperSink(output_dir)
    raise RuntimeError(f"Unsupported operating system: {system}")
