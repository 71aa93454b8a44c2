#!/usr/bin/env python3
import os
from pathlib import Path
import shutil
import subprocess
import sys

from .logger import setup_logger

logger = setup_logger('wallpaper_rotator.utils')


def get_default_media_folder():
    """Get the default media folder for the current OS.

    Returns:
        Path: Path to the default media folder for the current OS.
        Common locations:
        - Windows: %USERPROFILE%\\Pictures
        - macOS: ~/Pictures
        - Linux: ~/Pictures
    """
    if sys.platform.lower().startswith('win'):
        return Path(os.path.expandvars('%USERPROFILE%')) / 'Pictures'
    return Path.home() / 'Pictures'


def check_powershell_execution_policy():
    """Warn if the PowerShell execution policy might block the setter script."""
    try:
        result = subprocess.run(['powershell', '-Command', 'Get-ExecutionPolicy'],
                                capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"Could not query PowerShell execution policy: {e}")
        return
    policy = result.stdout.strip().lower()
    if policy in ['restricted', 'allrestricted']:
        logger.warning("PowerShell execution policy is restricted. Setting the wallpaper might not work. "
                       "Consider running: Set-ExecutionPolicy -ExecutionPolicy RemoteSigned -Scope CurrentUser")


def check_linux_dependencies():
    """Warn about missing Linux wallpaper tools."""
    missing_tools = [tool for tool in ('gsettings', 'feh') if shutil.which(tool) is None]
    if missing_tools:
        logger.warning(f"The following tools are not installed: {', '.join(missing_tools)}. "
                       "You may need to install them to set wallpapers on this system.")
    return missing_tools
