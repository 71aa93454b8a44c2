import json
import os
import time

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any

from .logger import setup_logger
from .constants import HISTORY_LIMIT, ChangeSource, ScreenTarget

logger = setup_logger('wallpaper_rotator.history')


@dataclass
class WallpaperChange:
    """Represents a single applied wallpaper."""
    config_id: int
    image_ref: str
    timestamp: float
    target: ScreenTarget
    source: ChangeSource = ChangeSource.UNKNOWN

    @classmethod
    def from_dict(cls, data: Dict[str, Any], target: ScreenTarget) -> 'WallpaperChange':
        """Create a WallpaperChange from a dictionary.

        Args:
            data: Dictionary containing config_id, image_ref, timestamp and source
            target: Screen target of the history list the entry was stored in
        """
        return cls(
            config_id=int(data.get('config_id', 0)),
            image_ref=data['image_ref'],
            timestamp=float(data['timestamp']),
            target=target,
            source=ChangeSource[data.get('source', 'UNKNOWN')],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage.

        Note: The target is not stored as it can be inferred from context.
        """
        return {
            'config_id': self.config_id,
            'image_ref': self.image_ref,
            'timestamp': self.timestamp,
            'source': self.source.name,
        }

    def format_history_entry(self) -> str:
        """Format the change as a history entry string.

        Returns:
            A formatted string like "2024-03-14 15:30:00 - [Home Screen] image.jpg (Automated)"
        """
        timestamp = datetime.fromtimestamp(self.timestamp)
        source_str = f" ({self.source.name.title()})" if self.source != ChangeSource.UNKNOWN else ""
        return (f"{timestamp.strftime('%Y-%m-%d %H:%M:%S')} - [{self.target.label}] "
                f"{Path(self.image_ref).name}{source_str}")


class WallpaperHistory:
    """Recent wallpaper changes per screen target, persisted as JSON."""

    _KEYS = {
        ScreenTarget.HOME: 'home_history',
        ScreenTarget.LOCK: 'lock_history',
    }

    def __init__(self, history_file):
        """Initialize the history.

        Args:
            history_file: Path to the history file
        """
        self.history_file = str(history_file)
        self._history: Dict[ScreenTarget, List[WallpaperChange]] = self._load()

    def _load(self) -> Dict[ScreenTarget, List[WallpaperChange]]:
        """Load the history file if it exists, otherwise start empty."""
        history = {target: [] for target in ScreenTarget}
        if not os.path.exists(self.history_file):
            return history
        try:
            with open(self.history_file, 'r') as f:
                data = json.load(f)
            for target, key in self._KEYS.items():
                entries = data.get(key, [])
                if isinstance(entries, list):
                    history[target] = [WallpaperChange.from_dict(entry, target) for entry in entries]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Invalid history file {self.history_file}: {str(e)}. Starting a new history.")
            history = {target: [] for target in ScreenTarget}
        return history

    def save(self) -> None:
        """Save the current history to file."""
        try:
            data = {
                key: [change.to_dict() for change in self._history[target]]
                for target, key in self._KEYS.items()
            }
            os.makedirs(os.path.dirname(os.path.abspath(self.history_file)), exist_ok=True)
            with open(self.history_file, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save history file: {str(e)}")

    def history(self, target: ScreenTarget) -> List[WallpaperChange]:
        return self._history[target]

    def last_change(self, target: ScreenTarget):
        """Get the most recent change for a target, or None if there is no history."""
        if not self._history[target]:
            return None
        return max(self._history[target], key=lambda x: x.timestamp)

    def add(self, target: ScreenTarget, config_id: int, image_ref: str, source: ChangeSource) -> WallpaperChange:
        """Record an applied wallpaper, keeping only the most recent entries."""
        # Another process may have appended since this history was loaded
        self._history = self._load()
        change = WallpaperChange(
            config_id=config_id,
            image_ref=image_ref,
            timestamp=time.time(),
            target=target,
            source=source,
        )
        self._history[target].append(change)
        self._history[target] = self._history[target][-HISTORY_LIMIT:]
        self.save()
        return change

    def get_combined_history(self) -> List[WallpaperChange]:
        """Get history of both targets, most recent first."""
        all_history = []
        for changes in self._history.values():
            all_history.extend(changes)
        return sorted(all_history, key=lambda x: x.timestamp, reverse=True)
