from enum import Enum, auto


SUPPORTED_FORMATS = {'.jpg', '.jpeg', '.png', '.bmp', '.webp'}

DEFAULT_ROTATION_INTERVAL = 60      # minutes
DEFAULT_APPLY_ATTEMPTS = 3
DEFAULT_DISPLAY_SIZE = (1920, 1080)
HISTORY_LIMIT = 100


class ScreenTarget(Enum):
    """Surface a wallpaper is applied to."""
    HOME = auto()
    LOCK = auto()

    @property
    def key(self) -> str:
        """Short name used in persisted setting keys ("home", "lock")."""
        return self.name.lower()

    @property
    def label(self) -> str:
        return "Home Screen" if self == ScreenTarget.HOME else "Lock Screen"


class RotationMode(Enum):
    """Policy for choosing the next configured image."""
    SEQUENTIAL = 'sequential'   # cyclic, remembers the last index per target
    RANDOM = 'random'           # stateless, uniform

    @classmethod
    def from_string(cls, mode_str: str) -> 'RotationMode':
        """Convert string to RotationMode enum value."""
        mode_map = {mode.value: mode for mode in cls}
        mode_str = (mode_str or '').lower()
        if mode_str not in mode_map:
            raise ValueError(f"Invalid rotation mode: {mode_str}. Must be one of: {', '.join(mode_map.keys())}")
        return mode_map[mode_str]


class ChangeSource(Enum):
    """Source of the wallpaper change."""
    MANUAL = auto()      # Changed via command line
    AUTOMATED = auto()   # Changed via scheduled task or interval tick
    LOGON = auto()       # Changed on logon/unlock trigger
    UNKNOWN = auto()     # Legacy entries or unknown source


class RotatorState(Enum):
    IDLE = auto()
    RUNNING = auto()


class RotationStatus(Enum):
    """Overall outcome of one rotation run."""
    SUCCESS = auto()
    PARTIAL_FAILURE = auto()   # at least one target applied, at least one failed
    FAILURE = auto()           # every attempted target failed


class TargetStatus(Enum):
    APPLIED = auto()
    FAILED = auto()
    SKIPPED = auto()
