from .applier import WallpaperApplier
from .config import Config
from .constants import ChangeSource, RotationMode, RotationStatus, ScreenTarget
from .errors import AccessError, ApplyError, DecodeError, PermissionDeniedError, WallpaperError
from .models import CropRect, WallpaperConfig
from .rotator import RotationResult, WallpaperRotator
from .selector import RotationState, Selection, select_config
from .task_scheduler import TaskScheduler
from .worker import IntervalScheduler, RotationWorker

__all__ = ['WallpaperApplier', 'Config', 'ChangeSource', 'RotationMode', 'RotationStatus', 'ScreenTarget',
           'AccessError', 'ApplyError', 'DecodeError', 'PermissionDeniedError', 'WallpaperError',
           'CropRect', 'WallpaperConfig', 'RotationResult', 'WallpaperRotator', 'RotationState', 'Selection',
           'select_config', 'TaskScheduler', 'IntervalScheduler', 'RotationWorker']
