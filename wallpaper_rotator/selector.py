from dataclasses import dataclass, replace
import random
from typing import Optional, Sequence

from .constants import RotationMode, ScreenTarget
from .models import WallpaperConfig

NO_INDEX = -1


@dataclass(frozen=True)
class RotationState:
    """Rotation mode plus the last applied index per screen target.

    Indices are relative to the target's filtered config subset. The state is
    never mutated; ``advanced`` returns a new object for the caller to persist.
    """
    mode: RotationMode = RotationMode.SEQUENTIAL
    home_index: int = NO_INDEX
    lock_index: int = NO_INDEX

    def index_for(self, target: ScreenTarget) -> int:
        return self.home_index if target == ScreenTarget.HOME else self.lock_index

    def advanced(self, target: ScreenTarget, index: int) -> 'RotationState':
        if target == ScreenTarget.HOME:
            return replace(self, home_index=index)
        return replace(self, lock_index=index)


@dataclass(frozen=True)
class Selection:
    config: WallpaperConfig
    index: Optional[int] = None   # None for random picks, nothing to persist


def select_config(configs: Sequence[WallpaperConfig], mode: RotationMode, prior_index: int = NO_INDEX,
                  rng: Optional[random.Random] = None) -> Optional[Selection]:
    """Pick the next config for one screen target.

    Args:
        configs: Configs eligible for the target, in stored order
        mode: Sequential or random rotation
        prior_index: Last index applied for the target, or -1 if never set
        rng: Random generator for random mode; the module generator if None

    Returns:
        The selection, or None when there is nothing to choose from.
    """
    if not configs:
        return None

    if mode == RotationMode.RANDOM:
        return Selection((rng or random).choice(configs))

    # Python's modulo keeps the result in range even for a stale or negative index
    next_index = (prior_index + 1) % len(configs)
    return Selection(configs[next_index], next_index)
