from dataclasses import dataclass, field
import time
from typing import Any, Dict, List

from .constants import ScreenTarget


@dataclass(frozen=True)
class CropRect:
    """Normalized crop window in source-image space (0-1, origin top-left)."""
    left: float = 0.0
    top: float = 0.0
    right: float = 1.0
    bottom: float = 1.0

    @classmethod
    def full(cls) -> 'CropRect':
        return cls(0.0, 0.0, 1.0, 1.0)

    @classmethod
    def from_list(cls, values: List[float]) -> 'CropRect':
        left, top, right, bottom = (float(v) for v in values)
        return cls(left, top, right, bottom)

    def to_list(self) -> List[float]:
        return [self.left, self.top, self.right, self.bottom]

    def is_valid(self) -> bool:
        """Check the rect lies in the unit square and has positive area."""
        return (0.0 <= self.left < self.right <= 1.0
                and 0.0 <= self.top < self.bottom <= 1.0)


@dataclass
class WallpaperConfig:
    """One configured wallpaper: an image reference plus how to crop and rotate it."""
    image_ref: str
    crop_rect: CropRect = field(default_factory=CropRect.full)
    rotation_degrees: float = 0.0
    targets_home: bool = True
    targets_lock: bool = False
    id: int = field(default_factory=lambda: int(time.time() * 1000))

    def targets(self, target: ScreenTarget) -> bool:
        """Check whether this config is eligible for the given screen target."""
        if target == ScreenTarget.HOME:
            return self.targets_home
        return self.targets_lock

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WallpaperConfig':
        """Create a WallpaperConfig from its stored dictionary form.

        Args:
            data: Dictionary with image_ref, crop_rect, rotation, for_home_screen,
                for_lock_screen and id
        """
        crop = data.get('crop_rect')
        return cls(
            image_ref=data['image_ref'],
            crop_rect=CropRect.from_list(crop) if crop is not None else CropRect.full(),
            rotation_degrees=float(data.get('rotation', 0.0)),
            targets_home=bool(data.get('for_home_screen', True)),
            targets_lock=bool(data.get('for_lock_screen', False)),
            id=int(data['id']),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            'image_ref': self.image_ref,
            'crop_rect': self.crop_rect.to_list(),
            'rotation': self.rotation_degrees,
            'for_home_screen': self.targets_home,
            'for_lock_screen': self.targets_lock,
            'id': self.id,
        }

    def describe(self) -> str:
        """One-line summary used by the command line listing."""
        screens = [t.label for t in ScreenTarget if self.targets(t)] or ["No screen"]
        crop = ', '.join(f"{v:.2f}" for v in self.crop_rect.to_list())
        return f"{self.id}  {self.image_ref}  [{' + '.join(screens)}] crop=({crop}) rotation={self.rotation_degrees:g}"
