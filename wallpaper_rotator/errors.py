class WallpaperError(Exception):
    """Base class for failures in the decode, transform and apply pipeline."""


class AccessError(WallpaperError):
    """The source image cannot be read (missing file, permission revoked). Not retried."""


class PermissionDeniedError(AccessError):
    """The platform refused to change the wallpaper for lack of permission."""


class DecodeError(WallpaperError):
    """The image data is corrupt, unsupported, or yields an empty region."""


class ApplyError(WallpaperError):
    """The platform wallpaper service rejected the image. Retried with backoff."""
