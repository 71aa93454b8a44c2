import pytest

from conftest import MemoryImageSource, RecordingSink, encode_image
from wallpaper_rotator import applier as applier_module
from wallpaper_rotator.applier import ImageScope, WallpaperApplier
from wallpaper_rotator.constants import ScreenTarget
from wallpaper_rotator.errors import AccessError, ApplyError, DecodeError, PermissionDeniedError
from wallpaper_rotator.models import CropRect, WallpaperConfig


class RecordingScopes:
    def __init__(self):
        self.scopes = []

    def __call__(self):
        scope = ImageScope()
        self.scopes.append(scope)
        return scope


def test_apply_submits_one_image_at_display_size(applier, sink, image_source):
    applier.apply(WallpaperConfig('a.png', id=1), ScreenTarget.HOME, 32, 24)

    assert sink.calls == [((32, 24), ScreenTarget.HOME)]
    assert sink.colors == [(255, 0, 0)]
    assert image_source.opened == ['a.png']


def test_apply_uses_crop_and_rotation(sink):
    source = MemoryImageSource({'tall.png': encode_image((20, 40))})
    applier = WallpaperApplier(source, sink, sleep=lambda seconds: None)

    applier.apply(WallpaperConfig('tall.png', CropRect(0.0, 0.0, 1.0, 0.5), 90, id=1), ScreenTarget.LOCK, 50, 10)

    assert sink.calls == [((50, 10), ScreenTarget.LOCK)]


def test_apply_decodes_with_sample_size(monkeypatch, sink):
    source = MemoryImageSource({'big.png': encode_image((800, 600))})
    sample_sizes = []
    real_decode = applier_module.decode_sampled

    def recording_decode(stream, sample_size=1):
        sample_sizes.append(sample_size)
        return real_decode(stream, sample_size)

    monkeypatch.setattr(applier_module, 'decode_sampled', recording_decode)
    WallpaperApplier(source, sink).apply(WallpaperConfig('big.png', id=1), ScreenTarget.HOME, 200, 150)

    assert sample_sizes == [4]
    assert sink.calls == [((200, 150), ScreenTarget.HOME)]


def test_missing_image_raises_access_error(applier, sink):
    with pytest.raises(AccessError):
        applier.apply(WallpaperConfig('missing.png', id=1), ScreenTarget.HOME, 32, 24)
    assert sink.calls == []


def test_corrupt_image_raises_decode_error(sink):
    source = MemoryImageSource({'broken.png': b'\x89PNG garbage'})
    applier = WallpaperApplier(source, sink)
    with pytest.raises(DecodeError):
        applier.apply(WallpaperConfig('broken.png', id=1), ScreenTarget.HOME, 32, 24)
    assert sink.attempts == 0


def test_apply_error_is_retried_with_backoff(image_source):
    sink = RecordingSink(failures=2, error=ApplyError("busy"))
    delays = []
    applier = WallpaperApplier(image_source, sink, max_attempts=3, backoff_seconds=0.5, sleep=delays.append)

    applier.apply(WallpaperConfig('a.png', id=1), ScreenTarget.HOME, 32, 24)

    assert sink.attempts == 3
    assert len(sink.calls) == 1
    assert delays == [0.5, 1.0]


def test_apply_error_surfaces_after_attempt_ceiling(image_source):
    sink = RecordingSink(failures=10, error=ApplyError("rejected"))
    applier = WallpaperApplier(image_source, sink, max_attempts=3, sleep=lambda seconds: None)

    with pytest.raises(ApplyError):
        applier.apply(WallpaperConfig('a.png', id=1), ScreenTarget.HOME, 32, 24)
    assert sink.attempts == 3
    assert sink.calls == []


def test_permission_denied_is_not_retried(image_source):
    sink = RecordingSink(failures=10, error=PermissionDeniedError("denied"))
    applier = WallpaperApplier(image_source, sink, max_attempts=3, sleep=lambda seconds: None)

    with pytest.raises(AccessError):
        applier.apply(WallpaperConfig('a.png', id=1), ScreenTarget.LOCK, 32, 24)
    assert sink.attempts == 1


@pytest.mark.parametrize("sink_error", [ApplyError("rejected"), PermissionDeniedError("denied"), RuntimeError("boom")])
def test_buffers_released_when_sink_fails(image_source, sink_error):
    scopes = RecordingScopes()
    sink = RecordingSink(failures=10, error=sink_error)
    applier = WallpaperApplier(image_source, sink, sleep=lambda seconds: None, scope_factory=scopes)

    with pytest.raises(type(sink_error)):
        applier.apply(WallpaperConfig('b.png', id=1), ScreenTarget.HOME, 32, 24)

    assert len(scopes.scopes) == 1
    assert scopes.scopes[0].released
    assert scopes.scopes[0].tracked == []


def test_buffers_released_on_success_and_decode_failure(sink):
    scopes = RecordingScopes()
    source = MemoryImageSource({'ok.png': encode_image(), 'broken.png': b'garbage'})
    applier = WallpaperApplier(source, sink, scope_factory=scopes)

    applier.apply(WallpaperConfig('ok.png', id=1), ScreenTarget.HOME, 32, 24)
    with pytest.raises(DecodeError):
        applier.apply(WallpaperConfig('broken.png', id=2), ScreenTarget.HOME, 32, 24)

    assert [scope.released for scope in scopes.scopes] == [True, True]
    assert all(scope.tracked == [] for scope in scopes.scopes)


def test_image_scope_closes_tracked_images():
    closed = []

    class TrackedImage:
        def __init__(self, name):
            self.name = name

        def close(self):
            closed.append(self.name)

    with ImageScope() as scope:
        scope.track(TrackedImage('decoded'))
        scope.track(TrackedImage('final'))
        early = scope.track(TrackedImage('early'))
        scope.release(early)

    assert sorted(closed) == ['decoded', 'early', 'final']
    assert scope.tracked == []
    assert scope.released
