import random
import threading

import pytest
from filelock import Timeout

from conftest import MemoryImageSource, RecordingSink
from wallpaper_rotator.applier import WallpaperApplier
from wallpaper_rotator.config import Config
from wallpaper_rotator.constants import (ChangeSource, RotationMode, RotationStatus, RotatorState,
                                         ScreenTarget, TargetStatus)
from wallpaper_rotator.errors import ApplyError
from wallpaper_rotator.history import WallpaperHistory
from wallpaper_rotator.models import WallpaperConfig
from wallpaper_rotator.rotator import WallpaperRotator

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)


@pytest.fixture
def rotator(config, applier):
    return WallpaperRotator(config, applier, display_size=(32, 24))


def home(ref, config_id):
    return WallpaperConfig(ref, targets_home=True, targets_lock=False, id=config_id)


def lock(ref, config_id):
    return WallpaperConfig(ref, targets_home=False, targets_lock=True, id=config_id)


def test_empty_config_list_is_success_without_sink_calls(rotator, sink):
    result = rotator.run_rotation()

    assert result.status == RotationStatus.SUCCESS
    assert result.outcomes == []
    assert sink.attempts == 0


def test_home_and_lock_rotate_independently(rotator, config, sink):
    config.save_configs([home('a.png', 1), lock('b.png', 2)])

    first = rotator.run_rotation()

    assert first.status == RotationStatus.SUCCESS
    assert [(o.target, o.config_id) for o in first.applied] == [(ScreenTarget.HOME, 1), (ScreenTarget.LOCK, 2)]
    assert sink.colors == [RED, GREEN]
    assert config.get_last_index(ScreenTarget.HOME) == 0
    assert config.get_last_index(ScreenTarget.LOCK) == 0

    second = rotator.run_rotation()

    assert [(o.target, o.config_id) for o in second.applied] == [(ScreenTarget.HOME, 1), (ScreenTarget.LOCK, 2)]
    assert config.get_last_index(ScreenTarget.HOME) == 0
    assert config.get_last_index(ScreenTarget.LOCK) == 0
    assert [call[1] for call in sink.calls] == [ScreenTarget.HOME, ScreenTarget.LOCK] * 2


def test_sequential_rotation_cycles_through_home_configs(rotator, config, sink):
    config.save_configs([home('a.png', 1), home('b.png', 2), home('c.png', 3)])

    applied = [rotator.run_rotation().applied[0].config_id for _ in range(4)]

    assert applied == [1, 2, 3, 1]
    assert sink.colors == [RED, GREEN, BLUE, RED]
    assert config.get_last_index(ScreenTarget.HOME) == 0


def test_config_for_both_screens_is_applied_to_both(rotator, config, sink):
    config.save_configs([WallpaperConfig('c.png', targets_home=True, targets_lock=True, id=9)])

    result = rotator.run_rotation()

    assert [o.target for o in result.applied] == [ScreenTarget.HOME, ScreenTarget.LOCK]
    assert sink.colors == [BLUE, BLUE]


def test_access_error_on_home_keeps_lock_progress(rotator, config, sink):
    config.save_configs([home('missing.png', 1), lock('b.png', 2)])

    result = rotator.run_rotation()

    assert result.status == RotationStatus.PARTIAL_FAILURE
    assert result.should_retry
    assert [o.target for o in result.failed] == [ScreenTarget.HOME]
    assert [o.target for o in result.applied] == [ScreenTarget.LOCK]
    assert config.get_last_index(ScreenTarget.HOME) == -1
    assert config.get_last_index(ScreenTarget.LOCK) == 0
    assert sink.calls == [((32, 24), ScreenTarget.LOCK)]


def test_decode_error_is_terminal(config, sink):
    source = MemoryImageSource({'broken.png': b'garbage'})
    rotator = WallpaperRotator(config, WallpaperApplier(source, sink), display_size=(32, 24))
    config.save_configs([home('broken.png', 1)])

    result = rotator.run_rotation()

    assert result.status == RotationStatus.FAILURE
    assert not result.should_retry
    assert config.get_last_index(ScreenTarget.HOME) == -1


def test_exhausted_apply_retries_fail_but_stay_retryable(config, image_source):
    sink = RecordingSink(failures=100, error=ApplyError("rejected"))
    applier = WallpaperApplier(image_source, sink, max_attempts=2, sleep=lambda seconds: None)
    rotator = WallpaperRotator(config, applier, display_size=(32, 24))
    config.save_configs([home('a.png', 1), lock('b.png', 2)])

    result = rotator.run_rotation()

    assert result.status == RotationStatus.FAILURE
    assert result.should_retry
    assert sink.attempts == 4
    assert config.get_last_index(ScreenTarget.HOME) == -1
    assert config.get_last_index(ScreenTarget.LOCK) == -1


def test_lock_only_leaves_home_alone(rotator, config, sink):
    config.save_configs([home('a.png', 1), lock('b.png', 2), lock('c.png', 3)])

    result = rotator.run_rotation(lock_only=True)

    assert [(o.target, o.config_id) for o in result.applied] == [(ScreenTarget.LOCK, 2)]
    assert config.get_last_index(ScreenTarget.HOME) == -1
    assert config.get_last_index(ScreenTarget.LOCK) == 0


def test_unsupported_target_is_skipped(config, image_source):
    sink = RecordingSink(supported=(ScreenTarget.HOME,))
    rotator = WallpaperRotator(config, WallpaperApplier(image_source, sink), display_size=(32, 24))
    config.save_configs([home('a.png', 1), lock('b.png', 2)])

    result = rotator.run_rotation()

    assert result.status == RotationStatus.SUCCESS
    assert [(o.target, o.status) for o in result.outcomes] == [
        (ScreenTarget.HOME, TargetStatus.APPLIED),
        (ScreenTarget.LOCK, TargetStatus.SKIPPED),
    ]
    assert config.get_last_index(ScreenTarget.LOCK) == -1


def test_random_mode_does_not_touch_indices(config, applier, sink):
    config.set('rotation_mode', RotationMode.RANDOM.value)
    config.save_configs([home('a.png', 1), home('b.png', 2), home('c.png', 3)])
    rotator = WallpaperRotator(config, applier, rng=random.Random(7), display_size=(32, 24))

    chosen = {rotator.run_rotation().applied[0].config_id for _ in range(30)}

    assert chosen == {1, 2, 3}
    assert config.get_last_index(ScreenTarget.HOME) == -1


def test_successful_changes_are_recorded_in_history(tmp_path, config, applier):
    history = WallpaperHistory(tmp_path / 'history.json')
    rotator = WallpaperRotator(config, applier, history=history, display_size=(32, 24))
    config.save_configs([home('a.png', 1), lock('missing.png', 2)])

    rotator.run_rotation(source=ChangeSource.AUTOMATED)

    assert [c.config_id for c in history.history(ScreenTarget.HOME)] == [1]
    assert history.history(ScreenTarget.LOCK) == []
    assert history.last_change(ScreenTarget.HOME).source == ChangeSource.AUTOMATED


def test_unexpected_error_is_recorded_and_state_returns_to_idle(config, image_source):
    sink = RecordingSink(failures=1, error=RuntimeError("platform exploded"))
    rotator = WallpaperRotator(config, WallpaperApplier(image_source, sink), display_size=(32, 24))
    config.save_configs([home('a.png', 1)])

    result = rotator.run_rotation()

    assert result.status == RotationStatus.FAILURE
    assert isinstance(result.failed[0].error, RuntimeError)
    assert rotator.state == RotatorState.IDLE


def test_display_size_falls_back_to_config(config, applier, sink):
    config.update(display_width=40, display_height=30)
    config.save_configs([home('a.png', 1)])

    WallpaperRotator(config, applier).run_rotation()

    assert sink.calls == [((40, 30), ScreenTarget.HOME)]


def test_concurrent_runs_are_serialized(config, image_source):
    active = []
    overlaps = []
    lock_ = threading.Lock()

    class SlowSink(RecordingSink):
        def apply_to_target(self, image, target):
            with lock_:
                active.append(target)
                if len(active) > 1:
                    overlaps.append(list(active))
            threading.Event().wait(0.01)
            with lock_:
                active.remove(target)
            super().apply_to_target(image, target)

    sink = SlowSink()
    rotator = WallpaperRotator(config, WallpaperApplier(image_source, sink), display_size=(16, 12))
    config.save_configs([home('a.png', 1), home('b.png', 2), home('c.png', 3)])

    threads = [threading.Thread(target=rotator.run_rotation) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert len(sink.calls) == 6
    # Six serialized steps over three configs finish on the last one
    assert config.get_last_index(ScreenTarget.HOME) == 2


def test_rotations_from_separate_processes_share_progress(tmp_path, image_source, sink):
    path = tmp_path / 'shared.json'
    Config(path).save_configs([home('a.png', 1), home('b.png', 2)])
    interval_run = WallpaperRotator(Config(path), WallpaperApplier(image_source, sink), display_size=(32, 24))
    logon_run = WallpaperRotator(Config(path), WallpaperApplier(image_source, sink), display_size=(32, 24))

    applied = [interval_run.run_rotation().applied[0].config_id,
               logon_run.run_rotation().applied[0].config_id]

    assert applied == [1, 2]
    assert Config(path).get_last_index(ScreenTarget.HOME) == 1


def test_rotation_keeps_configs_added_meanwhile(tmp_path, image_source, sink):
    path = tmp_path / 'shared.json'
    Config(path).save_configs([home('a.png', 1)])
    scheduled = Config(path)
    Config(path).add_config(lock('b.png', 2))

    result = WallpaperRotator(scheduled, WallpaperApplier(image_source, sink), display_size=(32, 24)).run_rotation()

    assert [(o.target, o.config_id) for o in result.applied] == [(ScreenTarget.HOME, 1), (ScreenTarget.LOCK, 2)]
    assert [c.id for c in Config(path).get_configs()] == [1, 2]


def test_rotation_waits_for_config_lock(tmp_path, image_source, sink):
    path = tmp_path / 'shared.json'
    Config(path).save_configs([home('a.png', 1)])
    rotator = WallpaperRotator(Config(path, lock_timeout=0.05), WallpaperApplier(image_source, sink),
                               display_size=(32, 24))

    with Config(path).locked():
        with pytest.raises(Timeout):
            rotator.run_rotation()

    assert sink.calls == []
    assert rotator.state == RotatorState.IDLE
