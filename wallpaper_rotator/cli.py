#!/usr/bin/env python3
import argparse
from pathlib import Path
import sys

from filelock import Timeout

from .config import Config
from .constants import ChangeSource, RotationMode, RotationStatus
from .history import WallpaperHistory
from .logger import setup_logger
from .models import CropRect, WallpaperConfig
from .rotator import WallpaperRotator
from .task_scheduler import TaskScheduler
from .utils import get_default_media_folder

logger = setup_logger('wallpaper_rotator.cli')

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_RETRY = 75  # EX_TEMPFAIL

EPILOG = """
Examples:
  Add an image, cropped to its left half and turned a quarter clockwise:
    python -m wallpaper_rotator --add ~/Pictures/sea.jpg --crop 0 0 0.5 1 --rotation 90
  Add a whole folder for both screens:
    python -m wallpaper_rotator --add-folder ~/Pictures/Wallpapers --lock
  Rotate now, then every 30 minutes:
    python -m wallpaper_rotator --rotate --interval 30 --schedule
"""


def parse_display(value: str):
    try:
        width, height = (int(part) for part in value.lower().split('x'))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got {value!r}")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("Display size must be positive")
    return width, height


def parse_switch(value: str) -> bool:
    value = value.lower()
    if value in ('on', 'true', 'yes', '1'):
        return True
    if value in ('off', 'false', 'no', '0'):
        return False
    raise argparse.ArgumentTypeError(f"Expected on or off, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wallpaper_rotator',
        description="Wallpaper Rotator - crop, rotate and cycle wallpapers for the home and lock screen",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--config', help='Path to the configuration file')

    rotation = parser.add_argument_group('rotation')
    rotation.add_argument('--rotate', action='store_true', help='Apply the next wallpaper now')
    rotation.add_argument('--lock-only', action='store_true', help='Only rotate the lock screen')
    rotation.add_argument('--source', choices=['manual', 'automated', 'logon'], default='manual',
                          help=argparse.SUPPRESS)

    wallpapers = parser.add_argument_group('wallpapers')
    wallpapers.add_argument('--add', metavar='IMAGE', help='Add an image to the rotation')
    wallpapers.add_argument('--add-folder', metavar='DIR', nargs='?', const=str(get_default_media_folder()),
                            help='Add every image in a folder (default: your Pictures folder)')
    wallpapers.add_argument('--recurse', action='store_true', help='Include subfolders with --add-folder')
    wallpapers.add_argument('--crop', nargs=4, type=float, metavar=('LEFT', 'TOP', 'RIGHT', 'BOTTOM'),
                            help='Normalized crop rectangle (0-1) for --add')
    wallpapers.add_argument('--rotation', type=float, default=0.0, metavar='DEG',
                            help='Clockwise rotation in degrees for --add')
    wallpapers.add_argument('--home', action=argparse.BooleanOptionalAction, default=True,
                            help='Use added images on the home screen (default: yes)')
    wallpapers.add_argument('--lock', action=argparse.BooleanOptionalAction, default=False,
                            help='Use added images on the lock screen (default: no)')
    wallpapers.add_argument('--remove', nargs='+', type=int, metavar='ID', help='Remove wallpapers by id')
    wallpapers.add_argument('--list', action='store_true', help='List configured wallpapers')
    wallpapers.add_argument('--history', action='store_true', help='Show recently applied wallpapers')

    settings = parser.add_argument_group('settings')
    settings.add_argument('--mode', choices=[mode.value for mode in RotationMode], help='Rotation mode')
    settings.add_argument('--interval', type=int, metavar='MINUTES', help='Minutes between rotations')
    settings.add_argument('--change-on-unlock', type=parse_switch, metavar='on|off',
                          help='Also rotate when logging on')
    settings.add_argument('--display', type=parse_display, metavar='WxH',
                          help='Display size to render wallpapers at')
    settings.add_argument('--schedule', action='store_true', help='Register the periodic rotation task')
    settings.add_argument('--unschedule', action='store_true', help='Remove the periodic rotation task')
    return parser


def apply_settings(args, config: Config, parser: argparse.ArgumentParser) -> None:
    if args.mode:
        config.set('rotation_mode', args.mode)
    if args.interval is not None:
        if args.interval < 1:
            parser.error("--interval must be at least 1 minute")
        config.set('rotation_interval', args.interval)
    if args.change_on_unlock is not None:
        config.set('change_on_unlock', args.change_on_unlock)
    if args.display:
        config.update(display_width=args.display[0], display_height=args.display[1])


def edit_wallpapers(args, config: Config, parser: argparse.ArgumentParser) -> None:
    if (args.add or args.add_folder) and not (args.home or args.lock):
        parser.error("Added wallpapers need at least one of --home or --lock")

    if args.add:
        if not Path(args.add).expanduser().is_file():
            logger.warning(f"Image file not found: {args.add}")
        crop = CropRect.from_list(args.crop) if args.crop else CropRect.full()
        if not crop.is_valid():
            parser.error("--crop needs 0 <= LEFT < RIGHT <= 1 and 0 <= TOP < BOTTOM <= 1")
        added = config.add_config(WallpaperConfig(
            image_ref=str(Path(args.add).expanduser().resolve()),
            crop_rect=crop,
            rotation_degrees=args.rotation,
            targets_home=args.home,
            targets_lock=args.lock,
            id=config.new_config_id(),
        ))
        print(f"Added wallpaper {added.id}")

    if args.add_folder:
        try:
            added = config.add_folder_images(args.add_folder, for_home=args.home, for_lock=args.lock,
                                             recurse=args.recurse)
        except NotADirectoryError as e:
            parser.error(str(e))
        print(f"Added {len(added)} wallpaper(s) from {args.add_folder}")

    if args.remove:
        removed = config.remove_configs(args.remove)
        print(f"Removed {removed} wallpaper(s)")


def show(args, config: Config) -> None:
    if args.list:
        configs = config.get_configs()
        if not configs:
            print("No wallpapers configured")
        for wallpaper in configs:
            print(wallpaper.describe())
        print(f"Mode: {config.get_rotation_mode().value}, interval: {config.get_rotation_interval()} minute(s), "
              f"change on unlock: {'on' if config.get('change_on_unlock') else 'off'}")

    if args.history:
        changes = WallpaperHistory(config.get_history_file()).get_combined_history()
        if not changes:
            print("No wallpaper history")
        for change in changes:
            print(change.format_history_entry())


def schedule(args, config: Config) -> int:
    scheduler = TaskScheduler()
    try:
        if args.unschedule:
            scheduler.remove_task()
            print("Removed scheduled rotation")
        if args.schedule:
            if not args.unschedule and scheduler.check_existing_task():
                print("Replacing the existing scheduled rotation")
            scheduler.create_task(str(config.config_file.resolve()), config.get_rotation_interval(),
                                  on_logon=bool(config.get('change_on_unlock')))
            print(f"Scheduled rotation every {config.get_rotation_interval()} minute(s)")
    except (RuntimeError, NotImplementedError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


def rotate(args, config: Config) -> int:
    source = ChangeSource[args.source.upper()]
    if source == ChangeSource.LOGON and not config.get('change_on_unlock'):
        logger.info("Change on unlock is disabled, skipping logon rotation")
        return EXIT_OK

    try:
        result = WallpaperRotator.from_config(config).run_rotation(lock_only=args.lock_only, source=source)
    except Timeout:
        logger.warning(f"Another rotation is holding {config.lock_file}, try again later")
        return EXIT_RETRY
    for outcome in result.failed:
        print(f"Error: {outcome.target.label}: {outcome.error}", file=sys.stderr)
    if result.status == RotationStatus.SUCCESS:
        return EXIT_OK
    return EXIT_RETRY if result.should_retry else EXIT_FAILURE


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    actions = (args.rotate, args.add, args.add_folder, args.remove, args.list, args.history, args.mode,
               args.interval is not None, args.change_on_unlock is not None, args.display,
               args.schedule, args.unschedule)
    if not any(actions):
        parser.print_help()
        return EXIT_OK

    config = Config(args.config)
    apply_settings(args, config, parser)
    edit_wallpapers(args, config, parser)
    show(args, config)

    exit_code = EXIT_OK
    if args.schedule or args.unschedule:
        exit_code = schedule(args, config)
    if args.rotate:
        exit_code = max(exit_code, rotate(args, config))
    return exit_code


if __name__ == '__main__':
    sys.exit(main())
