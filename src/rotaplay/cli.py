"""
rotaplay CLI - Entry point

Operator commands for the rotation core and the long-running schedule
boundary watcher.
"""

import argparse
import sys
from pathlib import Path

from loguru import logger

from rotaplay.core.config import (
    Config,
    ensure_directories,
    get_data_dir,
    load_config,
    write_default_config,
)
from rotaplay.core.db_adapter import get_station_db_connection, init_schema
from rotaplay.core.output import setup_loguru
from rotaplay.exceptions import ConfigError, RotaplayError


def setup_logging(config: Config) -> None:
    """Install loguru sinks from the logging configuration."""
    log_file = (
        Path(config.logging.log_file)
        if config.logging.log_file
        else get_data_dir() / "rotaplay.log"
    )
    setup_loguru(
        log_file,
        level=config.logging.level,
        console_output=config.logging.console_output,
    )


def run_init_db() -> int:
    init_schema()
    print("Database schema ready")
    print(f"Configuration: {write_default_config()}")
    return 0


def run_watch(config: Config, interval: float = None) -> int:
    """Run the boundary watcher until interrupted."""
    from rotaplay.domain.radio.watcher import BoundaryWatcher

    if interval is not None:
        if interval <= 0:
            raise ConfigError(f"Watch interval must be positive, got {interval:g}")
        config.watcher.interval_seconds = interval

    watcher = BoundaryWatcher.from_config(config)
    try:
        watcher.run_forever()
    except KeyboardInterrupt:
        logger.info("Boundary watcher stopped")
    return 0


def run_shuffle(config: Config, playlist_id: int, remaining: bool = False) -> int:
    from rotaplay.domain.rotation.engine import generate_cycle_order, shuffle_remaining

    if remaining:
        count = shuffle_remaining(playlist_id, rotation_config=config.rotation)
        print(f"Reshuffled {count} remaining songs in playlist #{playlist_id}")
    else:
        count = generate_cycle_order(playlist_id, rotation_config=config.rotation)
        print(f"Shuffled {count} songs in playlist #{playlist_id}")
    return 0


def run_reshuffle(config: Config, playlist_id: int) -> int:
    from rotaplay.domain.rotation.engine import reshuffle_playlist

    count, new_cycle = reshuffle_playlist(playlist_id, rotation_config=config.rotation)
    if new_cycle:
        print(f"Cycle exhausted; started a new cycle with {count} songs in playlist #{playlist_id}")
    else:
        print(f"Reshuffled {count} remaining songs in playlist #{playlist_id}")
    return 0


def run_now(config: Config) -> int:
    """Print the resolved schedule and the current rotation state."""
    from rotaplay.domain.radio.schedule import (
        END_OF_DAY,
        get_active_schedule,
        get_station_timezone,
    )
    from rotaplay.domain.radio.state import get_rotation_state
    from rotaplay.domain.radio.watcher import classify_divergence

    with get_station_db_connection() as conn:
        tz_name = get_station_timezone(conn, config.station.timezone)
        schedule = get_active_schedule(conn, default_timezone=config.station.timezone)
        state = get_rotation_state(conn)

    print(f"Timezone: {tz_name}")
    if schedule:
        end = "24:00" if schedule.end_time == END_OF_DAY else f"{schedule.end_time:%H:%M}"
        print(
            f"Scheduled: playlist #{schedule.playlist_id} "
            f"(schedule #{schedule.id}, priority {schedule.priority}, "
            f"{schedule.start_time:%H:%M}-{end})"
        )
    else:
        print("Scheduled: nothing")

    status = "playing" if state.is_playing else "idle"
    print(
        f"On air: playlist #{state.current_playlist_id} ({status}), "
        f"position {state.current_position}, cycle {state.current_cycle}"
    )
    if state.is_emergency:
        print("⚠️  Emergency override active")

    reason = classify_divergence(
        schedule.playlist_id if schedule else None,
        state.current_playlist_id,
        state.is_playing,
    )
    if reason:
        print(f"Divergence: {reason}")
    return 0


def run_skip(config: Config) -> int:
    from rotaplay.ipc.liquidsoap import send_skip

    if send_skip(config.liquidsoap):
        print("✓ Skip sent")
        return 0
    print("❌ Could not reach Liquidsoap", file=sys.stderr)
    return 1


def run_next(config: Config, playlist_id: int) -> int:
    """Select and commit the next song for a playlist."""
    from rotaplay.domain.rotation.picker import commit_song_pick, select_next_song

    with get_station_db_connection() as conn:
        pick = select_next_song(playlist_id, conn, rotation_config=config.rotation)
        if pick is None:
            print(f"Playlist #{playlist_id} has no active songs")
            return 1
        commit_song_pick(pick, conn)

    flags = []
    if pick.cycle_reset:
        flags.append("new cycle")
    if pick.blocked_fallback:
        flags.append("all blocked")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    print(
        f"#{pick.song_id} {pick.title} "
        f"(position {pick.position}, cycle {pick.cycle}){suffix}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rotaplay",
        description="Radio rotation and schedule synchronization engine",
    )
    subparsers = parser.add_subparsers(dest="subcommand", help="Commands")

    subparsers.add_parser("init-db", help="Create the database schema and default config")

    watch_parser = subparsers.add_parser("watch", help="Run the schedule boundary watcher")
    watch_parser.add_argument(
        "--interval", type=float, default=None, help="Seconds between checks"
    )

    shuffle_parser = subparsers.add_parser("shuffle", help="Shuffle a playlist")
    shuffle_parser.add_argument("playlist_id", type=int, help="Playlist ID")
    shuffle_parser.add_argument(
        "--remaining",
        action="store_true",
        help="Only reshuffle songs not yet played this cycle",
    )

    reshuffle_parser = subparsers.add_parser(
        "reshuffle", help="Reshuffle remaining songs, or start a new cycle"
    )
    reshuffle_parser.add_argument("playlist_id", type=int, help="Playlist ID")

    subparsers.add_parser("now", help="Show the scheduled playlist and rotation state")
    subparsers.add_parser("skip", help="Ask Liquidsoap to skip the current track")

    next_parser = subparsers.add_parser("next", help="Pick the next song for a playlist")
    next_parser.add_argument("playlist_id", type=int, help="Playlist ID")

    return parser


def main(argv: list = None) -> None:
    """Main entry point for the rotaplay CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.subcommand:
        parser.print_help()
        sys.exit(1)

    config = load_config()
    ensure_directories()
    setup_logging(config)

    try:
        if args.subcommand == "init-db":
            sys.exit(run_init_db())

        elif args.subcommand == "watch":
            sys.exit(run_watch(config, args.interval))

        elif args.subcommand == "shuffle":
            sys.exit(run_shuffle(config, args.playlist_id, remaining=args.remaining))

        elif args.subcommand == "reshuffle":
            sys.exit(run_reshuffle(config, args.playlist_id))

        elif args.subcommand == "now":
            sys.exit(run_now(config))

        elif args.subcommand == "skip":
            sys.exit(run_skip(config))

        elif args.subcommand == "next":
            sys.exit(run_next(config, args.playlist_id))

    except RotaplayError as e:
        logger.error(str(e))
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
