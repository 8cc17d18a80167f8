"""
Schedule boundary watcher.

A long-running loop that compares the schedule that should be airing with
what rotation state says is airing, and asks the audio engine to skip when
they diverge. The skip makes the playback side re-read the schedule when it
fetches its next track.

The watcher only reads rotation state; it never writes it.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

from loguru import logger

from rotaplay.core.config import Config
from rotaplay.core.db_adapter import StationConnection, connect, ping
from rotaplay.ipc.liquidsoap import LiquidsoapClient

from .models import RotationState, Schedule
from .schedule import get_active_schedule
from .state import read_rotation_state


def classify_divergence(
    should_play: Optional[int],
    current_playlist_id: Optional[int],
    is_playing: bool,
) -> Optional[str]:
    """Compare desired and actual playlist.

    Args:
        should_play: Playlist the schedule wants on air (None = no schedule)
        current_playlist_id: Playlist recorded in rotation state
        is_playing: Whether rotation state says something is playing

    Returns:
        A human-readable reason when a skip is needed, otherwise None
    """
    if should_play is not None and not is_playing:
        return f"idle→active (playlist #{should_play})"
    if should_play is None and is_playing:
        return "active→idle (no schedule)"
    if should_play is not None and should_play != current_playlist_id:
        return f"playlist change (#{current_playlist_id}→#{should_play})"
    return None


class BoundaryWatcher:
    """Periodic divergence check between schedule and rotation state.

    The first evaluation after startup only logs, it never skips.
    """

    def __init__(
        self,
        client: LiquidsoapClient,
        interval_seconds: float = 30.0,
        default_timezone: str = "UTC",
        connect_fn: Callable[[], StationConnection] = connect,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.interval_seconds = interval_seconds
        self.default_timezone = default_timezone
        self._connect_fn = connect_fn
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._conn: Optional[StationConnection] = None
        self.first_run = True

    @classmethod
    def from_config(cls, config: Config) -> "BoundaryWatcher":
        return cls(
            client=LiquidsoapClient.from_config(config.liquidsoap),
            interval_seconds=config.watcher.interval_seconds,
            default_timezone=config.station.timezone,
        )

    def _connection(self) -> StationConnection:
        """Return a live connection, replacing the old one if the probe fails."""
        if ping(self._conn):
            return self._conn

        if self._conn is not None:
            logger.warning("Database connection lost, reconnecting")
            self._close_quietly()
        self._conn = self._connect_fn()
        return self._conn

    def _close_quietly(self) -> None:
        try:
            self._conn.close()
        except Exception as e:
            logger.debug(f"Ignoring error closing stale connection: {e}")
        self._conn = None

    def evaluate(self) -> tuple[Optional[Schedule], RotationState, Optional[str]]:
        """Resolve the schedule, read state and classify, without acting."""
        conn = self._connection()
        schedule = get_active_schedule(conn, self._clock(), self.default_timezone)
        state = read_rotation_state(conn)
        # Plain reads; end the implicit transaction so later ticks see fresh data
        conn.commit()
        should_play = schedule.playlist_id if schedule else None
        reason = classify_divergence(should_play, state.current_playlist_id, state.is_playing)
        return schedule, state, reason

    def tick(self) -> Optional[str]:
        """Run one check.

        Returns:
            The divergence reason when a skip was sent, otherwise None
        """
        try:
            _, state, reason = self.evaluate()
        except Exception as e:
            logger.error(f"Boundary check failed: {e}")
            if self._conn is not None:
                self._close_quietly()
            return None

        if reason is None:
            if self.first_run:
                logger.info(
                    f"Initial state: in sync (playlist #{state.current_playlist_id}, "
                    f"playing={state.is_playing})"
                )
            self.first_run = False
            return None

        if self.first_run:
            self.first_run = False
            logger.info(f"Startup divergence ({reason}), not skipping on first check")
            return None

        logger.info(f"Schedule boundary: {reason}, sending skip")
        if not self.client.skip():
            logger.warning("Skip was not delivered; will retry on the next check")
        return reason

    def run_forever(self) -> None:
        """Check every interval_seconds until the process is stopped."""
        logger.info(
            f"Boundary watcher started (interval {self.interval_seconds:g}s, "
            f"liquidsoap {self.client.host}:{self.client.port})"
        )
        while True:
            self.tick()
            self._sleep(self.interval_seconds)
