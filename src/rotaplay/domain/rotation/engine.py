"""
Rotation engine: reshuffle a playlist and persist the order.

The shuffled order is written to playlist_songs.position so playback is
resume-safe across restarts. Every reshuffle runs inside one transaction
and holds a per-playlist lock for its whole read-shuffle-write sequence.
"""

import random
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from loguru import logger

from rotaplay.core.config import RotationConfig
from rotaplay.core.database import get_setting_int
from rotaplay.core.db_adapter import (
    PostgresConnection,
    StationConnection,
    begin_transaction,
    get_station_db_connection,
)
from rotaplay.exceptions import PlaylistNotFoundError

from .models import RotationSong
from .shuffle import build_rotation_order

# Parked positions live far below any real position so phase two can never
# collide with a row that has not been rewritten yet.
POSITION_PARK_OFFSET = 1_000_000

ARTIST_BLOCK_SETTING = "artist_repeat_block"

_playlist_locks: defaultdict[int, threading.RLock] = defaultdict(threading.RLock)
_playlist_locks_guard = threading.Lock()


@contextmanager
def playlist_lock(playlist_id: int) -> Iterator[None]:
    """Serialize reshuffles of the same playlist within this process."""
    with _playlist_locks_guard:
        lock = _playlist_locks[playlist_id]
    with lock:
        yield


def park_position(position: int) -> int:
    """Map a live position to its temporary negative slot."""
    return -(position + POSITION_PARK_OFFSET)


@dataclass(frozen=True)
class PositionPlan:
    """Two-phase position rewrite for one playlist.

    park: (song_id, negative position) writes applied first
    final: (song_id, position) writes applied second
    """

    park: list[tuple[int, int]]
    final: list[tuple[int, int]]


def plan_position_writes(
    touched: dict[int, int],
    ordered_song_ids: Sequence[int],
    start_position: int,
) -> PositionPlan:
    """Plan the negate-then-write sequence for a reshuffle.

    Args:
        touched: song_id -> current position for every row being rewritten
        ordered_song_ids: New order for the songs being reshuffled
        start_position: Position given to the first song in the new order

    Returns:
        PositionPlan; touched rows that are not in the new order (inactive
        songs) are re-appended after it in their previous relative order so
        positions stay positive and unique at rest.

    Raises:
        ValueError: If the new order references an untouched song
    """
    unknown = set(ordered_song_ids) - set(touched)
    if unknown:
        raise ValueError(f"Songs {sorted(unknown)} are not part of the rewrite")

    by_position = sorted(touched.items(), key=lambda item: item[1])
    park = [(song_id, park_position(position)) for song_id, position in by_position]

    ordered = set(ordered_song_ids)
    leftovers = [song_id for song_id, _ in by_position if song_id not in ordered]
    final = [
        (song_id, start_position + idx)
        for idx, song_id in enumerate(list(ordered_song_ids) + leftovers)
    ]
    return PositionPlan(park=park, final=final)


def _load_candidates(
    conn: StationConnection, playlist_id: int, remaining_only: bool
) -> list[RotationSong]:
    played_filter = "AND ps.played_in_cycle = FALSE" if remaining_only else ""
    cursor = conn.execute(
        f"""
        SELECT
            ps.song_id,
            s.artist_id,
            s.category_id,
            s.title,
            (s.rotation_weight * c.rotation_weight) AS effective_weight
        FROM playlist_songs ps
        JOIN songs      s ON s.id = ps.song_id
        JOIN categories c ON c.id = s.category_id
        WHERE ps.playlist_id = ?
          AND s.is_active = TRUE
          {played_filter}
        ORDER BY ps.position
        """,
        (playlist_id,),
    )
    return [
        RotationSong(
            song_id=row["song_id"],
            artist_id=row["artist_id"],
            category_id=row["category_id"],
            title=row["title"] or "",
            effective_weight=float(row["effective_weight"] or 0.0),
        )
        for row in cursor.fetchall()
    ]


def _load_touched_positions(
    conn: StationConnection, playlist_id: int, remaining_only: bool
) -> dict[int, int]:
    played_filter = "AND played_in_cycle = FALSE" if remaining_only else ""
    cursor = conn.execute(
        f"SELECT song_id, position FROM playlist_songs WHERE playlist_id = ? {played_filter}",
        (playlist_id,),
    )
    return {row["song_id"]: row["position"] for row in cursor.fetchall()}


def _next_free_position(conn: StationConnection, playlist_id: int) -> int:
    row = conn.execute(
        """
        SELECT COALESCE(MAX(position), 0) AS max_pos FROM playlist_songs
        WHERE playlist_id = ? AND played_in_cycle = TRUE
        """,
        (playlist_id,),
    ).fetchone()
    return int(row["max_pos"]) + 1


def _lock_playlist_row(conn: StationConnection, playlist_id: int) -> None:
    # SQLite already holds the write lock from BEGIN IMMEDIATE
    if isinstance(conn, PostgresConnection):
        conn.execute("SELECT id FROM playlists WHERE id = ? FOR UPDATE", (playlist_id,))


def apply_position_plan(
    conn: StationConnection, playlist_id: int, plan: PositionPlan
) -> None:
    """Write a PositionPlan. The caller owns the transaction."""
    for song_id, position in plan.park:
        conn.execute(
            "UPDATE playlist_songs SET position = ? WHERE playlist_id = ? AND song_id = ?",
            (position, playlist_id, song_id),
        )
    for song_id, position in plan.final:
        conn.execute(
            "UPDATE playlist_songs SET position = ? WHERE playlist_id = ? AND song_id = ?",
            (position, playlist_id, song_id),
        )


def _shuffle_and_write(
    conn: StationConnection,
    playlist_id: int,
    remaining_only: bool,
    rotation_config: RotationConfig,
    rng: Optional[random.Random],
) -> int:
    """Shared body of generate_cycle_order and shuffle_remaining.

    Runs inside the caller's transaction.

    Returns:
        Number of songs placed in the new order
    """
    songs = _load_candidates(conn, playlist_id, remaining_only)
    if not songs:
        return 0

    artist_gap = get_setting_int(conn, ARTIST_BLOCK_SETTING, rotation_config.artist_gap)
    ordered = build_rotation_order(
        songs,
        artist_gap=artist_gap,
        category_gap=rotation_config.category_gap,
        title_gap=rotation_config.title_gap,
        rng=rng,
    )

    start_position = _next_free_position(conn, playlist_id) if remaining_only else 1
    touched = _load_touched_positions(conn, playlist_id, remaining_only)
    plan = plan_position_writes(touched, [s.song_id for s in ordered], start_position)
    apply_position_plan(conn, playlist_id, plan)

    logger.debug(
        f"Playlist {playlist_id}: ordered {len(ordered)} songs from position "
        f"{start_position} (remaining_only={remaining_only})"
    )
    return len(ordered)


def _run_reshuffle(
    playlist_id: int,
    remaining_only: bool,
    new_cycle: bool,
    conn: Optional[StationConnection],
    rotation_config: Optional[RotationConfig],
    rng: Optional[random.Random],
) -> int:
    rotation_config = rotation_config or RotationConfig()

    with playlist_lock(playlist_id):
        if conn is None:
            with get_station_db_connection() as own_conn:
                return _run_reshuffle(
                    playlist_id, remaining_only, new_cycle, own_conn, rotation_config, rng
                )

        begin_transaction(conn)
        try:
            _lock_playlist_row(conn, playlist_id)
            if new_cycle:
                conn.execute(
                    "UPDATE playlist_songs SET played_in_cycle = FALSE WHERE playlist_id = ?",
                    (playlist_id,),
                )
                conn.execute(
                    "UPDATE playlists SET cycle_count = cycle_count + 1 WHERE id = ?",
                    (playlist_id,),
                )
            count = _shuffle_and_write(conn, playlist_id, remaining_only, rotation_config, rng)
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    return count


def generate_cycle_order(
    playlist_id: int,
    conn: Optional[StationConnection] = None,
    rotation_config: Optional[RotationConfig] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Shuffle every active song in the playlist and persist the order.

    Returns:
        Number of songs ordered (0 for an empty playlist)
    """
    count = _run_reshuffle(playlist_id, False, False, conn, rotation_config, rng)
    logger.info(f"Generated cycle order for playlist {playlist_id}: {count} songs")
    return count


def shuffle_remaining(
    playlist_id: int,
    conn: Optional[StationConnection] = None,
    rotation_config: Optional[RotationConfig] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Reshuffle only the songs not yet played in the current cycle.

    Played songs keep their positions; unplayed songs are placed after the
    highest played position.

    Returns:
        Number of unplayed songs reshuffled (0 when the cycle is exhausted)
    """
    count = _run_reshuffle(playlist_id, True, False, conn, rotation_config, rng)
    logger.info(f"Reshuffled remaining songs for playlist {playlist_id}: {count} songs")
    return count


def start_new_cycle(
    playlist_id: int,
    conn: Optional[StationConnection] = None,
    rotation_config: Optional[RotationConfig] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Reset played flags, bump the playlist's cycle count and reshuffle everything.

    Returns:
        Number of songs ordered for the new cycle
    """
    count = _run_reshuffle(playlist_id, False, True, conn, rotation_config, rng)
    logger.info(f"Started new cycle for playlist {playlist_id}: {count} songs")
    return count


def _playlist_exists(conn: StationConnection, playlist_id: int) -> bool:
    row = conn.execute("SELECT id FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
    return row is not None


def reshuffle_playlist(
    playlist_id: int,
    conn: Optional[StationConnection] = None,
    rotation_config: Optional[RotationConfig] = None,
    rng: Optional[random.Random] = None,
) -> tuple[int, bool]:
    """Operator reshuffle: remaining songs first, full new cycle if none remain.

    Returns:
        (songs reshuffled, whether a new cycle was started)

    Raises:
        PlaylistNotFoundError: If the playlist does not exist
    """
    if conn is None:
        with get_station_db_connection() as own_conn:
            return reshuffle_playlist(playlist_id, own_conn, rotation_config, rng)

    if not _playlist_exists(conn, playlist_id):
        raise PlaylistNotFoundError(playlist_id)

    # Re-entrant; held across both steps
    with playlist_lock(playlist_id):
        count = shuffle_remaining(playlist_id, conn, rotation_config, rng)
        if count > 0:
            return count, False

        count = start_new_cycle(playlist_id, conn, rotation_config, rng)
        return count, True
