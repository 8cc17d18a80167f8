"""
Next-song selection for a playlist.

Walks the persisted rotation order, skipping songs whose artist or base
title aired too recently, and records the pick in rotation state.
"""

import random
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger

from rotaplay.core.config import RotationConfig
from rotaplay.core.database import get_setting_int
from rotaplay.core.db_adapter import (
    StationConnection,
    begin_transaction,
    get_station_db_connection,
)
from rotaplay.domain.radio.models import RotationState
from rotaplay.domain.radio.state import (
    push_recent_artist,
    read_rotation_state,
    state_lock,
    write_rotation_state,
)
from rotaplay.exceptions import PlaylistNotFoundError

from .blocking import is_artist_blocked, is_title_blocked
from .engine import ARTIST_BLOCK_SETTING, playlist_lock, start_new_cycle
from .models import SongPick


def _load_unplayed(conn: StationConnection, playlist_id: int) -> list[dict[str, Any]]:
    cursor = conn.execute(
        """
        SELECT
            ps.song_id, ps.position, s.artist_id, s.category_id,
            s.title, s.duration_ms
        FROM playlist_songs ps
        JOIN songs s ON s.id = ps.song_id
        WHERE ps.playlist_id = ?
          AND ps.played_in_cycle = FALSE
          AND s.is_active = TRUE
        ORDER BY ps.position
        """,
        (playlist_id,),
    )
    return [dict(row) for row in cursor.fetchall()]


def _get_cycle_count(conn: StationConnection, playlist_id: int) -> Optional[int]:
    row = conn.execute(
        "SELECT cycle_count FROM playlists WHERE id = ?", (playlist_id,)
    ).fetchone()
    return None if row is None else int(row["cycle_count"] or 0)


def _to_pick(
    row: dict[str, Any],
    playlist_id: int,
    cycle: int,
    cycle_reset: bool,
    blocked_fallback: bool,
) -> SongPick:
    return SongPick(
        song_id=row["song_id"],
        playlist_id=playlist_id,
        artist_id=row["artist_id"],
        title=row["title"] or "",
        position=row["position"],
        duration_ms=int(row["duration_ms"] or 0),
        cycle=cycle,
        cycle_reset=cycle_reset,
        blocked_fallback=blocked_fallback,
        category_id=row["category_id"],
    )


def select_next_song(
    playlist_id: int,
    conn: Optional[StationConnection] = None,
    rotation_config: Optional[RotationConfig] = None,
    rng: Optional[random.Random] = None,
) -> Optional[SongPick]:
    """Choose the next song to air from a playlist.

    The first unplayed song in position order that is neither artist- nor
    title-blocked wins. If every candidate is blocked the first unplayed
    song is used anyway. An exhausted cycle starts a new one and the
    selection is retried once.

    Args:
        playlist_id: Playlist to pick from
        conn: Open connection (a new one is opened if omitted)
        rotation_config: Gap and block sizes (defaults if omitted)
        rng: Random source for a cycle reset shuffle

    Returns:
        SongPick, or None if the playlist has no active songs

    Raises:
        PlaylistNotFoundError: If the playlist does not exist
    """
    if conn is None:
        with get_station_db_connection() as own_conn:
            return select_next_song(playlist_id, own_conn, rotation_config, rng)

    rotation_config = rotation_config or RotationConfig()

    if _get_cycle_count(conn, playlist_id) is None:
        raise PlaylistNotFoundError(playlist_id)

    candidates = _load_unplayed(conn, playlist_id)
    cycle_reset = False
    if not candidates:
        start_new_cycle(playlist_id, conn, rotation_config, rng)
        cycle_reset = True
        candidates = _load_unplayed(conn, playlist_id)
        if not candidates:
            logger.warning(f"Playlist {playlist_id} has no active songs")
            return None

    cycle = _get_cycle_count(conn, playlist_id) or 0
    artist_block = get_setting_int(conn, ARTIST_BLOCK_SETTING, rotation_config.artist_gap)

    for row in candidates:
        if is_artist_blocked(row["artist_id"], artist_block, conn):
            continue
        if is_title_blocked(
            row["title"] or "", row["song_id"], rotation_config.title_block_size, conn
        ):
            continue
        return _to_pick(row, playlist_id, cycle, cycle_reset, blocked_fallback=False)

    logger.warning(
        f"Playlist {playlist_id}: all {len(candidates)} remaining songs are blocked, "
        f"using song {candidates[0]['song_id']}"
    )
    return _to_pick(candidates[0], playlist_id, cycle, cycle_reset, blocked_fallback=True)


def commit_song_pick(
    pick: SongPick, conn: Optional[StationConnection] = None
) -> RotationState:
    """Mark a picked song as played and record it in rotation state.

    Returns:
        The rotation state after the update
    """
    if conn is None:
        with get_station_db_connection() as own_conn:
            return commit_song_pick(pick, own_conn)

    with playlist_lock(pick.playlist_id), state_lock():
        begin_transaction(conn)
        try:
            conn.execute(
                """
                UPDATE playlist_songs
                SET played_in_cycle = TRUE, last_cycle_played = ?
                WHERE playlist_id = ? AND song_id = ?
                """,
                (pick.cycle, pick.playlist_id, pick.song_id),
            )
            state = read_rotation_state(conn)
            write_rotation_state(
                conn,
                current_playlist_id=pick.playlist_id,
                current_position=pick.position,
                current_cycle=pick.cycle,
                songs_since_jingle=state.songs_since_jingle + 1,
                last_artist_ids=push_recent_artist(state.last_artist_ids, pick.artist_id),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        new_state = read_rotation_state(conn)

    logger.info(
        f"Next up: song {pick.song_id} '{pick.title}' "
        f"(playlist {pick.playlist_id}, position {pick.position}, cycle {pick.cycle})"
    )
    return new_state


def _format_timestamp(moment: datetime) -> str:
    # Same text form on both backends; sorts correctly in SQLite
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f+00:00")


def record_play_started(
    song_id: int,
    conn: Optional[StationConnection] = None,
    started_at: Optional[datetime] = None,
) -> RotationState:
    """Append a play_history row and mark the station as playing.

    Args:
        song_id: Song that just started
        conn: Open connection (a new one is opened if omitted)
        started_at: Start instant (defaults to now; naive values are UTC)

    Returns:
        The rotation state after the update
    """
    if conn is None:
        with get_station_db_connection() as own_conn:
            return record_play_started(song_id, own_conn, started_at)

    started_at = started_at or datetime.now(timezone.utc)
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)

    with state_lock():
        begin_transaction(conn)
        try:
            conn.execute(
                "INSERT INTO play_history (song_id, started_at) VALUES (?, ?)",
                (song_id, _format_timestamp(started_at)),
            )
            write_rotation_state(conn, is_playing=True, playback_offset_ms=0)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        state = read_rotation_state(conn)

    logger.debug(f"Play started: song {song_id}")
    return state
