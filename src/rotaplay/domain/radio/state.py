"""
Typed accessor for the singleton rotation_state row.

Every read and write of rotation_state goes through this module. Writers
are serialized by a process-wide lock and each write is its own
transaction; the boundary watcher only ever reads.
"""

import threading
from typing import Any, Optional

from loguru import logger

from rotaplay.core.db_adapter import (
    StationConnection,
    get_station_db_connection,
    parse_int_array,
    to_db_int_array,
)

from .models import RotationState

# Length of the recent-artist list kept for repeat checks
LAST_ARTISTS_LIMIT = 10

_WRITABLE_FIELDS = frozenset(
    {
        "current_playlist_id",
        "is_playing",
        "is_emergency",
        "current_position",
        "current_cycle",
        "playback_offset_ms",
        "songs_since_jingle",
        "last_artist_ids",
    }
)

_state_lock = threading.Lock()


def ensure_rotation_state(conn: StationConnection) -> None:
    """Create the singleton row if it is missing. Does not commit."""
    conn.execute(
        """
        INSERT INTO rotation_state (
            id, is_playing, is_emergency, current_position, current_cycle,
            playback_offset_ms, songs_since_jingle, last_artist_ids
        )
        VALUES (1, FALSE, FALSE, 0, 0, 0, 0, ?)
        ON CONFLICT (id) DO NOTHING
        """,
        (to_db_int_array([], conn),),
    )


def _row_to_state(row: dict[str, Any]) -> RotationState:
    """Convert database row to RotationState dataclass."""
    return RotationState(
        current_playlist_id=row["current_playlist_id"],
        is_playing=bool(row["is_playing"]),
        is_emergency=bool(row["is_emergency"]),
        current_position=int(row["current_position"] or 0),
        current_cycle=int(row["current_cycle"] or 0),
        playback_offset_ms=int(row["playback_offset_ms"] or 0),
        songs_since_jingle=int(row["songs_since_jingle"] or 0),
        last_artist_ids=tuple(parse_int_array(row["last_artist_ids"]) or ()),
    )


def get_rotation_state(conn: Optional[StationConnection] = None) -> RotationState:
    """Read the current rotation state, creating the row on first use."""
    if conn is None:
        with get_station_db_connection() as own_conn:
            return get_rotation_state(own_conn)

    ensure_rotation_state(conn)
    conn.commit()
    return read_rotation_state(conn)


def read_rotation_state(conn: StationConnection) -> RotationState:
    """Read the row inside the caller's transaction (no upsert, no commit)."""
    row = conn.execute(
        """
        SELECT current_playlist_id, is_playing, is_emergency, current_position,
               current_cycle, playback_offset_ms, songs_since_jingle, last_artist_ids
        FROM rotation_state WHERE id = 1
        """
    ).fetchone()
    if row is None:
        return RotationState()
    return _row_to_state(dict(row))


def write_rotation_state(conn: StationConnection, **fields: Any) -> None:
    """Apply field updates inside the caller's transaction.

    Raises:
        ValueError: If a field name is not a rotation_state column
    """
    unknown = set(fields) - _WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown rotation state fields: {sorted(unknown)}")
    if not fields:
        return

    params: list[Any] = []
    updates: list[str] = []
    for name, value in fields.items():
        if name == "last_artist_ids":
            value = to_db_int_array(value, conn)
        updates.append(f"{name} = ?")
        params.append(value)

    ensure_rotation_state(conn)
    conn.execute(f"UPDATE rotation_state SET {', '.join(updates)} WHERE id = 1", params)


def update_rotation_state(
    conn: Optional[StationConnection] = None, **fields: Any
) -> RotationState:
    """Update rotation state fields in their own transaction.

    Returns:
        The state after the update

    Raises:
        ValueError: If a field name is not a rotation_state column
    """
    if conn is None:
        with get_station_db_connection() as own_conn:
            return update_rotation_state(own_conn, **fields)

    with _state_lock:
        try:
            write_rotation_state(conn, **fields)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.debug(f"Rotation state updated: {sorted(fields)}")
        return get_rotation_state(conn)


def push_recent_artist(
    artist_ids: tuple[int, ...], artist_id: int, limit: int = LAST_ARTISTS_LIMIT
) -> list[int]:
    """Prepend an artist to the recent list, keeping at most `limit` entries."""
    return [artist_id, *artist_ids][:limit]


def set_emergency(flag: bool, conn: Optional[StationConnection] = None) -> RotationState:
    """Turn the emergency override on or off."""
    state = update_rotation_state(conn, is_emergency=flag)
    logger.info(f"Emergency override {'enabled' if flag else 'disabled'}")
    return state


def state_lock() -> threading.Lock:
    """The lock serializing rotation state writers in this process."""
    return _state_lock
