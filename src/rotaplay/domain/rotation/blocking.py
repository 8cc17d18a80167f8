"""
Repeat-blocking checks over recent play history.

Read-only advisory checks used by next-song selection. The shuffle itself
never calls these.
"""

from typing import Optional

from rotaplay.core.db_adapter import StationConnection, get_station_db_connection

from .titles import base_title

DEFAULT_TITLE_BLOCK_SIZE = 2


def is_artist_blocked(
    artist_id: int, block_size: int, conn: Optional[StationConnection] = None
) -> bool:
    """Check if an artist appears in the last block_size plays.

    Args:
        artist_id: The artist to check
        block_size: Number of recent plays to look at
        conn: Open connection (a new one is opened if omitted)

    Returns:
        True if the artist was played too recently
    """
    if block_size <= 0:
        return False

    if conn is None:
        with get_station_db_connection() as own_conn:
            return is_artist_blocked(artist_id, block_size, own_conn)

    row = conn.execute(
        """
        SELECT COUNT(*) AS cnt
        FROM (
            SELECT s.artist_id
            FROM play_history ph
            JOIN songs s ON s.id = ph.song_id
            ORDER BY ph.started_at DESC, ph.id DESC
            LIMIT ?
        ) recent
        WHERE recent.artist_id = ?
        """,
        (block_size, artist_id),
    ).fetchone()
    return int(row["cnt"]) > 0


def is_title_blocked(
    title: str,
    song_id: int,
    block_size: int = DEFAULT_TITLE_BLOCK_SIZE,
    conn: Optional[StationConnection] = None,
) -> bool:
    """Check if a song sharing this base title was played recently.

    The candidate song itself is excluded from the match so a song is not
    blocked by its own earlier play here (the cycle prevents that anyway).

    Args:
        title: Title of the candidate song
        song_id: Candidate song ID
        block_size: Number of recent plays to look at
        conn: Open connection (a new one is opened if omitted)

    Returns:
        True if a same-base-title song was played within the window
    """
    if block_size <= 0:
        return False

    wanted = base_title(title)
    if not wanted:
        return False

    if conn is None:
        with get_station_db_connection() as own_conn:
            return is_title_blocked(title, song_id, block_size, own_conn)

    cursor = conn.execute(
        """
        SELECT s.title
        FROM (
            SELECT song_id
            FROM play_history
            ORDER BY started_at DESC, id DESC
            LIMIT ?
        ) recent
        JOIN songs s ON s.id = recent.song_id
        WHERE recent.song_id != ?
        """,
        (block_size, song_id),
    )
    return any(base_title(row["title"] or "") == wanted for row in cursor.fetchall())
