"""
SQLite database operations for rotaplay
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

from .config import get_data_dir


# Schema for the tables the rotation core reads and writes. Tables owned by
# ingestion (songs, categories) are created here too so a fresh install works.
SQLITE_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        rotation_weight REAL NOT NULL DEFAULT 1.0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS songs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        artist_id INTEGER NOT NULL,
        category_id INTEGER NOT NULL REFERENCES categories (id),
        title TEXT NOT NULL DEFAULT '',
        duration_ms INTEGER NOT NULL DEFAULT 0,
        rotation_weight REAL NOT NULL DEFAULT 1.0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS playlists (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        cycle_count INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS playlist_songs (
        playlist_id INTEGER NOT NULL REFERENCES playlists (id) ON DELETE CASCADE,
        song_id INTEGER NOT NULL REFERENCES songs (id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        played_in_cycle BOOLEAN NOT NULL DEFAULT FALSE,
        last_cycle_played INTEGER,
        PRIMARY KEY (playlist_id, song_id),
        UNIQUE (playlist_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS schedules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        playlist_id INTEGER NOT NULL REFERENCES playlists (id) ON DELETE CASCADE,
        days_of_week TEXT, -- comma-separated, Monday = 0; NULL = every day
        start_date DATE,
        end_date DATE,
        start_time TEXT NOT NULL, -- "HH:MM[:SS]"
        end_time TEXT NOT NULL,
        priority INTEGER NOT NULL DEFAULT 0,
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rotation_state (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        current_playlist_id INTEGER,
        is_playing BOOLEAN NOT NULL DEFAULT FALSE,
        is_emergency BOOLEAN NOT NULL DEFAULT FALSE,
        current_position INTEGER NOT NULL DEFAULT 0,
        current_cycle INTEGER NOT NULL DEFAULT 0,
        playback_offset_ms INTEGER NOT NULL DEFAULT 0,
        songs_since_jingle INTEGER NOT NULL DEFAULT 0,
        last_artist_ids TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS play_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        song_id INTEGER NOT NULL,
        started_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_play_history_started ON play_history (started_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_schedules_playlist ON schedules (playlist_id)",
]


def get_database_path() -> Path:
    """Get the path to the SQLite database file."""
    return get_data_dir() / "rotaplay.db"


def connect_sqlite() -> sqlite3.Connection:
    """Open a SQLite connection configured for concurrent access.

    The caller owns the connection and must close it.
    """
    db_path = get_database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row  # Enable dict-like access

    # WAL mode allows the watcher to read while a reshuffle writes
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


@contextmanager
def get_db_connection() -> Iterator[sqlite3.Connection]:
    """Get a database connection with proper cleanup and concurrency support."""
    conn = connect_sqlite()
    try:
        yield conn
    finally:
        conn.close()


def init_database() -> None:
    """Create the SQLite schema if it does not exist yet."""
    with get_db_connection() as conn:
        for statement in SQLITE_SCHEMA:
            conn.execute(statement)
        conn.commit()
    logger.info(f"SQLite schema ready at {get_database_path()}")


def get_setting(conn: Any, key: str, default: str) -> str:
    """Read a value from the settings table.

    Args:
        conn: Open database connection
        key: Setting key
        default: Value returned when the key is missing or NULL

    Returns:
        The stored value as a string
    """
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    if row is None or row["value"] is None:
        return default
    return str(row["value"])


def get_setting_int(conn: Any, key: str, default: int) -> int:
    """Read an integer setting, falling back to default on missing or bad values."""
    raw = get_setting(conn, key, str(default))
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Setting {key!r} is not an integer ({raw!r}), using {default}")
        return default
