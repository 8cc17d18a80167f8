"""
Database adapter that supports both SQLite and PostgreSQL.

Uses DATABASE_URL environment variable to determine which backend to use:
- If DATABASE_URL starts with "postgres://", use PostgreSQL
- Otherwise, use SQLite (default behavior)
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional, Union

from loguru import logger


def get_database_url() -> Optional[str]:
    """Get DATABASE_URL from environment."""
    return os.environ.get("DATABASE_URL")


def is_postgres() -> bool:
    """Check if using PostgreSQL."""
    url = get_database_url()
    return url is not None and url.startswith(("postgres://", "postgresql://"))


def _convert_query_placeholders(query: str) -> str:
    """Convert SQLite ? placeholders to PostgreSQL %s placeholders."""
    # Simple conversion - doesn't handle ? inside strings
    return query.replace("?", "%s")


class PostgresCursor:
    """Wrapper around psycopg2 cursor to provide dict-like row access."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor
        self._columns: Optional[list[str]] = None

    def execute(self, query: str, params: tuple = ()) -> "PostgresCursor":
        pg_query = _convert_query_placeholders(query)
        self._cursor.execute(pg_query, params)
        if self._cursor.description:
            self._columns = [desc[0] for desc in self._cursor.description]
        return self

    def fetchone(self) -> Optional[dict[str, Any]]:
        row = self._cursor.fetchone()
        if row is None or self._columns is None:
            return None
        return dict(zip(self._columns, row))

    def fetchall(self) -> list[dict[str, Any]]:
        rows = self._cursor.fetchall()
        if not self._columns:
            return []
        return [dict(zip(self._columns, row)) for row in rows]

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    def close(self) -> None:
        self._cursor.close()


class PostgresConnection:
    """Wrapper around psycopg2 connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    def execute(self, query: str, params: tuple = ()) -> PostgresCursor:
        cursor = PostgresCursor(self._conn.cursor())
        cursor.execute(query, params)
        return cursor

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


StationConnection = Union[sqlite3.Connection, PostgresConnection]


def connect() -> StationConnection:
    """Open a connection to the configured backend.

    The caller owns the connection and must close it. Long-running
    processes (the boundary watcher) keep one open and replace it
    when a liveness probe fails.
    """
    if is_postgres():
        import psycopg2

        logger.debug("Connecting to PostgreSQL")
        return PostgresConnection(psycopg2.connect(get_database_url(), connect_timeout=5))

    from .database import connect_sqlite

    return connect_sqlite()


@contextmanager
def get_station_db_connection() -> Iterator[StationConnection]:
    """
    Get a database connection for the station core.

    Uses DATABASE_URL if set (PostgreSQL), otherwise falls back to SQLite.
    """
    conn = connect()
    try:
        yield conn
    finally:
        conn.close()


def begin_transaction(conn: StationConnection) -> None:
    """Start a write transaction.

    SQLite takes the database write lock up front (BEGIN IMMEDIATE) so a
    read-modify-write sequence cannot interleave with another writer.
    psycopg2 opens transactions implicitly on the first statement.
    """
    if isinstance(conn, sqlite3.Connection):
        if conn.in_transaction:
            conn.commit()
        conn.execute("BEGIN IMMEDIATE")


def ping(conn: Optional[StationConnection]) -> bool:
    """Trivial liveness probe. Returns False instead of raising."""
    if conn is None:
        return False
    try:
        conn.execute("SELECT 1").fetchone()
        return True
    except Exception as e:
        logger.debug(f"Liveness probe failed: {e}")
        return False


def parse_int_array(value: Any) -> Optional[list[int]]:
    """Normalize an integer array column across backends.

    PostgreSQL returns a list; SQLite stores "1,2,3". Braced ("{1,2}")
    and bracketed ("[1,2]") text forms are accepted too.

    Returns:
        List of ints, or None when the column is NULL
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [int(v) for v in value]
    text = str(value).strip().strip("{}[]")
    if not text:
        return []
    return [int(part) for part in text.split(",") if part.strip()]


def to_db_int_array(values: Optional[Iterable[int]], conn: StationConnection) -> Any:
    """Convert a list of ints to the column representation for conn's backend."""
    if values is None:
        return None
    values = [int(v) for v in values]
    if isinstance(conn, PostgresConnection):
        return values
    return ",".join(str(v) for v in values)


def init_postgres_schema() -> None:
    """Initialize PostgreSQL schema for the station tables."""
    if not is_postgres():
        logger.debug("Not using PostgreSQL, skipping schema init")
        return

    import psycopg2

    logger.info("Initializing PostgreSQL schema for rotaplay...")

    conn = psycopg2.connect(get_database_url())
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS categories (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            rotation_weight REAL NOT NULL DEFAULT 1.0
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS songs (
            id SERIAL PRIMARY KEY,
            artist_id INTEGER NOT NULL,
            category_id INTEGER NOT NULL REFERENCES categories(id),
            title TEXT NOT NULL DEFAULT '',
            duration_ms INTEGER NOT NULL DEFAULT 0,
            rotation_weight REAL NOT NULL DEFAULT 1.0,
            is_active BOOLEAN NOT NULL DEFAULT TRUE
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS playlists (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            cycle_count INTEGER NOT NULL DEFAULT 0
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS playlist_songs (
            playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
            song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            played_in_cycle BOOLEAN NOT NULL DEFAULT FALSE,
            last_cycle_played INTEGER,
            PRIMARY KEY (playlist_id, song_id),
            UNIQUE (playlist_id, position)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS schedules (
            id SERIAL PRIMARY KEY,
            playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
            days_of_week INTEGER[],
            start_date DATE,
            end_date DATE,
            start_time TIME NOT NULL,
            end_time TIME NOT NULL,
            priority INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT TRUE
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS rotation_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            current_playlist_id INTEGER REFERENCES playlists(id) ON DELETE SET NULL,
            is_playing BOOLEAN NOT NULL DEFAULT FALSE,
            is_emergency BOOLEAN NOT NULL DEFAULT FALSE,
            current_position INTEGER NOT NULL DEFAULT 0,
            current_cycle INTEGER NOT NULL DEFAULT 0,
            playback_offset_ms INTEGER NOT NULL DEFAULT 0,
            songs_since_jingle INTEGER NOT NULL DEFAULT 0,
            last_artist_ids INTEGER[] NOT NULL DEFAULT '{}'
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS play_history (
            id SERIAL PRIMARY KEY,
            song_id INTEGER NOT NULL,
            started_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_play_history_started ON play_history(started_at DESC)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_schedules_playlist ON schedules(playlist_id)")

    conn.commit()
    cursor.close()
    conn.close()

    logger.info("PostgreSQL schema initialized")


def init_schema() -> None:
    """Create the schema for whichever backend is configured."""
    if is_postgres():
        init_postgres_schema()
    else:
        from .database import init_database

        init_database()
