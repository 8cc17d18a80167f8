"""Shared fixtures: a throwaway SQLite station database."""

import sqlite3
from pathlib import Path
from typing import Iterator, Optional

import pytest

import rotaplay.core.database as db_module
from rotaplay.core.database import get_db_connection, init_database


class StationBuilder:
    """Inserts fixture rows into the test database."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def category(self, name: str = "Current", weight: float = 1.0) -> int:
        cursor = self.conn.execute(
            "INSERT INTO categories (name, rotation_weight) VALUES (?, ?)", (name, weight)
        )
        self.conn.commit()
        return cursor.lastrowid

    def song(
        self,
        artist_id: int,
        category_id: int,
        title: str = "",
        weight: float = 1.0,
        is_active: bool = True,
        duration_ms: int = 180_000,
    ) -> int:
        cursor = self.conn.execute(
            """
            INSERT INTO songs (artist_id, category_id, title, duration_ms, rotation_weight, is_active)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (artist_id, category_id, title, duration_ms, weight, is_active),
        )
        self.conn.commit()
        return cursor.lastrowid

    def playlist(self, name: str = "Daytime", is_active: bool = True) -> int:
        cursor = self.conn.execute(
            "INSERT INTO playlists (name, is_active) VALUES (?, ?)", (name, is_active)
        )
        self.conn.commit()
        return cursor.lastrowid

    def add(
        self, playlist_id: int, song_id: int, position: int, played: bool = False
    ) -> None:
        self.conn.execute(
            """
            INSERT INTO playlist_songs (playlist_id, song_id, position, played_in_cycle)
            VALUES (?, ?, ?, ?)
            """,
            (playlist_id, song_id, position, played),
        )
        self.conn.commit()

    def schedule(
        self,
        playlist_id: int,
        start_time: str,
        end_time: str,
        priority: int = 0,
        days_of_week: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        is_active: bool = True,
    ) -> int:
        cursor = self.conn.execute(
            """
            INSERT INTO schedules (
                playlist_id, days_of_week, start_date, end_date,
                start_time, end_time, priority, is_active
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                playlist_id,
                days_of_week,
                start_date,
                end_date,
                start_time,
                end_time,
                priority,
                is_active,
            ),
        )
        self.conn.commit()
        return cursor.lastrowid

    def play(self, song_id: int, started_at: str) -> None:
        self.conn.execute(
            "INSERT INTO play_history (song_id, started_at) VALUES (?, ?)",
            (song_id, started_at),
        )
        self.conn.commit()

    def setting(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT (key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        self.conn.commit()

    def positions(self, playlist_id: int) -> dict[int, int]:
        rows = self.conn.execute(
            "SELECT song_id, position FROM playlist_songs WHERE playlist_id = ?",
            (playlist_id,),
        ).fetchall()
        return {row["song_id"]: row["position"] for row in rows}


@pytest.fixture
def test_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the station at a fresh SQLite file with the full schema."""
    db_path = tmp_path / "rotaplay.db"
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr(db_module, "get_database_path", lambda: db_path)
    init_database()
    return db_path


@pytest.fixture
def conn(test_db: Path) -> Iterator[sqlite3.Connection]:
    """An open connection to the test database."""
    with get_db_connection() as connection:
        yield connection


@pytest.fixture
def station(conn: sqlite3.Connection) -> StationBuilder:
    return StationBuilder(conn)
