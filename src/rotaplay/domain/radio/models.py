"""
Radio domain models.

Contains data structures for representing schedules and playback state.
"""

from dataclasses import dataclass, field
from datetime import date, time
from typing import Optional


@dataclass(frozen=True)
class Schedule:
    """A time block during which a playlist should air.

    Times are local to the station timezone. Overlapping blocks are
    allowed; the highest priority wins.
    """

    id: int
    playlist_id: int
    start_time: time
    end_time: time  # Exclusive
    priority: int = 0
    days_of_week: Optional[frozenset[int]] = None  # Monday = 0; None = every day
    start_date: Optional[date] = None  # Inclusive
    end_date: Optional[date] = None  # Inclusive
    is_active: bool = True
    playlist_active: bool = True


@dataclass(frozen=True)
class RotationState:
    """Snapshot of the singleton rotation_state row.

    The single source of truth for what is actually on air.
    """

    current_playlist_id: Optional[int] = None
    is_playing: bool = False
    is_emergency: bool = False
    current_position: int = 0
    current_cycle: int = 0
    playback_offset_ms: int = 0
    songs_since_jingle: int = 0
    last_artist_ids: tuple[int, ...] = field(default_factory=tuple)
