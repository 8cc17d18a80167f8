"""
Rotation domain models.

Contains data structures for songs being ordered and songs being picked.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RotationSong:
    """A playlist member as seen by the shuffle pipeline.

    effective_weight is song.rotation_weight * category.rotation_weight.
    """

    song_id: int
    artist_id: int
    category_id: int
    title: str = ""
    effective_weight: float = 1.0


@dataclass(frozen=True)
class SongPick:
    """The next song chosen for a playlist, ready to hand to the audio engine."""

    song_id: int
    playlist_id: int
    artist_id: int
    title: str
    position: int
    duration_ms: int
    cycle: int
    cycle_reset: bool = False
    blocked_fallback: bool = False  # Every candidate was blocked; first unplayed used
    category_id: Optional[int] = None
