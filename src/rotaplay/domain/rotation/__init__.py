"""
Rotation domain module.

Weighted shuffling with artist/category/title separation, two-phase
persistence of the shuffled order, repeat blocking and next-song selection.
"""

from .models import RotationSong, SongPick
from .titles import base_title
from .shuffle import (
    build_rotation_order,
    enforce_artist_separation,
    enforce_category_separation,
    enforce_separation,
    enforce_title_separation,
    weighted_shuffle,
)
from .engine import (
    PositionPlan,
    apply_position_plan,
    generate_cycle_order,
    plan_position_writes,
    reshuffle_playlist,
    shuffle_remaining,
    start_new_cycle,
)
from .blocking import is_artist_blocked, is_title_blocked
from .picker import commit_song_pick, record_play_started, select_next_song

__all__ = [
    # Models
    "RotationSong",
    "SongPick",
    # Shuffle
    "base_title",
    "build_rotation_order",
    "enforce_artist_separation",
    "enforce_category_separation",
    "enforce_separation",
    "enforce_title_separation",
    "weighted_shuffle",
    # Persistence
    "PositionPlan",
    "apply_position_plan",
    "generate_cycle_order",
    "plan_position_writes",
    "reshuffle_playlist",
    "shuffle_remaining",
    "start_new_cycle",
    # Blocking
    "is_artist_blocked",
    "is_title_blocked",
    # Selection
    "commit_song_pick",
    "record_play_started",
    "select_next_song",
]
