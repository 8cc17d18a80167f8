"""
Weighted shuffle and separation passes.

Pure functions over in-memory song lists. Nothing here touches the
database; engine.py loads songs, runs this pipeline and persists the
resulting order.
"""

import random
from typing import Callable, Hashable, Optional, Sequence

from .models import RotationSong
from .titles import base_title

# Minimum weight a candidate gets in the weighted draw. Changing it changes
# how often zero-weight songs surface early in a cycle.
WEIGHT_FLOOR = 0.01

DEFAULT_ARTIST_GAP = 6
DEFAULT_CATEGORY_GAP = 1
DEFAULT_TITLE_GAP = 2


def weighted_shuffle(
    songs: Sequence[RotationSong], rng: Optional[random.Random] = None
) -> list[RotationSong]:
    """Weighted Fisher-Yates shuffle.

    Songs with a higher effective weight tend to appear earlier, but every
    song appears exactly once. A low-weight song can still land early by
    chance; the bias is proportional, not a sort.

    Args:
        songs: Songs to order
        rng: Random source (defaults to a fresh, unseeded random.Random)

    Returns:
        New list with songs in shuffled order
    """
    rng = rng or random.Random()
    ordered = list(songs)
    length = len(ordered)
    if length <= 1:
        return ordered

    for i in range(length - 1):
        cumulative: list[float] = []
        total = 0.0
        for candidate in ordered[i:]:
            total += max(WEIGHT_FLOOR, float(candidate.effective_weight))
            cumulative.append(total)

        draw = rng.random() * total
        pick = i
        for offset, threshold in enumerate(cumulative):
            if threshold >= draw:
                pick = i + offset
                break

        if pick != i:
            ordered[i], ordered[pick] = ordered[pick], ordered[i]

    return ordered


def _would_collide_at(
    keys: Sequence[Optional[Hashable]], from_idx: int, to_idx: int, min_gap: int
) -> bool:
    """Would placing keys[from_idx] at to_idx collide within min_gap either side?"""
    value = keys[from_idx]
    if value is None:
        return False
    start = max(0, to_idx - min_gap)
    end = min(len(keys) - 1, to_idx + min_gap)
    for k in range(start, end + 1):
        if k in (to_idx, from_idx):
            continue
        if keys[k] == value:
            return True
    return False


def _has_collision(keys: Sequence[Optional[Hashable]], i: int, min_gap: int) -> bool:
    """Does keys[i] repeat within the previous min_gap positions?"""
    value = keys[i]
    if value is None:
        return False
    return value in keys[max(0, i - min_gap) : i]


def enforce_separation(
    songs: Sequence[RotationSong],
    min_gap: int,
    key: Callable[[RotationSong], Optional[Hashable]],
) -> list[RotationSong]:
    """Reorder so no two songs sharing a key sit within min_gap positions.

    Scans left to right. When songs[i] repeats a key from the previous
    min_gap slots, the nearest later song that would not collide around i
    is swapped into place. If no such song exists the collision stays
    (best effort). A key of None never collides.

    min_gap is clamped to len(songs) // 2 so small playlists stay satisfiable.

    Returns:
        New list with the same songs, reordered
    """
    ordered = list(songs)
    length = len(ordered)
    if length <= 1:
        return ordered

    min_gap = min(min_gap, length // 2)
    if min_gap <= 0:
        return ordered

    keys = [key(song) for song in ordered]

    for i in range(1, length):
        if not _has_collision(keys, i, min_gap):
            continue

        for j in range(i + 1, length):
            if not _would_collide_at(keys, j, i, min_gap):
                ordered[i], ordered[j] = ordered[j], ordered[i]
                keys[i], keys[j] = keys[j], keys[i]
                break
        # No candidate: leave the collision in place

    return ordered


def enforce_artist_separation(
    songs: Sequence[RotationSong], min_gap: int = DEFAULT_ARTIST_GAP
) -> list[RotationSong]:
    """Keep songs by the same artist at least min_gap slots apart."""
    return enforce_separation(songs, min_gap, key=lambda s: s.artist_id)


def enforce_category_separation(
    songs: Sequence[RotationSong], min_gap: int = DEFAULT_CATEGORY_GAP
) -> list[RotationSong]:
    """Keep songs of the same category apart (default: no back-to-back)."""
    return enforce_separation(songs, min_gap, key=lambda s: s.category_id)


def enforce_title_separation(
    songs: Sequence[RotationSong], min_gap: int = DEFAULT_TITLE_GAP
) -> list[RotationSong]:
    """Keep renditions of the same base title apart.

    "Song (Remix)" and "Song - Acoustic" share the base title "song".
    Songs whose base title is empty are never considered duplicates.
    """
    return enforce_separation(songs, min_gap, key=lambda s: base_title(s.title) or None)


def build_rotation_order(
    songs: Sequence[RotationSong],
    artist_gap: int = DEFAULT_ARTIST_GAP,
    category_gap: int = DEFAULT_CATEGORY_GAP,
    title_gap: int = DEFAULT_TITLE_GAP,
    rng: Optional[random.Random] = None,
) -> list[RotationSong]:
    """Run the full ordering pipeline.

    Weighted shuffle, then artist, category and title separation in that
    fixed order. Later passes may disturb earlier ones slightly; each pass
    only swaps, so the result is always a permutation of the input.
    """
    ordered = weighted_shuffle(songs, rng=rng)
    ordered = enforce_artist_separation(ordered, artist_gap)
    ordered = enforce_category_separation(ordered, category_gap)
    ordered = enforce_title_separation(ordered, title_gap)
    return ordered
