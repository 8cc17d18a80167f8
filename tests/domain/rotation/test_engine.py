"""Tests for the rotation engine and its position persistence."""

import random
import threading
from unittest.mock import patch

import pytest

import rotaplay.domain.rotation.engine as engine_module
from rotaplay.domain.rotation.engine import (
    POSITION_PARK_OFFSET,
    generate_cycle_order,
    park_position,
    plan_position_writes,
    reshuffle_playlist,
    shuffle_remaining,
    start_new_cycle,
)
from rotaplay.exceptions import PlaylistNotFoundError


def apply_plan_checked(positions: dict[int, int], plan) -> dict[int, int]:
    """Apply a plan write by write, failing on any duplicate position."""
    positions = dict(positions)
    for song_id, position in plan.park + plan.final:
        holders = {s for s, p in positions.items() if p == position and s != song_id}
        assert not holders, f"position {position} already held by {holders}"
        positions[song_id] = position
    return positions


def make_playlist(station, artists: list[int], played: set[int] = frozenset()) -> tuple[int, list[int]]:
    """Create a playlist whose songs sit at positions 1..n."""
    category_id = station.category()
    playlist_id = station.playlist()
    song_ids = []
    for position, artist_id in enumerate(artists, start=1):
        song_id = station.song(artist_id, category_id, title=f"Song {position}")
        station.add(playlist_id, song_id, position, played=position in played)
        song_ids.append(song_id)
    return playlist_id, song_ids


def played_flags(conn, playlist_id: int) -> dict[int, bool]:
    rows = conn.execute(
        "SELECT song_id, played_in_cycle FROM playlist_songs WHERE playlist_id = ?",
        (playlist_id,),
    ).fetchall()
    return {row["song_id"]: bool(row["played_in_cycle"]) for row in rows}


def cycle_count(conn, playlist_id: int) -> int:
    row = conn.execute("SELECT cycle_count FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
    return row["cycle_count"]


class TestPlanPositionWrites:
    """Tests for plan_position_writes function."""

    def test_reverse_order_never_collides(self) -> None:
        current = {10: 1, 11: 2, 12: 3, 13: 4, 14: 5}
        plan = plan_position_writes(current, [14, 13, 12, 11, 10], start_position=1)

        result = apply_plan_checked(current, plan)

        assert result == {14: 1, 13: 2, 12: 3, 11: 4, 10: 5}

    def test_overlapping_ranges(self) -> None:
        """Moving songs from 1..5 to 3..7 passes through no duplicate state."""
        current = {1: 1, 2: 2, 3: 3, 4: 4, 5: 5}
        plan = plan_position_writes(current, [3, 1, 5, 2, 4], start_position=3)

        result = apply_plan_checked(current, plan)

        assert sorted(result.values()) == [3, 4, 5, 6, 7]
        assert result[3] == 3 and result[4] == 7

    def test_parked_positions_are_negative(self) -> None:
        plan = plan_position_writes({1: 1, 2: 2}, [2, 1], start_position=1)
        assert all(position < 0 for _, position in plan.park)
        assert park_position(0) == -POSITION_PARK_OFFSET

    def test_leftovers_are_appended(self) -> None:
        """Touched rows missing from the new order go after it, in prior order."""
        current = {1: 1, 2: 2, 3: 3, 4: 4}
        plan = plan_position_writes(current, [4, 1], start_position=1)

        assert plan.final == [(4, 1), (1, 2), (2, 3), (3, 4)]

    def test_unknown_song_rejected(self) -> None:
        with pytest.raises(ValueError):
            plan_position_writes({1: 1}, [1, 2], start_position=1)

    def test_empty(self) -> None:
        plan = plan_position_writes({}, [], start_position=1)
        assert plan.park == [] and plan.final == []


class TestGenerateCycleOrder:
    """Tests for generate_cycle_order against SQLite."""

    def test_positions_are_a_permutation(self, conn, station) -> None:
        playlist_id, song_ids = make_playlist(station, [1, 2, 3, 4, 5, 6])

        count = generate_cycle_order(playlist_id, conn, rng=random.Random(1))

        assert count == 6
        positions = station.positions(playlist_id)
        assert set(positions) == set(song_ids)
        assert sorted(positions.values()) == [1, 2, 3, 4, 5, 6]

    def test_empty_playlist_is_noop(self, conn, station) -> None:
        playlist_id = station.playlist()
        assert generate_cycle_order(playlist_id, conn) == 0

    def test_inactive_song_moved_after_active_songs(self, conn, station) -> None:
        category_id = station.category()
        playlist_id = station.playlist()
        active = [station.song(i, category_id) for i in (1, 2, 3)]
        inactive = station.song(4, category_id, is_active=False)
        station.add(playlist_id, active[0], 1)
        station.add(playlist_id, inactive, 2)
        station.add(playlist_id, active[1], 3)
        station.add(playlist_id, active[2], 4)

        count = generate_cycle_order(playlist_id, conn, rng=random.Random(3))

        assert count == 3
        positions = station.positions(playlist_id)
        assert positions[inactive] == 4
        assert sorted(positions[s] for s in active) == [1, 2, 3]

    def test_other_playlists_untouched(self, conn, station) -> None:
        first, _ = make_playlist(station, [1, 2, 3])
        second, _ = make_playlist(station, [4, 5, 6])
        before = station.positions(second)

        generate_cycle_order(first, conn, rng=random.Random(2))

        assert station.positions(second) == before

    def test_opens_own_connection(self, test_db, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2, 3])
        assert generate_cycle_order(playlist_id, rng=random.Random(4)) == 3


class TestShuffleRemaining:
    """Tests for shuffle_remaining function."""

    def test_played_songs_keep_positions(self, conn, station) -> None:
        playlist_id, song_ids = make_playlist(station, [1, 2, 3, 4, 5], played={1, 2})

        count = shuffle_remaining(playlist_id, conn, rng=random.Random(5))

        assert count == 3
        positions = station.positions(playlist_id)
        assert positions[song_ids[0]] == 1
        assert positions[song_ids[1]] == 2
        assert sorted(positions[s] for s in song_ids[2:]) == [3, 4, 5]

    def test_unplayed_placed_after_highest_played(self, conn, station) -> None:
        playlist_id, song_ids = make_playlist(station, [1, 2, 3, 4, 5], played={1, 4})

        shuffle_remaining(playlist_id, conn, rng=random.Random(6))

        positions = station.positions(playlist_id)
        assert positions[song_ids[0]] == 1
        assert positions[song_ids[3]] == 4
        unplayed = [song_ids[1], song_ids[2], song_ids[4]]
        assert sorted(positions[s] for s in unplayed) == [5, 6, 7]

    def test_exhausted_cycle_returns_zero(self, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2, 3], played={1, 2, 3})
        before = station.positions(playlist_id)

        assert shuffle_remaining(playlist_id, conn) == 0
        assert station.positions(playlist_id) == before

    def test_played_flags_untouched(self, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2, 3, 4], played={1})
        before = played_flags(conn, playlist_id)

        shuffle_remaining(playlist_id, conn, rng=random.Random(7))

        assert played_flags(conn, playlist_id) == before


class TestStartNewCycle:
    """Tests for start_new_cycle function."""

    def test_resets_played_and_bumps_cycle(self, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2, 3], played={1, 2, 3})

        count = start_new_cycle(playlist_id, conn, rng=random.Random(8))

        assert count == 3
        assert not any(played_flags(conn, playlist_id).values())
        assert cycle_count(conn, playlist_id) == 1
        assert sorted(station.positions(playlist_id).values()) == [1, 2, 3]

    def test_failure_rolls_back(self, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2, 3], played={1, 2})
        before = station.positions(playlist_id)

        with patch(
            "rotaplay.domain.rotation.engine.apply_position_plan",
            side_effect=RuntimeError("disk full"),
        ):
            with pytest.raises(RuntimeError):
                start_new_cycle(playlist_id, conn)

        assert cycle_count(conn, playlist_id) == 0
        assert sum(played_flags(conn, playlist_id).values()) == 2
        assert station.positions(playlist_id) == before


class TestReshufflePlaylist:
    """Tests for the operator reshuffle entry point."""

    def test_unknown_playlist(self, conn) -> None:
        with pytest.raises(PlaylistNotFoundError) as exc_info:
            reshuffle_playlist(999, conn)
        assert exc_info.value.playlist_id == 999
        assert "#999" in str(exc_info.value)

    def test_reshuffles_remaining(self, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2, 3, 4], played={1})

        count, new_cycle = reshuffle_playlist(playlist_id, conn, rng=random.Random(9))

        assert (count, new_cycle) == (3, False)
        assert cycle_count(conn, playlist_id) == 0

    def test_starts_new_cycle_when_exhausted(self, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2, 3], played={1, 2, 3})

        count, new_cycle = reshuffle_playlist(playlist_id, conn, rng=random.Random(10))

        assert (count, new_cycle) == (3, True)
        assert cycle_count(conn, playlist_id) == 1

    def test_lock_held_between_remaining_and_new_cycle(self, conn, station) -> None:
        playlist_id, _ = make_playlist(station, [1, 2], played={1, 2})
        lock_free = []

        def other_thread_can_lock(*args, **kwargs) -> int:
            lock = engine_module._playlist_locks[playlist_id]
            result = []

            def try_lock() -> None:
                acquired = lock.acquire(blocking=False)
                if acquired:
                    lock.release()
                result.append(acquired)

            thread = threading.Thread(target=try_lock)
            thread.start()
            thread.join()
            lock_free.append(result[0])
            return 0

        with patch.object(engine_module, "shuffle_remaining", side_effect=other_thread_can_lock), \
                patch.object(engine_module, "start_new_cycle", side_effect=other_thread_can_lock):
            reshuffle_playlist(playlist_id, conn)

        assert lock_free == [False, False]
