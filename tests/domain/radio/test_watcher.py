"""Tests for the schedule boundary watcher."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from rotaplay.core.config import Config
from rotaplay.core.db_adapter import connect
from rotaplay.domain.radio.state import update_rotation_state
from rotaplay.domain.radio.watcher import BoundaryWatcher, classify_divergence

MONDAY_NOON = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class StopLoop(Exception):
    pass


@pytest.fixture
def client() -> MagicMock:
    mock_client = MagicMock()
    mock_client.skip.return_value = True
    mock_client.host = "localhost"
    mock_client.port = 1234
    return mock_client


@pytest.fixture
def watcher(test_db, client):
    instance = BoundaryWatcher(client, clock=lambda: MONDAY_NOON)
    yield instance
    if instance._conn is not None:
        instance._conn.close()


class TestClassifyDivergence:
    """Tests for classify_divergence function."""

    def test_idle_to_active(self) -> None:
        assert classify_divergence(7, None, False) == "idle→active (playlist #7)"

    def test_same_playlist_no_signal(self) -> None:
        assert classify_divergence(3, 3, True) is None

    def test_playlist_change(self) -> None:
        assert classify_divergence(9, 3, True) == "playlist change (#3→#9)"

    def test_active_to_idle(self) -> None:
        assert classify_divergence(None, 3, True) == "active→idle (no schedule)"

    def test_idle_and_nothing_scheduled(self) -> None:
        assert classify_divergence(None, None, False) is None
        assert classify_divergence(None, 3, False) is None


class TestBoundaryWatcherTick:
    """Tests for BoundaryWatcher.tick against SQLite."""

    def test_first_tick_never_skips(self, watcher, client, station) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")

        assert watcher.tick() is None
        client.skip.assert_not_called()
        assert watcher.first_run is False

    def test_second_tick_skips_once(self, watcher, client, station) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")

        watcher.tick()
        reason = watcher.tick()

        assert reason == f"idle→active (playlist #{playlist_id})"
        client.skip.assert_called_once()

    def test_divergence_signalled_every_tick_until_resolved(self, watcher, client, station) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")

        watcher.tick()
        watcher.tick()
        watcher.tick()
        assert client.skip.call_count == 2

        update_rotation_state(current_playlist_id=playlist_id, is_playing=True)
        assert watcher.tick() is None
        assert client.skip.call_count == 2

    def test_matching_playlist_no_skip(self, watcher, client, station) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")
        update_rotation_state(current_playlist_id=playlist_id, is_playing=True)

        watcher.tick()
        assert watcher.tick() is None
        client.skip.assert_not_called()

    def test_playlist_change(self, watcher, client, station) -> None:
        old = station.playlist("Morning")
        new = station.playlist("Midday")
        station.schedule(new, "11:00", "13:00", priority=10)
        station.schedule(old, "06:00", "18:00", priority=1)
        update_rotation_state(current_playlist_id=old, is_playing=True)

        watcher.tick()
        reason = watcher.tick()

        assert reason == f"playlist change (#{old}→#{new})"
        client.skip.assert_called_once()

    def test_active_to_idle(self, watcher, client, station) -> None:
        playlist_id = station.playlist()
        update_rotation_state(current_playlist_id=playlist_id, is_playing=True)

        watcher.tick()
        assert watcher.tick() == "active→idle (no schedule)"

    @patch("rotaplay.domain.radio.watcher.logger")
    def test_in_sync_first_tick_logs_initial_state(
        self, mock_logger: MagicMock, watcher, client, station
    ) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")
        update_rotation_state(current_playlist_id=playlist_id, is_playing=True)

        watcher.tick()
        watcher.tick()

        initial = [
            c.args[0] for c in mock_logger.info.call_args_list
            if c.args[0].startswith("Initial state")
        ]
        assert initial == [f"Initial state: in sync (playlist #{playlist_id}, playing=True)"]
        client.skip.assert_not_called()

    def test_consistent_first_tick_does_not_suppress_later_change(
        self, watcher, client, station
    ) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")
        update_rotation_state(current_playlist_id=playlist_id, is_playing=True)

        assert watcher.tick() is None
        update_rotation_state(is_playing=False)

        assert watcher.tick() is not None
        client.skip.assert_called_once()

    def test_undelivered_skip_still_reports(self, watcher, client, station) -> None:
        client.skip.return_value = False
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")

        watcher.tick()
        assert watcher.tick() is not None

    def test_watcher_does_not_write_state(self, watcher, conn, station) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")
        update_rotation_state(conn, current_position=5)
        before = conn.execute("SELECT * FROM rotation_state").fetchone()

        watcher.tick()
        watcher.tick()

        assert tuple(conn.execute("SELECT * FROM rotation_state").fetchone()) == tuple(before)


class TestBoundaryWatcherResilience:
    """Tests for failure handling in the watcher loop."""

    def test_connect_failure_is_swallowed(self, test_db, client) -> None:
        failing = MagicMock(side_effect=OSError("connection refused"))
        watcher = BoundaryWatcher(client, connect_fn=failing, clock=lambda: MONDAY_NOON)

        assert watcher.tick() is None
        assert watcher.tick() is None
        assert failing.call_count == 2
        client.skip.assert_not_called()

    def test_failure_does_not_consume_first_tick(self, test_db, client, station) -> None:
        playlist_id = station.playlist()
        station.schedule(playlist_id, "09:00", "17:00")
        connect_fn = MagicMock(side_effect=[OSError("down"), connect()])
        watcher = BoundaryWatcher(client, connect_fn=connect_fn, clock=lambda: MONDAY_NOON)

        watcher.tick()
        watcher.tick()
        client.skip.assert_not_called()

        watcher.tick()
        client.skip.assert_called_once()
        watcher._conn.close()

    def test_reconnects_after_lost_connection(self, test_db, client) -> None:
        connect_fn = MagicMock(side_effect=lambda: connect())
        watcher = BoundaryWatcher(client, connect_fn=connect_fn, clock=lambda: MONDAY_NOON)

        watcher.tick()
        watcher._conn.close()
        watcher.tick()

        assert connect_fn.call_count == 2
        watcher._conn.close()

    def test_keeps_healthy_connection(self, test_db, client) -> None:
        connect_fn = MagicMock(side_effect=lambda: connect())
        watcher = BoundaryWatcher(client, connect_fn=connect_fn, clock=lambda: MONDAY_NOON)

        watcher.tick()
        watcher.tick()

        assert connect_fn.call_count == 1
        watcher._conn.close()


class TestRunForever:
    """Tests for the watcher loop."""

    def test_sleeps_interval_between_ticks(self, client) -> None:
        sleep = MagicMock(side_effect=[None, None, StopLoop()])
        watcher = BoundaryWatcher(client, interval_seconds=30.0, sleep=sleep)
        watcher.tick = MagicMock(return_value=None)

        with pytest.raises(StopLoop):
            watcher.run_forever()

        assert watcher.tick.call_count == 3
        sleep.assert_called_with(30.0)

    def test_from_config(self) -> None:
        config = Config()
        config.watcher.interval_seconds = 5.0
        config.liquidsoap.host = "radio.local"
        config.station.timezone = "Europe/Berlin"

        watcher = BoundaryWatcher.from_config(config)

        assert watcher.interval_seconds == 5.0
        assert watcher.client.host == "radio.local"
        assert watcher.default_timezone == "Europe/Berlin"
