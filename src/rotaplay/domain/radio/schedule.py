"""
Schedule resolution for the station.

Answers "which playlist should be airing right now" from wall-clock time,
the station timezone and the schedules table.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from rotaplay.core.database import get_setting
from rotaplay.core.db_adapter import (
    StationConnection,
    get_station_db_connection,
    parse_int_array,
)

from .models import Schedule

TIMEZONE_SETTING = "station_timezone"

# Stands in for "24:00", which datetime.time cannot represent
END_OF_DAY = time.max


def _parse_time(value: Any) -> time:
    """Parse "HH:MM[:SS]" strings; pass time objects through.

    "24:00" and "24:00:00" parse to END_OF_DAY.
    """
    if isinstance(value, time):
        return value
    text = str(value).strip()
    if text in ("24:00", "24:00:00"):
        return END_OF_DAY
    return time.fromisoformat(text)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _row_to_schedule(row: dict[str, Any]) -> Schedule:
    """Convert database row to Schedule dataclass."""
    days = parse_int_array(row["days_of_week"])
    return Schedule(
        id=row["id"],
        playlist_id=row["playlist_id"],
        start_time=_parse_time(row["start_time"]),
        end_time=_parse_time(row["end_time"]),
        priority=int(row["priority"] or 0),
        days_of_week=frozenset(days) if days is not None else None,
        start_date=_parse_date(row["start_date"]),
        end_date=_parse_date(row["end_date"]),
        is_active=bool(row["is_active"]),
        playlist_active=bool(row["playlist_active"]),
    )


def time_in_range(start: time, end: time, check_time: time) -> bool:
    """Check if a time falls within [start, end).

    The end is exclusive so adjacent blocks never both match the boundary
    instant. Blocks whose end is not after their start never match. An end
    of END_OF_DAY covers the rest of the day.

    Examples:
        time_in_range(time(9), time(17), time(12))  # True
        time_in_range(time(9), time(17), time(17))  # False (end is exclusive)
    """
    if end == END_OF_DAY:
        return start <= check_time
    return start <= check_time < end


def get_zone(name: str) -> ZoneInfo:
    """Load an IANA zone, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown station timezone {name!r}, using UTC")
        return ZoneInfo("UTC")


def to_station_time(now: datetime, tz_name: str) -> datetime:
    """Convert an instant to station-local time. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(get_zone(tz_name))


def schedule_matches(schedule: Schedule, local_now: datetime) -> bool:
    """Check whether a schedule covers a station-local instant."""
    if not (schedule.is_active and schedule.playlist_active):
        return False

    today = local_now.date()
    if schedule.days_of_week is not None and today.weekday() not in schedule.days_of_week:
        return False
    if schedule.start_date is not None and today < schedule.start_date:
        return False
    if schedule.end_date is not None and today > schedule.end_date:
        return False

    return time_in_range(schedule.start_time, schedule.end_time, local_now.time())


def resolve_schedule(
    schedules: Iterable[Schedule], now: datetime, tz_name: str
) -> Optional[Schedule]:
    """Pick the schedule that should be airing at `now`.

    Pure function: no state, safe to call arbitrarily often.

    Args:
        schedules: Candidate schedules
        now: Instant to resolve (naive values are UTC)
        tz_name: Station IANA timezone

    Returns:
        The highest-priority matching schedule (lowest id on ties),
        or None if nothing matches
    """
    local_now = to_station_time(now, tz_name)
    matches = [s for s in schedules if schedule_matches(s, local_now)]
    if not matches:
        return None
    return min(matches, key=lambda s: (-s.priority, s.id))


def load_schedules(conn: StationConnection) -> list[Schedule]:
    """Load active schedules whose playlist is active too."""
    cursor = conn.execute(
        """
        SELECT
            s.id, s.playlist_id, s.days_of_week, s.start_date, s.end_date,
            CAST(s.start_time AS TEXT) AS start_time,
            CAST(s.end_time AS TEXT) AS end_time,
            s.priority, s.is_active,
            p.is_active AS playlist_active
        FROM schedules s
        JOIN playlists p ON p.id = s.playlist_id
        WHERE s.is_active = TRUE
          AND p.is_active = TRUE
        ORDER BY s.priority DESC, s.id ASC
        """
    )
    schedules = []
    for row in cursor.fetchall():
        row = dict(row)
        try:
            schedules.append(_row_to_schedule(row))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable schedule #{row['id']}: {e}")
    return schedules


def get_station_timezone(conn: StationConnection, default: str = "UTC") -> str:
    """Read the station timezone setting."""
    return get_setting(conn, TIMEZONE_SETTING, default)


def get_active_schedule(
    conn: Optional[StationConnection] = None,
    now: Optional[datetime] = None,
    default_timezone: str = "UTC",
) -> Optional[Schedule]:
    """Resolve the schedule that should be airing now.

    Args:
        conn: Open connection (a new one is opened if omitted)
        now: Instant to resolve (defaults to the current time)
        default_timezone: Used when the settings table has no timezone

    Returns:
        The resolved Schedule, or None if no schedule covers this instant
    """
    if conn is None:
        with get_station_db_connection() as own_conn:
            return get_active_schedule(own_conn, now, default_timezone)

    now = now or datetime.now(timezone.utc)
    tz_name = get_station_timezone(conn, default_timezone)
    return resolve_schedule(load_schedules(conn), now, tz_name)
