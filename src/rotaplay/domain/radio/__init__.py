"""
Radio domain module.

Schedule resolution, the rotation state accessor and the schedule
boundary watcher.
"""

from .models import RotationState, Schedule
from .schedule import (
    get_active_schedule,
    get_station_timezone,
    load_schedules,
    resolve_schedule,
    schedule_matches,
    time_in_range,
)
from .state import (
    ensure_rotation_state,
    get_rotation_state,
    read_rotation_state,
    set_emergency,
    update_rotation_state,
)
from .watcher import BoundaryWatcher, classify_divergence

__all__ = [
    # Models
    "RotationState",
    "Schedule",
    # Schedules
    "get_active_schedule",
    "get_station_timezone",
    "load_schedules",
    "resolve_schedule",
    "schedule_matches",
    "time_in_range",
    # Rotation state
    "ensure_rotation_state",
    "get_rotation_state",
    "read_rotation_state",
    "set_emergency",
    "update_rotation_state",
    # Watcher
    "BoundaryWatcher",
    "classify_divergence",
]
