"""
Schedule Domain Module
======================

Weekly watering windows, their UTC normalization and the commands they
produce.
"""

from app.domain.schedules.normalization import (
    LocalWindow,
    UtcWindow,
    denormalize_from_utc,
    normalize_to_utc,
    offset_minutes_for,
)
from app.domain.schedules.repository import ScheduleRepository
from app.domain.schedules.schedule_entity import ActuationCommand, Schedule

__all__ = [
    "ActuationCommand",
    "LocalWindow",
    "Schedule",
    "ScheduleRepository",
    "UtcWindow",
    "denormalize_from_utc",
    "normalize_to_utc",
    "offset_minutes_for",
]
