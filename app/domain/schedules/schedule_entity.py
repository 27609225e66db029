"""
Schedule Domain Entity
======================

A weekly watering window for one registration, stored in UTC.

- Days of week filtering (0=Monday, 6=Sunday)
- Enable/disable without deletion; an inactive schedule sends nothing
- Keeps the owner's UTC offset and start-boundary days so the local window
  can be shown back exactly
"""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from app.domain.schedules.normalization import (
    LocalWindow,
    UtcWindow,
    denormalize_from_utc,
    parse_time_of_day,
)
from app.enums.device import DesiredState
from app.schemas.events import ActuationCommandPayload
from app.utils.time import coerce_datetime, utc_now

logger = logging.getLogger(__name__)


def _parse_days(value: Any) -> list[int]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            value = [part for part in value.split(",") if part.strip()]
    return sorted({int(day) for day in value})


@dataclass
class Schedule:
    """
    Watering window for a registration.

    Attributes:
        schedule_id: Unique identifier (None for new schedules)
        registration_serial: Serial number of the controlled unit
        name: Human-readable schedule name
        start_time: UTC start time in HH:MM format
        end_time: UTC end time in HH:MM format
        days_of_week: UTC weekdays either boundary fires on
        start_days_of_week: UTC weekdays of the start boundary alone
        utc_offset_minutes: Offset the owner entered the window in
        active: Whether the engine evaluates this schedule
        topic: Base topic of the registration, filled by joined reads
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    schedule_id: int | None = None
    registration_serial: str = ""
    name: str = ""

    start_time: str = "00:00"
    end_time: str = "00:00"
    days_of_week: list[int] = field(default_factory=list)
    start_days_of_week: list[int] = field(default_factory=list)
    utc_offset_minutes: int = 0

    active: bool = True
    topic: str | None = None

    created_at: datetime.datetime = field(default_factory=utc_now)
    updated_at: datetime.datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.days_of_week = _parse_days(self.days_of_week)
        self.start_days_of_week = _parse_days(self.start_days_of_week) or list(self.days_of_week)
        self.active = bool(self.active)

    @classmethod
    def from_window(
        cls,
        window: UtcWindow,
        *,
        registration_serial: str,
        utc_offset_minutes: int,
        name: str = "",
        active: bool = True,
    ) -> Schedule:
        return cls(
            registration_serial=registration_serial,
            name=name,
            start_time=window.start_time,
            end_time=window.end_time,
            days_of_week=list(window.days_of_week),
            start_days_of_week=list(window.start_days_of_week),
            utc_offset_minutes=utc_offset_minutes,
            active=active,
        )

    @property
    def start_minute(self) -> int:
        return parse_time_of_day(self.start_time)

    @property
    def end_minute(self) -> int:
        return parse_time_of_day(self.end_time)

    @property
    def end_days_of_week(self) -> list[int]:
        """UTC weekdays of the end boundary: the start days, one later when the window crosses UTC midnight."""
        shift = 1 if self.end_minute <= self.start_minute else 0
        end_days = {(day + shift) % 7 for day in self.start_days_of_week}
        return sorted(end_days & set(self.days_of_week))

    @property
    def is_zero_duration(self) -> bool:
        """A window whose start equals its end never fires."""
        return self.start_minute == self.end_minute

    def boundary_at(self, weekday: int, minute: int) -> DesiredState | None:
        """
        Which command, if any, this schedule issues at a UTC instant.

        Args:
            weekday: UTC weekday (0=Monday)
            minute: UTC minute of the day

        Returns:
            DesiredState.ON at the start boundary, DesiredState.OFF at the end
            boundary, None otherwise

        The start boundary matches on start days only and the end boundary on
        end days only, so a window crossing UTC midnight never fires an extra
        command on the neighbouring day.
        """
        if not self.active or self.is_zero_duration:
            return None
        if minute == self.start_minute and weekday in self.start_days_of_week:
            return DesiredState.ON
        if minute == self.end_minute and weekday in self.end_days_of_week:
            return DesiredState.OFF
        return None

    def to_local(self) -> LocalWindow:
        """Window in the offset it was entered with."""
        return denormalize_from_utc(
            self.start_time,
            self.end_time,
            self.start_days_of_week,
            self.utc_offset_minutes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "registration_serial": self.registration_serial,
            "name": self.name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "days_of_week": list(self.days_of_week),
            "start_days_of_week": list(self.start_days_of_week),
            "utc_offset_minutes": self.utc_offset_minutes,
            "active": self.active,
            "topic": self.topic,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Schedule:
        return Schedule(
            schedule_id=data.get("schedule_id"),
            registration_serial=data.get("registration_serial", ""),
            name=data.get("name") or "",
            start_time=data.get("start_time", "00:00"),
            end_time=data.get("end_time", "00:00"),
            days_of_week=data.get("days_of_week"),
            start_days_of_week=data.get("start_days_of_week"),
            utc_offset_minutes=int(data.get("utc_offset_minutes") or 0),
            active=bool(data.get("active", True)),
            topic=data.get("topic"),
            created_at=coerce_datetime(data.get("created_at")) or utc_now(),
            updated_at=coerce_datetime(data.get("updated_at")) or utc_now(),
        )


@dataclass(frozen=True)
class ActuationCommand:
    """A pump/valve command addressed to one controller."""

    topic: str
    desired_state: DesiredState
    registration_serial: str = ""
    schedule_id: int | None = None

    def payload(self) -> dict[str, str]:
        return ActuationCommandPayload.for_state(self.desired_state).model_dump()
