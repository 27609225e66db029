"""
Schedule Service
================

Owner-facing schedule management. Windows come in local time with a UTC
offset (or an IANA zone), are normalized to UTC before they are stored and
converted back for display.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from app.domain.exceptions import ScheduleNormalizationError
from app.domain.schedules import LocalWindow, Schedule, normalize_to_utc, offset_minutes_for

if TYPE_CHECKING:
    from app.domain.schedules.repository import ScheduleRepository

logger = logging.getLogger(__name__)


class ScheduleService:
    def __init__(self, repository: "ScheduleRepository"):
        self.repository = repository

    @staticmethod
    def resolve_offset(utc_offset_minutes: int | None = None, timezone: str | None = None) -> int:
        if utc_offset_minutes is not None:
            return utc_offset_minutes
        if timezone:
            return offset_minutes_for(timezone)
        raise ScheduleNormalizationError("either utc_offset_minutes or timezone is required")

    def create_local_schedule(
        self,
        *,
        registration_serial: str,
        local_start: str,
        local_end: str,
        local_days: Iterable[int],
        utc_offset_minutes: int | None = None,
        timezone: str | None = None,
        name: str = "",
        active: bool = True,
    ) -> Schedule | None:
        """
        Normalize a local window and store it.

        Raises:
            ScheduleNormalizationError: Invalid time, offset, zone or day set
        """
        offset = self.resolve_offset(utc_offset_minutes, timezone)
        window = normalize_to_utc(local_start, local_end, local_days, offset)
        if window.is_zero_duration:
            logger.warning(
                "Schedule for %s starts and ends at %s; it will never fire",
                registration_serial,
                local_start,
            )
        schedule = Schedule.from_window(
            window,
            registration_serial=registration_serial,
            utc_offset_minutes=offset,
            name=name,
            active=active,
        )
        return self.repository.create(schedule)

    def update_local_window(
        self,
        schedule_id: int,
        *,
        local_start: str,
        local_end: str,
        local_days: Iterable[int],
        utc_offset_minutes: int | None = None,
        timezone: str | None = None,
    ) -> Schedule | None:
        schedule = self.repository.get_by_id(schedule_id)
        if schedule is None:
            return None
        offset = self.resolve_offset(utc_offset_minutes, timezone)
        window = normalize_to_utc(local_start, local_end, local_days, offset)
        schedule.start_time = window.start_time
        schedule.end_time = window.end_time
        schedule.days_of_week = list(window.days_of_week)
        schedule.start_days_of_week = list(window.start_days_of_week)
        schedule.utc_offset_minutes = offset
        return self.repository.update(schedule)

    def set_active(self, schedule_id: int, active: bool) -> bool:
        """Enable or disable a schedule. Takes effect on the next tick."""
        return self.repository.set_active(schedule_id, active)

    def to_local(self, schedule: Schedule) -> LocalWindow:
        return schedule.to_local()

    def list_local(self, registration_serial: str) -> list[tuple[Schedule, LocalWindow]]:
        return [(schedule, schedule.to_local()) for schedule in self.repository.get_by_serial(registration_serial)]
