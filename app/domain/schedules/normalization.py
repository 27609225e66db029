"""
Schedule Normalization
======================

Converts a watering window entered in the owner's local time into the UTC
form the actuation engine evaluates, and back again for display.

Times are handled as minutes of the day. Shifting a boundary by the UTC
offset can move it to the previous or next UTC day, so the start and end
boundaries each carry their own day delta. When those deltas differ (a
window that straddles UTC midnight after the shift) the stored day set is
the union of both shifted sets so both boundaries keep firing.

Offsets are "minutes east of UTC": UTC-5 is ``-300``, UTC+5:30 is ``330``.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.domain.exceptions import ScheduleNormalizationError

MINUTES_PER_DAY = 24 * 60
DAYS_PER_WEEK = 7

# Range of real-world UTC offsets (UTC-12:00 to UTC+14:00)
MIN_UTC_OFFSET_MINUTES = -720
MAX_UTC_OFFSET_MINUTES = 840


@dataclass(frozen=True)
class UtcWindow:
    """A schedule window expressed in UTC."""

    start_time: str
    end_time: str
    days_of_week: tuple[int, ...]
    start_days_of_week: tuple[int, ...]
    end_days_of_week: tuple[int, ...]
    start_day_delta: int
    end_day_delta: int

    @property
    def is_zero_duration(self) -> bool:
        return self.start_time == self.end_time

    @property
    def crosses_utc_midnight(self) -> bool:
        return self.start_day_delta != self.end_day_delta


@dataclass(frozen=True)
class LocalWindow:
    """A schedule window expressed in the owner's local time."""

    start_time: str
    end_time: str
    days_of_week: tuple[int, ...]
    utc_offset_minutes: int


def parse_time_of_day(value: str | datetime.time) -> int:
    """Return minutes since midnight for an ``HH:MM`` string or a time."""
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise ScheduleNormalizationError(
            "time must be an HH:MM string", detail={"value": repr(value)}
        )
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise ScheduleNormalizationError("time must be in HH:MM format", detail={"value": value})
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23):
        raise ScheduleNormalizationError("hour must be between 0 and 23", detail={"value": value})
    if not (0 <= minute <= 59):
        raise ScheduleNormalizationError("minute must be between 0 and 59", detail={"value": value})
    return hour * 60 + minute


def format_time_of_day(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _validate_offset(utc_offset_minutes: int) -> int:
    if isinstance(utc_offset_minutes, bool) or not isinstance(utc_offset_minutes, int):
        raise ScheduleNormalizationError(
            "UTC offset must be an integer number of minutes",
            detail={"utc_offset_minutes": repr(utc_offset_minutes)},
        )
    return utc_offset_minutes


def _validate_days(days: Iterable[int]) -> frozenset[int]:
    if days is None:
        raise ScheduleNormalizationError("days of week are required")
    validated = set()
    for day in days:
        if isinstance(day, bool) or not isinstance(day, int) or not (0 <= day < DAYS_PER_WEEK):
            raise ScheduleNormalizationError(
                "days of week must be integers 0 (Monday) to 6 (Sunday)",
                detail={"day": repr(day)},
            )
        validated.add(int(day))
    if not validated:
        raise ScheduleNormalizationError("at least one day of week is required")
    return frozenset(validated)


def _shift(minutes: int, offset: int) -> tuple[int, int]:
    """Subtract ``offset`` from a minute of day; return (minute, day delta)."""
    shifted = minutes - offset
    day_delta = max(-1, min(1, shifted // MINUTES_PER_DAY))
    return shifted % MINUTES_PER_DAY, day_delta


def shift_days(days: Iterable[int], delta: int) -> tuple[int, ...]:
    """Move every weekday by ``delta`` days, wrapping around the week."""
    return tuple(sorted({(day + delta) % DAYS_PER_WEEK for day in days}))


def normalize_to_utc(
    local_start: str | datetime.time,
    local_end: str | datetime.time,
    local_days: Iterable[int],
    utc_offset_minutes: int,
) -> UtcWindow:
    """
    Convert a local window to UTC.

    Args:
        local_start: Local start time (HH:MM)
        local_end: Local end time (HH:MM)
        local_days: Local weekdays, 0=Monday ... 6=Sunday
        utc_offset_minutes: Owner's offset east of UTC in minutes

    Returns:
        UtcWindow whose ``days_of_week`` is the union of the start and end
        boundary day sets

    Raises:
        ScheduleNormalizationError: On malformed times, offsets or days
    """
    offset = _validate_offset(utc_offset_minutes)
    days = _validate_days(local_days)

    start_minutes, start_delta = _shift(parse_time_of_day(local_start), offset)
    end_minutes, end_delta = _shift(parse_time_of_day(local_end), offset)

    start_days = shift_days(days, start_delta)
    end_days = shift_days(days, end_delta)

    return UtcWindow(
        start_time=format_time_of_day(start_minutes),
        end_time=format_time_of_day(end_minutes),
        days_of_week=tuple(sorted(set(start_days) | set(end_days))),
        start_days_of_week=start_days,
        end_days_of_week=end_days,
        start_day_delta=start_delta,
        end_day_delta=end_delta,
    )


def denormalize_from_utc(
    utc_start: str | datetime.time,
    utc_end: str | datetime.time,
    utc_start_days: Iterable[int],
    utc_offset_minutes: int,
) -> LocalWindow:
    """
    Convert a stored UTC window back to the owner's local time.

    ``utc_start_days`` must be the start boundary's day set
    (``UtcWindow.start_days_of_week``), not the union. With it the result
    reproduces the original local window exactly for every offset from
    UTC-12:00 to UTC+14:00.
    """
    offset = _validate_offset(utc_offset_minutes)
    days = _validate_days(utc_start_days)

    start_minutes, start_delta = _shift(parse_time_of_day(utc_start), -offset)
    end_minutes, _ = _shift(parse_time_of_day(utc_end), -offset)

    return LocalWindow(
        start_time=format_time_of_day(start_minutes),
        end_time=format_time_of_day(end_minutes),
        days_of_week=shift_days(days, start_delta),
        utc_offset_minutes=offset,
    )


def offset_minutes_for(timezone: str, at: datetime.datetime | None = None) -> int:
    """
    Resolve an IANA zone name to its UTC offset in minutes at ``at``.

    The offset is frozen into the stored schedule, so daylight saving
    changes after saving are not followed.
    """
    try:
        zone = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ScheduleNormalizationError(
            f"unknown timezone {timezone!r}", detail={"timezone": timezone}
        ) from exc
    moment = at or datetime.datetime.now(datetime.timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    offset = moment.astimezone(zone).utcoffset() or datetime.timedelta(0)
    return int(offset.total_seconds() // 60)
