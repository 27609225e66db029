import datetime

import pytest

from app.domain.exceptions import ScheduleNormalizationError
from app.domain.schedules import denormalize_from_utc, normalize_to_utc, offset_minutes_for
from app.domain.schedules.normalization import (
    MAX_UTC_OFFSET_MINUTES,
    MIN_UTC_OFFSET_MINUTES,
    parse_time_of_day,
    shift_days,
)

MON, TUE, WED, THU, FRI, SAT, SUN = range(7)


def test_utc_offset_zero_is_identity():
    window = normalize_to_utc("13:00", "13:30", [MON, WED], 0)

    assert window.start_time == "13:00"
    assert window.end_time == "13:30"
    assert window.days_of_week == (MON, WED)
    assert window.start_day_delta == 0
    assert window.end_day_delta == 0
    assert not window.crosses_utc_midnight


def test_west_of_utc_evening_moves_to_next_utc_day():
    # UTC-5: 21:00 local Monday is 02:00 UTC Tuesday
    window = normalize_to_utc("21:00", "21:30", [MON], -300)

    assert window.start_time == "02:00"
    assert window.end_time == "02:30"
    assert window.days_of_week == (TUE,)
    assert window.start_day_delta == 1


def test_east_of_utc_morning_moves_to_previous_utc_day():
    # UTC+5:30: 02:00 local Monday is 20:30 UTC Sunday
    window = normalize_to_utc("02:00", "03:00", [MON], 330)

    assert window.start_time == "20:30"
    assert window.end_time == "21:30"
    assert window.days_of_week == (SUN,)
    assert window.start_day_delta == -1


def test_window_straddling_utc_midnight_stores_union_of_days():
    # UTC-5: 18:50 local is 23:50 UTC same day, 19:10 local is 00:10 UTC next day
    window = normalize_to_utc("18:50", "19:10", [MON], -300)

    assert window.start_time == "23:50"
    assert window.end_time == "00:10"
    assert window.start_days_of_week == (MON,)
    assert window.end_days_of_week == (TUE,)
    assert window.days_of_week == (MON, TUE)
    assert window.crosses_utc_midnight


def test_local_midnight_crossing_window_at_negative_offset():
    window = normalize_to_utc("23:50", "00:10", [SUN], -300)

    assert window.start_time == "04:50"
    assert window.end_time == "05:10"
    assert window.start_days_of_week == (MON,)
    assert window.end_days_of_week == (SUN,)
    assert window.days_of_week == (MON, SUN)


def test_day_shift_wraps_the_week():
    assert shift_days([SUN], 1) == (MON,)
    assert shift_days([MON], -1) == (SUN,)
    assert shift_days([SAT, SUN], 1) == (MON, SUN)


def test_zero_duration_window_is_flagged():
    window = normalize_to_utc("06:00", "06:00", [MON], 120)
    assert window.is_zero_duration


@pytest.mark.parametrize("offset", range(MIN_UTC_OFFSET_MINUTES, MAX_UTC_OFFSET_MINUTES + 1, 15))
def test_round_trip_restores_local_window(offset):
    for start, end, days in [
        ("00:00", "00:30", [MON]),
        ("23:45", "00:15", [SUN, WED]),
        ("12:00", "13:00", [MON, TUE, WED, THU, FRI, SAT, SUN]),
        ("05:10", "04:50", [SAT]),
    ]:
        window = normalize_to_utc(start, end, days, offset)
        local = denormalize_from_utc(window.start_time, window.end_time, window.start_days_of_week, offset)

        assert local.start_time == start
        assert local.end_time == end
        assert local.days_of_week == tuple(sorted(days))
        assert local.utc_offset_minutes == offset


@pytest.mark.parametrize("value", ["25:00", "12:60", "1200", "12:3a", "", "12:00:00"])
def test_malformed_times_are_rejected(value):
    with pytest.raises(ScheduleNormalizationError):
        normalize_to_utc(value, "13:00", [MON], 0)


def test_time_objects_are_accepted():
    assert parse_time_of_day(datetime.time(7, 5)) == 425


@pytest.mark.parametrize("days", [[], [7], [-1], ["1"], [True]])
def test_invalid_day_sets_are_rejected(days):
    with pytest.raises(ScheduleNormalizationError):
        normalize_to_utc("08:00", "09:00", days, 0)


@pytest.mark.parametrize("offset", [1.5, "60", None, True])
def test_non_integer_offsets_are_rejected(offset):
    with pytest.raises(ScheduleNormalizationError):
        normalize_to_utc("08:00", "09:00", [MON], offset)



@pytest.mark.parametrize("offset", [1440, -1440, 1500, -1500, -3000])
def test_offsets_of_a_day_or_more_clamp_the_day_delta(offset):
    window = normalize_to_utc("23:00", "01:00", [MON], offset)

    assert window.start_day_delta in (-1, 0, 1)
    assert window.end_day_delta in (-1, 0, 1)
    for value in (window.start_time, window.end_time):
        assert len(value) == 5 and value[2] == ":"
        assert 0 <= parse_time_of_day(value) < 24 * 60

def test_offset_for_named_zone_uses_standard_or_daylight_offset():
    winter = datetime.datetime(2026, 1, 15, 12, 0, tzinfo=datetime.timezone.utc)
    summer = datetime.datetime(2026, 7, 15, 12, 0, tzinfo=datetime.timezone.utc)

    assert offset_minutes_for("America/Mexico_City", winter) == -360
    assert offset_minutes_for("Europe/Madrid", winter) == 60
    assert offset_minutes_for("Europe/Madrid", summer) == 120
    assert offset_minutes_for("Asia/Kolkata", summer) == 330


def test_unknown_zone_is_rejected():
    with pytest.raises(ScheduleNormalizationError):
        offset_minutes_for("Mars/Olympus_Mons")
