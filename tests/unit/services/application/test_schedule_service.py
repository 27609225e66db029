import pytest

from app.domain.exceptions import ScheduleNormalizationError
from app.services.application.schedule_service import ScheduleService


@pytest.fixture()
def schedule_service(schedule_repo):
    return ScheduleService(schedule_repo)


def test_create_stores_utc_window(schedule_service, schedule_repo, registered_device):
    created = schedule_service.create_local_schedule(
        registration_serial=registered_device.serial_number,
        local_start="08:00",
        local_end="08:30",
        local_days=[0, 2],
        utc_offset_minutes=-300,
        name="Riego mañana",
    )

    stored = schedule_repo.get_by_id(created.schedule_id)
    assert (stored.start_time, stored.end_time) == ("13:00", "13:30")
    assert stored.days_of_week == [0, 2]
    assert stored.utc_offset_minutes == -300
    assert stored.name == "Riego mañana"
    assert stored.active is True


def test_stored_schedule_converts_back_to_local(schedule_service, schedule_repo, registered_device):
    created = schedule_service.create_local_schedule(
        registration_serial=registered_device.serial_number,
        local_start="23:50",
        local_end="00:10",
        local_days=[6],
        utc_offset_minutes=-300,
    )

    local = schedule_service.to_local(schedule_repo.get_by_id(created.schedule_id))

    assert (local.start_time, local.end_time, local.days_of_week) == ("23:50", "00:10", (6,))


def test_timezone_name_resolves_offset(schedule_service, registered_device):
    created = schedule_service.create_local_schedule(
        registration_serial=registered_device.serial_number,
        local_start="07:00",
        local_end="07:15",
        local_days=[1],
        timezone="UTC",
    )

    assert created.utc_offset_minutes == 0
    assert created.start_time == "07:00"


def test_offset_or_timezone_is_required(schedule_service, registered_device):
    with pytest.raises(ScheduleNormalizationError):
        schedule_service.create_local_schedule(
            registration_serial=registered_device.serial_number,
            local_start="07:00",
            local_end="07:15",
            local_days=[1],
        )


def test_update_local_window(schedule_service, schedule_repo, registered_device):
    created = schedule_service.create_local_schedule(
        registration_serial=registered_device.serial_number,
        local_start="08:00",
        local_end="08:30",
        local_days=[0],
        utc_offset_minutes=0,
    )

    updated = schedule_service.update_local_window(
        created.schedule_id,
        local_start="01:00",
        local_end="02:00",
        local_days=[0],
        utc_offset_minutes=120,
    )

    stored = schedule_repo.get_by_id(updated.schedule_id)
    assert (stored.start_time, stored.end_time) == ("23:00", "00:00")
    assert stored.start_days_of_week == [6]
    assert stored.days_of_week == [0, 6]


def test_update_missing_schedule_returns_none(schedule_service):
    assert (
        schedule_service.update_local_window(
            999, local_start="01:00", local_end="02:00", local_days=[0], utc_offset_minutes=0
        )
        is None
    )


def test_set_active_and_list(schedule_service, registered_device):
    created = schedule_service.create_local_schedule(
        registration_serial=registered_device.serial_number,
        local_start="08:00",
        local_end="08:30",
        local_days=[0],
        utc_offset_minutes=0,
    )

    assert schedule_service.set_active(created.schedule_id, False)

    [(schedule, local)] = schedule_service.list_local(registered_device.serial_number)
    assert schedule.active is False
    assert local.start_time == "08:00"
