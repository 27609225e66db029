"""Liveness sweep tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.domain.exceptions import StoreError
from app.enums.device import DeviceStatus
from app.enums.events import DeviceEvent
from app.services.application.device_health_service import DeviceHealthService

NOW = datetime(2026, 1, 5, 13, 0, tzinfo=timezone.utc)


@pytest.fixture()
def health_service(device_repo, mock_event_bus, mock_audit_logger):
    return DeviceHealthService(
        repository=device_repo,
        event_bus=mock_event_bus,
        audit_logger=mock_audit_logger,
        offline_threshold_minutes=5,
    )


def seen(device_repo, registration, when):
    with device_repo.transaction() as conn:
        device_repo.touch_registration(registration.registration_id, when, conn=conn)


def test_silent_registration_goes_offline(health_service, device_repo, registered_device, mock_event_bus):
    seen(device_repo, registered_device, NOW - timedelta(minutes=6))

    flipped = health_service.sweep_offline(NOW)

    assert [r.serial_number for r in flipped] == [registered_device.serial_number]
    assert device_repo.get_registration(registered_device.registration_id).status == DeviceStatus.OFFLINE

    event_name, payload = mock_event_bus.publish.call_args.args
    assert event_name == DeviceEvent.DEVICE_STATUS_CHANGED
    assert payload.status == DeviceStatus.OFFLINE
    assert payload.previous_status == DeviceStatus.ONLINE


def test_recent_registration_stays_online(health_service, device_repo, registered_device, mock_event_bus):
    seen(device_repo, registered_device, NOW - timedelta(minutes=4, seconds=59))

    assert health_service.sweep_offline(NOW) == []
    assert device_repo.get_registration(registered_device.registration_id).is_online
    mock_event_bus.publish.assert_not_called()


def test_exactly_at_threshold_stays_online(health_service, device_repo, registered_device):
    seen(device_repo, registered_device, NOW - timedelta(minutes=5))

    assert health_service.sweep_offline(NOW) == []


def test_only_stale_registrations_flip(health_service, device_repo, registered_device, make_registration):
    other = make_registration("WK0002")
    seen(device_repo, registered_device, NOW - timedelta(minutes=30))
    seen(device_repo, other, NOW - timedelta(minutes=1))

    flipped = health_service.sweep_offline(NOW)

    assert [r.serial_number for r in flipped] == ["WK0001"]
    assert device_repo.get_registration(other.registration_id).is_online


def test_offline_registrations_are_not_reported_again(health_service, device_repo, registered_device):
    seen(device_repo, registered_device, NOW - timedelta(minutes=10))

    assert len(health_service.sweep_offline(NOW)) == 1
    assert health_service.sweep_offline(NOW) == []


def test_never_seen_registration_is_left_alone(health_service, registered_device):
    assert health_service.sweep_offline(NOW) == []


def test_each_flip_is_audited(health_service, device_repo, registered_device, mock_audit_logger):
    seen(device_repo, registered_device, NOW - timedelta(minutes=10))

    health_service.sweep_offline(NOW)

    kwargs = mock_audit_logger.log_event.call_args.kwargs
    assert kwargs["action"] == "mark_offline"
    assert kwargs["resource"] == registered_device.serial_number


def test_store_error_propagates():
    repo = MagicMock()
    repo.mark_stale_registrations_offline.side_effect = StoreError("locked")
    service = DeviceHealthService(repository=repo)

    with pytest.raises(StoreError):
        service.sweep_offline(NOW)


def test_custom_threshold():
    repo = MagicMock()
    repo.mark_stale_registrations_offline.return_value = []
    service = DeviceHealthService(repository=repo, offline_threshold_minutes=15)

    service.sweep_offline(NOW)

    repo.mark_stale_registrations_offline.assert_called_once_with(NOW - timedelta(minutes=15))
