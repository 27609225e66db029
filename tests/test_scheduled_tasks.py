"""Scheduler wiring and container smoke tests."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.config import AppConfig
from app.domain.exceptions import StoreError
from app.domain.devices import Registration
from app.services.container import ServiceContainer
from app.workers.scheduled_tasks import (
    LIVENESS_SWEEP_TASK,
    SCHEDULE_TICK_TASK,
    configure_scheduler,
    device_liveness_sweep_task,
)
from app.workers.unified_scheduler import UnifiedScheduler


def fake_container(poll_seconds=60):
    engine = MagicMock()
    engine.run_tick.return_value.to_dict.return_value = {"commands": 0}
    health = MagicMock()
    health.sweep_offline.return_value = [Registration(serial_number="WK0001")]
    return SimpleNamespace(
        config=SimpleNamespace(schedule_poll_seconds=poll_seconds, liveness_sweep_seconds=30),
        actuation_engine=engine,
        device_health_service=health,
    )


def test_configure_registers_and_schedules_both_tasks():
    scheduler = UnifiedScheduler()
    configure_scheduler(scheduler, fake_container(), start=False)

    assert scheduler.task_names == sorted([SCHEDULE_TICK_TASK, LIVENESS_SWEEP_TASK])
    tick = scheduler.get_job("actuation_schedule_tick")
    sweep = scheduler.get_job("device_liveness_sweep")
    assert tick.interval_seconds == 60
    assert tick.next_run.second == 0
    assert sweep.interval_seconds == 30
    assert not scheduler.is_running()


def test_reconfigure_replaces_jobs():
    scheduler = UnifiedScheduler()
    container = fake_container()
    configure_scheduler(scheduler, container, start=False)
    configure_scheduler(scheduler, container, start=False)

    assert len(scheduler.get_jobs()) == 2


def test_bound_tasks_use_the_container():
    scheduler = UnifiedScheduler()
    container = fake_container()
    configure_scheduler(scheduler, container, start=False)

    tick = scheduler.run_now(SCHEDULE_TICK_TASK)
    sweep = scheduler.run_now(LIVENESS_SWEEP_TASK)

    assert tick.result == {"commands": 0}
    assert sweep.result == {"ok": True, "offline": ["WK0001"]}


def test_tick_failure_is_recorded_as_failed_job():
    scheduler = UnifiedScheduler()
    container = fake_container()
    container.actuation_engine.run_tick.side_effect = RuntimeError("boom")
    configure_scheduler(scheduler, container, start=False)

    result = scheduler.run_now(SCHEDULE_TICK_TASK)

    assert not result.success
    assert result.error == "boom"


def test_sweep_store_error_is_reported():
    container = fake_container()
    container.device_health_service.sweep_offline.side_effect = StoreError("locked")

    assert device_liveness_sweep_task(container) == {"ok": False, "error": "locked", "offline": []}


@pytest.fixture()
def app_config(tmp_path):
    return AppConfig(
        database_path=str(tmp_path / "waterkontrol.db"),
        audit_log_path=str(tmp_path / "audit.log"),
        enable_mqtt=False,
    )


def test_container_builds_without_broker(app_config):
    container = ServiceContainer.build(app_config, start_scheduler=False)
    try:
        assert container.mqtt_client is None
        assert not container.notifications_service.enabled
        assert {job.job_id for job in container.scheduler.get_jobs()} == {
            "actuation_schedule_tick",
            "device_liveness_sweep",
        }
        report = container.scheduler.run_now(SCHEDULE_TICK_TASK)
        assert report.success
    finally:
        container.shutdown()
