"""
Scheduled Tasks: background task definitions for the UnifiedScheduler.

Namespaces:
- actuation.*: schedule tick (pump/valve commands)
- device.*: liveness sweep

Usage:
    from app.workers.scheduled_tasks import configure_scheduler

    configure_scheduler(container.scheduler, container)
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any

from app.domain.exceptions import StoreError

if TYPE_CHECKING:
    from app.services.container import ServiceContainer
    from app.workers.unified_scheduler import UnifiedScheduler

logger = logging.getLogger(__name__)

SCHEDULE_TICK_TASK = "actuation.schedule_tick"
LIVENESS_SWEEP_TASK = "device.liveness_sweep"


# ==================== Actuation Namespace ====================


def actuation_schedule_tick_task(container: "ServiceContainer") -> dict[str, Any]:
    """Evaluate active schedules for the current UTC minute and publish commands."""
    report = container.actuation_engine.run_tick()
    return report.to_dict()


# ==================== Device Namespace ====================


def device_liveness_sweep_task(container: "ServiceContainer") -> dict[str, Any]:
    """Mark registrations offline after the silence threshold."""
    try:
        flipped = container.device_health_service.sweep_offline()
    except StoreError as e:
        logger.error("Liveness sweep rolled back: %s", e)
        return {"ok": False, "error": str(e), "offline": []}
    return {"ok": True, "offline": [r.serial_number for r in flipped]}


def register_all_tasks(scheduler: "UnifiedScheduler", container: "ServiceContainer") -> None:
    """Register every task, bound to the container."""

    def bind(task_fn):
        @wraps(task_fn)
        def bound_task():
            try:
                return task_fn(container)
            except Exception as e:
                logger.exception("Scheduled task %s raised: %s", task_fn.__name__, e)
                # Re-raise so the scheduler records the failure
                raise

        return bound_task

    scheduler.register_task(SCHEDULE_TICK_TASK, bind(actuation_schedule_tick_task))
    scheduler.register_task(LIVENESS_SWEEP_TASK, bind(device_liveness_sweep_task))
    logger.info("Registered %s tasks", len(scheduler.task_names))


def schedule_default_jobs(scheduler: "UnifiedScheduler", container: "ServiceContainer") -> None:
    """Schedule the tick on minute boundaries and the sweep on its configured interval."""
    config = container.config

    scheduler.schedule_interval(
        SCHEDULE_TICK_TASK,
        interval_seconds=config.schedule_poll_seconds,
        job_id="actuation_schedule_tick",
        align_to_minute=config.schedule_poll_seconds % 60 == 0,
    )
    scheduler.schedule_interval(
        LIVENESS_SWEEP_TASK,
        interval_seconds=config.liveness_sweep_seconds,
        job_id="device_liveness_sweep",
        start_immediately=True,
    )

    for job in scheduler.get_jobs():
        logger.debug("  - %s: every %ss (%s)", job.job_id, job.interval_seconds, job.namespace)


def configure_scheduler(
    scheduler: "UnifiedScheduler",
    container: "ServiceContainer",
    *,
    reset_jobs: bool = True,
    start: bool = True,
) -> None:
    """Register tasks, apply default schedules, and optionally start the scheduler."""
    if reset_jobs:
        scheduler.clear_jobs()

    register_all_tasks(scheduler, container)
    schedule_default_jobs(scheduler, container)

    if start:
        scheduler.start()
