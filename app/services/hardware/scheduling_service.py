"""
Schedule Actuation Engine
=========================

Turns stored watering windows into pump/valve commands.

Once a minute the UnifiedScheduler calls :meth:`ScheduleActuationEngine.run_tick`.
A tick:

1. Reads every active schedule together with its registration topic.
2. For each schedule whose UTC day set contains today's UTC weekday, emits
   an ON command when the current UTC minute equals the start time and an
   OFF command when it equals the end time.
3. Publishes each command to ``<topic>/in`` once, fire-and-forget. Publish
   failures are logged and audited, never retried.

Evaluation (:meth:`tick`) is a pure function of store state and the given
instant, so it can be exercised without a broker. Ticks never overlap: a
tick that starts while another is still running is skipped.

Note: the engine keeps no memory of what it sent. Inactive schedules send
nothing, including no OFF command when a schedule is disabled mid-window.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from app.domain.exceptions import PublishError, ScheduleNormalizationError, StoreError
from app.domain.schedules import ActuationCommand, Schedule
from app.enums.events import DeviceEvent
from app.schemas.events import ActuationCommandPayload, ActuationCommandSentPayload
from app.utils.time import ensure_utc, iso_now, minute_of_day, utc_now

if TYPE_CHECKING:
    from app.domain.schedules.repository import ScheduleRepository
    from app.services.protocols import EventPublisher, MessageBus
    from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_SUFFIX = "/in"


@dataclass
class TickReport:
    """Summary of one tick."""

    evaluated_at: datetime
    skipped: bool = False
    schedules_checked: int = 0
    registrations_checked: int = 0
    commands: list[ActuationCommand] = field(default_factory=list)
    published: int = 0
    failures: list[PublishError] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "evaluated_at": self.evaluated_at.isoformat(),
            "skipped": self.skipped,
            "schedules_checked": self.schedules_checked,
            "registrations_checked": self.registrations_checked,
            "commands": len(self.commands),
            "published": self.published,
            "failed": len(self.failures),
            "error": self.error,
        }


class ScheduleActuationEngine:
    """Evaluates active schedules each minute and publishes the resulting commands."""

    def __init__(
        self,
        repository: "ScheduleRepository",
        mqtt_client: "MessageBus | None" = None,
        *,
        event_bus: "EventPublisher | None" = None,
        audit_logger: "AuditLogger | None" = None,
        command_suffix: str = DEFAULT_COMMAND_SUFFIX,
    ):
        self.repository = repository
        self.mqtt_client = mqtt_client
        self.event_bus = event_bus
        self.audit_logger = audit_logger
        self.command_suffix = command_suffix
        self._tick_lock = threading.Lock()
        self.last_report: TickReport | None = None

    # ---------------------------------------------------------------------
    # Evaluation
    # ---------------------------------------------------------------------

    def tick(self, now_utc: datetime) -> list[ActuationCommand]:
        """
        Commands due at ``now_utc``.

        Naive datetimes are taken as UTC. Seconds are ignored: every instant
        within a boundary minute produces the same commands.

        Raises:
            StoreError: Active schedules could not be read
        """
        return self.evaluate(self.repository.get_active_with_topic(), now_utc)

    def evaluate(self, schedules: list[Schedule], now_utc: datetime) -> list[ActuationCommand]:
        """Commands the given schedules produce at ``now_utc``, grouped by registration."""
        now_utc = ensure_utc(now_utc)
        weekday = now_utc.weekday()
        minute = minute_of_day(now_utc)

        by_serial: dict[str, list[Schedule]] = defaultdict(list)
        for schedule in schedules:
            by_serial[schedule.registration_serial].append(schedule)

        commands: list[ActuationCommand] = []
        for serial, group in by_serial.items():
            for schedule in group:
                if not schedule.topic:
                    continue
                try:
                    desired = schedule.boundary_at(weekday, minute)
                except ScheduleNormalizationError as exc:
                    logger.error("Skipping schedule %s with invalid window: %s", schedule.schedule_id, exc)
                    continue
                if desired is None:
                    continue
                commands.append(
                    ActuationCommand(
                        topic=f"{schedule.topic}{self.command_suffix}",
                        desired_state=desired,
                        registration_serial=serial,
                        schedule_id=schedule.schedule_id,
                    )
                )
        return commands

    # ---------------------------------------------------------------------
    # Execution
    # ---------------------------------------------------------------------

    def run_tick(self, now_utc: datetime | None = None) -> TickReport:
        """
        Evaluate and publish one tick. Never raises.

        Returns:
            TickReport; ``skipped`` is set when another tick was still running.
        """
        evaluated_at = ensure_utc(now_utc) if now_utc else utc_now()
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Schedule tick at %s skipped: previous tick still running", evaluated_at.isoformat())
            return TickReport(evaluated_at=evaluated_at, skipped=True)

        report = TickReport(evaluated_at=evaluated_at)
        try:
            try:
                schedules = self.repository.get_active_with_topic()
            except StoreError as exc:
                report.error = str(exc)
                logger.error("Schedule tick abandoned, could not read schedules: %s", exc)
                return report

            report.schedules_checked = len(schedules)
            report.registrations_checked = len({s.registration_serial for s in schedules})
            report.commands = self.evaluate(schedules, evaluated_at)

            for command in report.commands:
                try:
                    self._publish(command)
                    report.published += 1
                except PublishError as exc:
                    report.failures.append(exc)
                    logger.error("Actuation command dropped: %s", exc)

            if report.commands:
                logger.info(
                    "Schedule tick %s: %d command(s), %d published, %d failed",
                    evaluated_at.strftime("%a %H:%M"),
                    len(report.commands),
                    report.published,
                    len(report.failures),
                )
            return report
        finally:
            self.last_report = report
            self._tick_lock.release()

    def _publish(self, command: ActuationCommand) -> None:
        payload = ActuationCommandPayload.for_state(command.desired_state)
        if self.mqtt_client is None:
            raise PublishError(
                f"no message bus configured for {command.topic}",
                detail={"topic": command.topic},
            )

        try:
            accepted = self.mqtt_client.publish(command.topic, payload.model_dump_json())
        except Exception as exc:
            accepted = False
            logger.debug("Bus raised while publishing to %s: %s", command.topic, exc)

        outcome = "sent" if accepted else "failed"
        if self.audit_logger is not None:
            self.audit_logger.log_event(
                actor="schedule_engine",
                action=f"actuate_{command.desired_state.value}",
                resource=command.registration_serial,
                outcome=outcome,
                topic=command.topic,
                schedule_id=command.schedule_id,
            )

        if not accepted:
            raise PublishError(
                f"bus rejected {command.desired_state.value} command for {command.registration_serial}",
                detail={"topic": command.topic, "schedule_id": command.schedule_id},
            )

        logger.info(
            "Sent %s to %s (schedule %s)",
            command.desired_state.value.upper(),
            command.topic,
            command.schedule_id,
        )
        if self.event_bus is not None:
            try:
                self.event_bus.publish(
                    DeviceEvent.ACTUATION_COMMAND_SENT,
                    ActuationCommandSentPayload(
                        schedule_id=command.schedule_id,
                        serial_number=command.registration_serial,
                        topic=command.topic,
                        desired_state=command.desired_state,
                        command=payload,
                        timestamp=iso_now(),
                    ),
                )
            except Exception as exc:
                logger.error("Failed to publish actuation event: %s", exc)
