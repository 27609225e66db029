from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import AppConfig
from app.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from app.services.application.device_health_service import DeviceHealthService
from app.services.application.notifications_service import FcmPushSender, NotificationsService
from app.services.application.schedule_service import ScheduleService
from app.services.hardware.scheduling_service import ScheduleActuationEngine
from app.services.hardware.telemetry_ingest_service import TelemetryIngestService
from app.utils.event_bus import EventBus
from app.workers.unified_scheduler import UnifiedScheduler
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.notifications import NotificationRepository
from infrastructure.database.repositories.schedules import ScheduleRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage the worker's services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    device_repo: DeviceRepository
    schedule_repo: ScheduleRepository
    notification_repo: NotificationRepository
    audit_logger: AuditLogger
    event_bus: EventBus
    mqtt_client: Optional[MQTTClientWrapper]
    telemetry_service: TelemetryIngestService
    actuation_engine: ScheduleActuationEngine
    device_health_service: DeviceHealthService
    schedule_service: ScheduleService
    notifications_service: NotificationsService
    scheduler: UnifiedScheduler

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        enable_mqtt: Optional[bool] = None,
        start_scheduler: bool = True,
    ) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            enable_mqtt: Override ``config.enable_mqtt``
            start_scheduler: Start the background job loop
        """
        logger.info("Building ServiceContainer...")

        database = SQLiteDatabaseHandler(config.database_path, timeout=config.store_timeout_seconds)
        database.init_app()

        device_repo = DeviceRepository(database)
        schedule_repo = ScheduleRepository(database)
        notification_repo = NotificationRepository(database)
        audit_logger = AuditLogger(config.audit_log_path, config.log_level)
        event_bus = EventBus(
            queue_size=config.eventbus_queue_size,
            worker_count=config.eventbus_worker_count,
        )

        use_mqtt = config.enable_mqtt if enable_mqtt is None else enable_mqtt
        mqtt_client: Optional[MQTTClientWrapper] = None
        if use_mqtt:
            mqtt_client = MQTTClientWrapper(
                broker=config.mqtt_broker_host,
                port=config.mqtt_broker_port,
                client_id=config.mqtt_client_id,
                event_bus=event_bus,
                username=config.mqtt_username or None,
                password=config.mqtt_password or None,
                keepalive=config.mqtt_keepalive,
            )
        else:
            logger.info("MQTT disabled; telemetry will not be received and commands will not be sent")

        push_sender = None
        if config.notifications_enabled and config.fcm_server_key:
            push_sender = FcmPushSender(
                config.fcm_server_key,
                url=config.fcm_url,
                timeout=config.notification_timeout_seconds,
            )
        notifications_service = NotificationsService(
            notification_repo,
            push_sender,
            enabled=config.notifications_enabled,
        )
        notifications_service.attach(event_bus)

        telemetry_service = TelemetryIngestService(
            device_repo,
            mqtt_client,
            event_bus,
            topic_pattern=config.telemetry_topic,
        )
        actuation_engine = ScheduleActuationEngine(
            schedule_repo,
            mqtt_client,
            event_bus=event_bus,
            audit_logger=audit_logger,
            command_suffix=config.command_topic_suffix,
        )
        device_health_service = DeviceHealthService(
            device_repo,
            event_bus=event_bus,
            audit_logger=audit_logger,
            offline_threshold_minutes=config.offline_threshold_minutes,
        )

        container = cls(
            config=config,
            database=database,
            device_repo=device_repo,
            schedule_repo=schedule_repo,
            notification_repo=notification_repo,
            audit_logger=audit_logger,
            event_bus=event_bus,
            mqtt_client=mqtt_client,
            telemetry_service=telemetry_service,
            actuation_engine=actuation_engine,
            device_health_service=device_health_service,
            schedule_service=ScheduleService(schedule_repo),
            notifications_service=notifications_service,
            scheduler=UnifiedScheduler(max_workers=config.scheduler_max_workers),
        )

        # Tasks need the full container, so the scheduler is configured last
        from app.workers.scheduled_tasks import configure_scheduler

        try:
            configure_scheduler(container.scheduler, container, start=start_scheduler)
        except Exception as e:
            raise RuntimeError("Failed to initialize UnifiedScheduler") from e

        logger.info("ServiceContainer built successfully.")
        return container

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        try:
            self.scheduler.shutdown()
            logger.info("UnifiedScheduler stopped")
        except Exception as e:
            logger.warning("Failed to stop UnifiedScheduler: %s", e)

        self.notifications_service.detach()
        self.event_bus.shutdown()

        if self.mqtt_client is not None:
            self.mqtt_client.disconnect()
        self.database.close_db()
        self.audit_logger.close()
        logger.info("ServiceContainer shutdown complete.")
