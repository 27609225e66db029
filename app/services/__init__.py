"""
Service Organization
====================

**application/**
  Singleton services managed by ServiceContainer.
  Examples: DeviceHealthService, ScheduleService, NotificationsService

**hardware/**
  Services that talk to the field controllers over the message bus.
  Examples: TelemetryIngestService, ScheduleActuationEngine
"""

from .hardware.scheduling_service import ScheduleActuationEngine, TickReport
from .hardware.telemetry_ingest_service import TelemetryIngestService

__all__ = [
    "ScheduleActuationEngine",
    "TelemetryIngestService",
    "TickReport",
]
