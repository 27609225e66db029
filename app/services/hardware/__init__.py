"""
Hardware Service Layer
======================
Services that exchange messages with WaterKontrol controllers.

- TelemetryIngestService: telemetry topic -> stored parameter values
- ScheduleActuationEngine: stored schedules -> pump/valve commands
"""

from app.services.hardware.scheduling_service import ScheduleActuationEngine
from app.services.hardware.telemetry_ingest_service import TelemetryIngestService

__all__ = [
    "ScheduleActuationEngine",
    "TelemetryIngestService",
]
