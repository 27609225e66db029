"""
Schemas Module
==============

Pydantic models for event payloads and outbound device commands.
"""

from app.schemas.events import (
    ActuationCommandPayload,
    ActuationCommandSentPayload,
    ConnectivityStatePayload,
    DeviceStatusChangedPayload,
    PushNotificationPayload,
    TelemetryIngestedPayload,
)

__all__ = [
    "ActuationCommandPayload",
    "ActuationCommandSentPayload",
    "ConnectivityStatePayload",
    "DeviceStatusChangedPayload",
    "PushNotificationPayload",
    "TelemetryIngestedPayload",
]
