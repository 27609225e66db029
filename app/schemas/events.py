from typing import Any, Literal

from pydantic import BaseModel, Field

from app.enums.device import DesiredState, DeviceStatus, PumpState, ValveState
from app.enums.events import NotificationEvent, NotificationSeverity

ScalarValue = str | int | float | bool


class ActuationCommandPayload(BaseModel):
    """Wire body of a pump/valve command, published to ``<topic>/in``."""

    bomba: Literal["encendida", "apagada"]
    valvula: Literal["cerrada", "abierta"]

    @classmethod
    def for_state(cls, desired: DesiredState) -> "ActuationCommandPayload":
        if desired == DesiredState.ON:
            return cls(bomba=PumpState.RUNNING.value, valvula=ValveState.CLOSED.value)
        return cls(bomba=PumpState.STOPPED.value, valvula=ValveState.OPEN.value)


class TelemetryIngestedPayload(BaseModel):
    """Emitted after a telemetry transaction commits."""

    schema_version: int = Field(default=1)

    registration_id: int
    serial_number: str
    owner_id: int | None = None
    topic: str
    msg_id: str | None = None

    # payload key -> stored value
    updated: dict[str, str] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)
    timestamp: str


class DeviceStatusChangedPayload(BaseModel):
    registration_id: int
    serial_number: str
    owner_id: int | None = None
    previous_status: DeviceStatus
    status: DeviceStatus
    last_seen_at: str | None = None
    timestamp: str


class ActuationCommandSentPayload(BaseModel):
    schedule_id: int | None = None
    serial_number: str
    topic: str
    desired_state: DesiredState
    command: ActuationCommandPayload
    timestamp: str


class ConnectivityStatePayload(BaseModel):
    connection_type: str  # e.g., 'mqtt'
    status: str  # 'connected' | 'disconnected' | other
    endpoint: str | None = None  # broker host
    port: int | None = None
    details: dict[str, Any] | None = None
    timestamp: str | None = None


class PushNotificationPayload(BaseModel):
    """Push message handed to the notification provider for one owner."""

    owner_id: int
    notification_type: NotificationEvent
    severity: NotificationSeverity = NotificationSeverity.INFO
    title: str
    body: str
    data: dict[str, ScalarValue] = Field(default_factory=dict)
