from enum import Enum
from typing import TypeAlias


class DeviceEvent(str, Enum):
    TELEMETRY_INGESTED = "telemetry_ingested"
    DEVICE_STATUS_CHANGED = "device_status_changed"
    ACTUATION_COMMAND_SENT = "actuation_command_sent"
    CONNECTIVITY_CHANGED = "connectivity_changed"


class NotificationEvent(str, Enum):
    TELEMETRY_UPDATE = "telemetry_update"
    DEVICE_OFFLINE = "device_offline"


class NotificationSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


EventType: TypeAlias = DeviceEvent | NotificationEvent
