"""
Device-related Enumerations
============================

Enums for registered controllers and the actuation commands sent to them.
"""

from enum import Enum


class DeviceStatus(str, Enum):
    """
    Registration liveness status.
    Used by: telemetry ingestion, liveness sweep
    """

    ONLINE = "online"
    OFFLINE = "offline"

    def __str__(self) -> str:
        return self.value


class DesiredState(str, Enum):
    """Target state carried by an actuation command."""

    ON = "on"
    OFF = "off"

    def __str__(self) -> str:
        return self.value


class PumpState(str, Enum):
    """Wire values for the pump (``bomba``) field."""

    RUNNING = "encendida"
    STOPPED = "apagada"

    def __str__(self) -> str:
        return self.value


class ValveState(str, Enum):
    """Wire values for the valve (``valvula``) field."""

    CLOSED = "cerrada"
    OPEN = "abierta"

    def __str__(self) -> str:
        return self.value


class Weekday(int, Enum):
    """Day numbering shared with ``datetime.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6
