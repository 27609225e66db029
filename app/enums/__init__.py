"""
Enums Module
============

This module provides enumeration types for the WaterKontrol application.
Enums ensure type safety and consistency across the codebase.
"""

from app.enums.device import DesiredState, DeviceStatus, PumpState, ValveState, Weekday
from app.enums.events import DeviceEvent, EventType, NotificationEvent, NotificationSeverity

__all__ = [
    "DesiredState",
    "DeviceEvent",
    "DeviceStatus",
    "EventType",
    "NotificationEvent",
    "NotificationSeverity",
    "PumpState",
    "ValveState",
    "Weekday",
]
