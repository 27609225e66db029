"""Repository facades exposing typed accessors over low-level mixins."""

from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.notifications import NotificationRepository
from infrastructure.database.repositories.schedules import ScheduleRepository

__all__ = [
    "DeviceRepository",
    "NotificationRepository",
    "ScheduleRepository",
]
