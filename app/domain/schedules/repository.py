"""
Schedule Repository Protocol
=============================

Defines the interface for schedule persistence.
Implementations can use SQLite, PostgreSQL, or other storage.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol

from app.domain.schedules.schedule_entity import Schedule


class ScheduleRepository(Protocol):
    """Protocol for schedule persistence operations."""

    @abstractmethod
    def create(self, schedule: Schedule) -> Schedule:
        """
        Create a new schedule.

        Args:
            schedule: Schedule to create (schedule_id should be None)

        Returns:
            Created schedule with assigned schedule_id
        """
        ...

    @abstractmethod
    def get_by_id(self, schedule_id: int) -> Schedule | None:
        """
        Get schedule by ID.

        Args:
            schedule_id: Schedule ID

        Returns:
            Schedule if found, None otherwise
        """
        ...

    @abstractmethod
    def get_by_serial(self, serial_number: str) -> list[Schedule]:
        """
        Get all schedules for a registration.

        Args:
            serial_number: Registration serial number

        Returns:
            List of schedules, active or not
        """
        ...

    @abstractmethod
    def get_active_with_topic(self) -> list[Schedule]:
        """
        Get every active schedule joined with its registration topic.

        Schedules whose registration no longer exists are left out.

        Returns:
            Active schedules with ``topic`` populated
        """
        ...

    @abstractmethod
    def update(self, schedule: Schedule) -> Schedule | None:
        """
        Update an existing schedule.

        Args:
            schedule: Schedule with updated values (must have schedule_id)

        Returns:
            Updated schedule, or None when it does not exist
        """
        ...

    @abstractmethod
    def set_active(self, schedule_id: int, active: bool) -> bool:
        """
        Enable or disable a schedule.

        Returns:
            True if a schedule was updated
        """
        ...

    @abstractmethod
    def delete(self, schedule_id: int) -> bool:
        """
        Delete a schedule.

        Returns:
            True if deleted, False if not found
        """
        ...
