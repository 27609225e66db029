"""
Schedule Repository
====================

Concrete implementation of ScheduleRepository protocol using SQLite.
Wraps ScheduleOperations mixin from infrastructure layer.

Reads are not cached: the actuation engine must see edits and
activations on the very next tick.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, List, Optional

from app.domain.exceptions import StoreError
from app.domain.schedules import Schedule

if TYPE_CHECKING:
    from infrastructure.database.ops.schedules import ScheduleOperations


class ScheduleRepository:
    """
    Concrete implementation of ScheduleRepository protocol.

    Wraps the ScheduleOperations mixin to provide repository pattern access.
    """

    def __init__(self, backend: "ScheduleOperations") -> None:
        """
        Initialize with database backend.

        Args:
            backend: Database handler that implements ScheduleOperations
        """
        self._backend = backend

    # ==================== CRUD Operations ====================

    def create(self, schedule: Schedule) -> Optional[Schedule]:
        """Create a new schedule."""
        return self._backend.create_schedule(schedule)

    def get_by_id(self, schedule_id: int) -> Optional[Schedule]:
        """Get schedule by ID."""
        return self._backend.get_schedule_by_id(schedule_id)

    def get_by_serial(self, serial_number: str) -> List[Schedule]:
        """Get all schedules for a registration."""
        return self._backend.get_schedules_by_serial(serial_number)

    def get_active_with_topic(self) -> List[Schedule]:
        """Active schedules joined with their registration topic."""
        try:
            return self._backend.get_active_schedules_with_topic()
        except sqlite3.Error as exc:
            raise StoreError(f"could not read active schedules: {exc}") from exc

    def update(self, schedule: Schedule) -> Optional[Schedule]:
        """Update an existing schedule."""
        return self._backend.update_schedule(schedule)

    def set_active(self, schedule_id: int, active: bool) -> bool:
        """Enable or disable a schedule."""
        return self._backend.set_schedule_active(schedule_id, active)

    def delete(self, schedule_id: int) -> bool:
        """Delete a schedule."""
        return self._backend.delete_schedule(schedule_id)
