"""
Schedule Database Operations
=============================

Database operations for the Schedules table.
Implements the storage side of the ScheduleRepository protocol.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING

from app.domain.schedules.schedule_entity import Schedule
from app.utils.time import sqlite_timestamp, utc_now
from infrastructure.database.utils import row_to_dict

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class ScheduleOperations:
    """Schedule-related CRUD helpers for database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def create_schedule(self, schedule: Schedule) -> Schedule | None:
        """
        Create a new schedule in the database.

        Args:
            schedule: Schedule to create (schedule_id should be None)

        Returns:
            Created schedule with assigned schedule_id, or None on error
        """
        db = self.get_db()
        now = utc_now()

        try:
            cursor = db.execute(
                """
                INSERT INTO Schedules (
                    registration_serial, name, days_of_week, start_days_of_week,
                    start_time, end_time, utc_offset_minutes, active,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    schedule.registration_serial,
                    schedule.name,
                    json.dumps(schedule.days_of_week),
                    json.dumps(schedule.start_days_of_week),
                    schedule.start_time,
                    schedule.end_time,
                    schedule.utc_offset_minutes,
                    int(schedule.active),
                    sqlite_timestamp(now),
                    sqlite_timestamp(now),
                ),
            )
            db.commit()
            schedule.schedule_id = cursor.lastrowid
            schedule.created_at = now
            schedule.updated_at = now
            logger.info(
                "Created schedule %s for %s (%s-%s UTC, days=%s)",
                schedule.schedule_id,
                schedule.registration_serial,
                schedule.start_time,
                schedule.end_time,
                schedule.days_of_week,
            )
            return schedule
        except sqlite3.Error as e:
            logger.error("Failed to create schedule for %s: %s", schedule.registration_serial, e)
            return None

    def get_schedule_by_id(self, schedule_id: int) -> Schedule | None:
        db = self.get_db()
        try:
            row = db.execute(
                "SELECT * FROM Schedules WHERE schedule_id = ?",
                (schedule_id,),
            ).fetchone()
            return Schedule.from_dict(row_to_dict(row)) if row else None
        except sqlite3.Error as e:
            logger.error("Failed to get schedule %s: %s", schedule_id, e)
            return None

    def get_schedules_by_serial(self, serial_number: str) -> list[Schedule]:
        db = self.get_db()
        try:
            rows = db.execute(
                """
                SELECT * FROM Schedules
                WHERE registration_serial = ?
                ORDER BY start_time ASC, schedule_id ASC
                """,
                (serial_number,),
            ).fetchall()
            return [Schedule.from_dict(row_to_dict(row)) for row in rows]
        except sqlite3.Error as e:
            logger.error("Failed to get schedules for %s: %s", serial_number, e)
            return []

    def get_active_schedules_with_topic(self) -> list[Schedule]:
        """
        Every active schedule joined with its registration's topic.

        Raises ``sqlite3.Error`` so a tick can tell an empty store from a
        failed read.
        """
        rows = self.get_db().execute(
            """
            SELECT s.*, r.topic AS topic
            FROM Schedules s
            JOIN Registrations r ON r.serial_number = s.registration_serial
            WHERE s.active = 1
            ORDER BY s.registration_serial ASC, s.schedule_id ASC
            """
        ).fetchall()
        return [Schedule.from_dict(row_to_dict(row)) for row in rows]

    def update_schedule(self, schedule: Schedule) -> Schedule | None:
        if schedule.schedule_id is None:
            logger.error("Cannot update schedule without schedule_id")
            return None

        db = self.get_db()
        now = utc_now()
        try:
            cursor = db.execute(
                """
                UPDATE Schedules SET
                    registration_serial = ?,
                    name = ?,
                    days_of_week = ?,
                    start_days_of_week = ?,
                    start_time = ?,
                    end_time = ?,
                    utc_offset_minutes = ?,
                    active = ?,
                    updated_at = ?
                WHERE schedule_id = ?
                """,
                (
                    schedule.registration_serial,
                    schedule.name,
                    json.dumps(schedule.days_of_week),
                    json.dumps(schedule.start_days_of_week),
                    schedule.start_time,
                    schedule.end_time,
                    schedule.utc_offset_minutes,
                    int(schedule.active),
                    sqlite_timestamp(now),
                    schedule.schedule_id,
                ),
            )
            db.commit()
            if cursor.rowcount == 0:
                return None
            schedule.updated_at = now
            return schedule
        except sqlite3.Error as e:
            logger.error("Failed to update schedule %s: %s", schedule.schedule_id, e)
            return None

    def set_schedule_active(self, schedule_id: int, active: bool) -> bool:
        db = self.get_db()
        try:
            cursor = db.execute(
                "UPDATE Schedules SET active = ?, updated_at = ? WHERE schedule_id = ?",
                (int(active), sqlite_timestamp(utc_now()), schedule_id),
            )
            db.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error("Failed to set schedule %s active=%s: %s", schedule_id, active, e)
            return False

    def delete_schedule(self, schedule_id: int) -> bool:
        db = self.get_db()
        try:
            cursor = db.execute("DELETE FROM Schedules WHERE schedule_id = ?", (schedule_id,))
            db.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error("Failed to delete schedule %s: %s", schedule_id, e)
            return False
