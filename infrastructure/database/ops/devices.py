from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.utils.time import sqlite_timestamp, utc_now
from infrastructure.database.utils import row_to_dict

logger = logging.getLogger(__name__)


class DeviceOperations:
    """Template catalog, registration and parameter value helpers shared across database handlers.

    Methods on the telemetry path take an optional ``conn`` (an open
    transaction) and let ``sqlite3.Error`` propagate so the caller can roll
    back. Onboarding helpers log and return ``None`` on failure.
    """

    def get_db(self) -> sqlite3.Connection:
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    def _conn(self, conn: Optional[sqlite3.Connection]) -> sqlite3.Connection:
        return conn if conn is not None else self.get_db()

    # --- Template catalog -----------------------------------------------------
    def create_device_template(
        self,
        *,
        abbreviation: str,
        model: str,
        kind: str = "",
        brand: str = "",
    ) -> Optional[int]:
        try:
            db = self.get_db()
            cursor = db.execute(
                """
                INSERT INTO DeviceTemplates (abbreviation, model, kind, brand)
                VALUES (?, ?, ?, ?)
                """,
                (abbreviation, model, kind, brand),
            )
            db.commit()
            return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("Error creating device template %s: %s", model, exc)
            return None

    def create_parameter(self, *, name: str, type_: str) -> Optional[int]:
        try:
            db = self.get_db()
            cursor = db.execute(
                "INSERT INTO Parameters (name, type) VALUES (?, ?)",
                (name, type_),
            )
            db.commit()
            return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("Error creating parameter %s: %s", name, exc)
            return None

    def add_template_parameter(
        self,
        template_id: int,
        parameter_id: int,
        initial_value: Optional[str] = None,
        position: int = 0,
    ) -> bool:
        try:
            db = self.get_db()
            db.execute(
                """
                INSERT INTO DeviceTemplateParameters (template_id, parameter_id, initial_value, position)
                VALUES (?, ?, ?, ?)
                """,
                (template_id, parameter_id, initial_value, position),
            )
            db.commit()
            return True
        except sqlite3.Error as exc:
            logger.error(
                "Error linking parameter %s to template %s: %s",
                parameter_id,
                template_id,
                exc,
            )
            return False

    # --- Registrations --------------------------------------------------------
    def register_device(
        self,
        *,
        owner_id: int,
        template_id: int,
        serial_number: str,
        topic: str,
        name: str = "",
    ) -> Optional[int]:
        """Create a registration and seed its parameter values from the template.

        The unit starts offline until its first telemetry message. A serial
        number that is already registered is rejected.
        """
        try:
            with self.transaction() as db:
                existing = db.execute(
                    "SELECT 1 FROM Registrations WHERE serial_number = ?",
                    (serial_number,),
                ).fetchone()
                if existing:
                    logger.warning("Device with serial %s is already registered", serial_number)
                    return None

                cursor = db.execute(
                    """
                    INSERT INTO Registrations (
                        owner_id, template_id, topic, serial_number, name, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, 'offline', ?)
                    """,
                    (owner_id, template_id, topic, serial_number, name, sqlite_timestamp(utc_now())),
                )
                registration_id = cursor.lastrowid
                db.execute(
                    """
                    INSERT INTO ParameterValues (registration_id, parameter_id, value, updated_at)
                    SELECT ?, parameter_id, initial_value, ?
                    FROM DeviceTemplateParameters
                    WHERE template_id = ?
                    """,
                    (registration_id, sqlite_timestamp(utc_now()), template_id),
                )
            logger.info("Registered device %s (registration_id=%s)", serial_number, registration_id)
            return registration_id
        except sqlite3.Error as exc:
            logger.error("Error registering device %s: %s", serial_number, exc)
            return None

    def get_registration_by_serial(
        self,
        serial_number: str,
        *,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Dict[str, Any]]:
        row = self._conn(conn).execute(
            "SELECT * FROM Registrations WHERE serial_number = ?",
            (serial_number,),
        ).fetchone()
        return row_to_dict(row) if row else None

    def get_registration(self, registration_id: int) -> Optional[Dict[str, Any]]:
        try:
            row = self.get_db().execute(
                "SELECT * FROM Registrations WHERE registration_id = ?",
                (registration_id,),
            ).fetchone()
            return row_to_dict(row) if row else None
        except sqlite3.Error as exc:
            logger.error("Error fetching registration %s: %s", registration_id, exc)
            return None

    def get_template_parameters_for_registration(
        self,
        registration_id: int,
        *,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[Dict[str, Any]]:
        rows = self._conn(conn).execute(
            """
            SELECT p.parameter_id, p.name, p.type, tp.initial_value
            FROM Registrations r
            JOIN DeviceTemplateParameters tp ON tp.template_id = r.template_id
            JOIN Parameters p ON p.parameter_id = tp.parameter_id
            WHERE r.registration_id = ?
            ORDER BY tp.position ASC, p.parameter_id ASC
            """,
            (registration_id,),
        ).fetchall()
        return [row_to_dict(row) for row in rows]

    # --- Parameter values -----------------------------------------------------
    def upsert_parameter_value(
        self,
        registration_id: int,
        parameter_id: int,
        value: str,
        *,
        updated_at: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        cursor = self._conn(conn).execute(
            """
            INSERT INTO ParameterValues (registration_id, parameter_id, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (registration_id, parameter_id)
            DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (registration_id, parameter_id, value, sqlite_timestamp(updated_at)),
        )
        return cursor.rowcount

    def get_parameter_values(self, registration_id: int) -> List[Dict[str, Any]]:
        try:
            rows = self.get_db().execute(
                """
                SELECT pv.registration_id, pv.parameter_id, pv.value, pv.updated_at, p.type AS parameter_type
                FROM ParameterValues pv
                JOIN Parameters p ON p.parameter_id = pv.parameter_id
                WHERE pv.registration_id = ?
                ORDER BY pv.parameter_id ASC
                """,
                (registration_id,),
            ).fetchall()
            return [row_to_dict(row) for row in rows]
        except sqlite3.Error as exc:
            logger.error("Error fetching parameter values for %s: %s", registration_id, exc)
            return []

    # --- Liveness -------------------------------------------------------------
    def set_registration_seen(
        self,
        registration_id: int,
        seen_at: datetime,
        *,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        cursor = self._conn(conn).execute(
            """
            UPDATE Registrations
            SET status = 'online', last_seen_at = ?
            WHERE registration_id = ?
            """,
            (sqlite_timestamp(seen_at), registration_id),
        )
        return cursor.rowcount

    def mark_stale_registrations_offline(self, cutoff: datetime) -> List[Dict[str, Any]]:
        """Flip online registrations not seen since ``cutoff``; return the rows before the change."""
        cutoff_ts = sqlite_timestamp(cutoff)
        with self.transaction() as db:
            rows = db.execute(
                """
                SELECT * FROM Registrations
                WHERE status = 'online'
                  AND (last_seen_at IS NULL OR last_seen_at < ?)
                """,
                (cutoff_ts,),
            ).fetchall()
            stale = [row_to_dict(row) for row in rows]
            if stale:
                placeholders = ", ".join("?" for _ in stale)
                db.execute(
                    f"""
                    UPDATE Registrations SET status = 'offline'
                    WHERE status = 'online' AND registration_id IN ({placeholders})
                    """,
                    [row["registration_id"] for row in stale],
                )
        return stale
