"""
Device Repository
=================

Concrete implementation of the DeviceRepository protocol using SQLite.
Wraps DeviceOperations from the handler and turns raw rows into domain
entities. Database failures on the telemetry and liveness paths surface as
``StoreError``.
"""

from __future__ import annotations

import datetime
import logging
import sqlite3
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, List, Optional

from app.domain.devices import Parameter, ParameterValue, Registration
from app.domain.exceptions import StoreError

if TYPE_CHECKING:
    from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)


class DeviceRepository:
    """Registrations, template parameters and their stored values."""

    def __init__(self, backend: "SQLiteDatabaseHandler") -> None:
        self._backend = backend

    # ==================== Units of work ====================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._backend.transaction() as conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Store transaction rolled back: %s", exc)
            raise StoreError(str(exc), detail={"sqlite_error": type(exc).__name__}) from exc

    # ==================== Telemetry path ====================

    def find_registration_by_serial(
        self, serial_number: str, *, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Registration]:
        row = self._backend.get_registration_by_serial(serial_number, conn=conn)
        return Registration.from_dict(row) if row else None

    def list_parameters_for_registration(
        self, registration_id: int, *, conn: Optional[sqlite3.Connection] = None
    ) -> List[Parameter]:
        rows = self._backend.get_template_parameters_for_registration(registration_id, conn=conn)
        return [Parameter.from_dict(row) for row in rows]

    def update_parameter_value(
        self,
        registration_id: int,
        parameter_id: int,
        value: str,
        *,
        updated_at: Optional[datetime.datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        rowcount = self._backend.upsert_parameter_value(
            registration_id,
            parameter_id,
            value,
            updated_at=updated_at or datetime.datetime.now(datetime.timezone.utc),
            conn=conn,
        )
        return rowcount > 0

    def touch_registration(
        self,
        registration_id: int,
        seen_at: datetime.datetime,
        *,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        self._backend.set_registration_seen(registration_id, seen_at, conn=conn)

    def mark_stale_registrations_offline(self, cutoff: datetime.datetime) -> List[Registration]:
        try:
            rows = self._backend.mark_stale_registrations_offline(cutoff)
        except sqlite3.Error as exc:
            raise StoreError(f"liveness sweep failed: {exc}") from exc
        return [Registration.from_dict(row) for row in rows]

    # ==================== Onboarding / reads ====================

    def create_device_template(self, *, abbreviation: str, model: str, kind: str = "", brand: str = "") -> Optional[int]:
        return self._backend.create_device_template(abbreviation=abbreviation, model=model, kind=kind, brand=brand)

    def create_parameter(self, *, name: str, type_: str) -> Optional[int]:
        return self._backend.create_parameter(name=name, type_=type_)

    def add_template_parameter(
        self,
        template_id: int,
        parameter_id: int,
        initial_value: Optional[str] = None,
        position: int = 0,
    ) -> bool:
        return self._backend.add_template_parameter(template_id, parameter_id, initial_value, position)

    def register_device(
        self,
        *,
        owner_id: int,
        template_id: int,
        serial_number: str,
        topic: str,
        name: str = "",
    ) -> Optional[Registration]:
        registration_id = self._backend.register_device(
            owner_id=owner_id,
            template_id=template_id,
            serial_number=serial_number,
            topic=topic,
            name=name,
        )
        if registration_id is None:
            return None
        return self.get_registration(registration_id)

    def get_registration(self, registration_id: int) -> Optional[Registration]:
        row = self._backend.get_registration(registration_id)
        return Registration.from_dict(row) if row else None

    def get_parameter_values(self, registration_id: int) -> List[ParameterValue]:
        return [
            ParameterValue(
                registration_id=row["registration_id"],
                parameter_id=row["parameter_id"],
                value=row["value"],
                parameter_type=row.get("parameter_type") or "",
            )
            for row in self._backend.get_parameter_values(registration_id)
        ]

    def get_values_by_type(self, registration_id: int) -> dict[str, Optional[str]]:
        """Stored values keyed by the payload key they are reported under."""
        return {value.parameter_type: value.value for value in self.get_parameter_values(registration_id)}
