"""
Device Repository Protocol
==========================

Defines the interface the telemetry ingestor and the liveness sweep need
from persistence. Every method that takes ``conn`` runs on that open
transaction instead of its own connection.
"""

from __future__ import annotations

import datetime
import sqlite3
from abc import abstractmethod
from contextlib import AbstractContextManager
from typing import Protocol

from app.domain.devices.device_entity import Parameter, Registration


class DeviceRepository(Protocol):
    """Protocol for registration and parameter value persistence."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[sqlite3.Connection]:
        """
        Open one atomic unit of work.

        Commits on normal exit. Any database failure inside the block rolls
        back every write and surfaces as ``StoreError``.
        """
        ...

    @abstractmethod
    def find_registration_by_serial(
        self, serial_number: str, *, conn: sqlite3.Connection | None = None
    ) -> Registration | None:
        """
        Look up a registration by its serial number.

        Args:
            serial_number: Serial taken from the telemetry topic
            conn: Open transaction to read through

        Returns:
            Registration if found, None otherwise
        """
        ...

    @abstractmethod
    def list_parameters_for_registration(
        self, registration_id: int, *, conn: sqlite3.Connection | None = None
    ) -> list[Parameter]:
        """
        List the parameters of the registration's template.

        Args:
            registration_id: Registration ID
            conn: Open transaction to read through

        Returns:
            Parameters in catalog order
        """
        ...

    @abstractmethod
    def update_parameter_value(
        self,
        registration_id: int,
        parameter_id: int,
        value: str,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """
        Overwrite the stored value of one parameter, creating the row if needed.

        Returns:
            True once the row holds ``value``
        """
        ...

    @abstractmethod
    def touch_registration(
        self,
        registration_id: int,
        seen_at: datetime.datetime,
        *,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        """Set ``last_seen_at`` and mark the registration online."""
        ...

    @abstractmethod
    def mark_stale_registrations_offline(self, cutoff: datetime.datetime) -> list[Registration]:
        """
        Flip online registrations last seen before ``cutoff`` to offline.

        Rows already offline are never touched.

        Returns:
            The registrations that changed, with their previous state
        """
        ...
