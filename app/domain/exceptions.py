"""Centralized exception hierarchy for WaterKontrol.

All domain and service exceptions inherit from :class:`WaterKontrolError` so
that callers can catch a single base class when they need a broad safety net,
yet still match on specific subclasses where narrower handling is appropriate.

The MQTT message handler and the scheduled tasks catch the base class,
log it and drop the message or command; nothing is re-raised into the
network loop.

Hierarchy
---------
::

    WaterKontrolError (base)
    ├── MalformedPayloadError      (telemetry body is not a JSON object)
    ├── UnknownDeviceError         (no registration for the topic's serial)
    ├── StoreError                 (database / persistence, transaction rolled back)
    ├── PublishError               (bus refused or failed an outbound command)
    ├── ScheduleNormalizationError (invalid time, offset or day set)
    └── ConfigurationError         (missing / invalid config)
"""

from __future__ import annotations


class WaterKontrolError(Exception):
    """Base exception for all WaterKontrol errors.

    Parameters
    ----------
    message:
        Human-readable description.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Ingestion ────────────────────────────────────────────────────────


class MalformedPayloadError(WaterKontrolError):
    """Telemetry payload could not be decoded into a flat JSON object."""


class UnknownDeviceError(WaterKontrolError):
    """Telemetry arrived for a serial number with no registration."""


# ── Infrastructure ───────────────────────────────────────────────────


class StoreError(WaterKontrolError):
    """Database / persistence layer failure. The enclosing transaction was rolled back."""


class PublishError(WaterKontrolError):
    """Outbound message could not be handed to the broker."""


# ── Scheduling ───────────────────────────────────────────────────────


class ScheduleNormalizationError(WaterKontrolError):
    """Schedule window cannot be converted between local time and UTC."""


class ConfigurationError(WaterKontrolError):
    """Missing or invalid application configuration."""
