"""
Telemetry Ingest Service
========================

Turns controller telemetry into stored parameter values.

Each controller publishes a flat JSON object on ``<template>/<abbrev>/<serial>``.
For every message this service:

1. Decodes the payload into an explicit :class:`ParseResult`.
2. Resolves the registration from the serial number in the topic.
3. In one store transaction, overwrites the value of every payload key that
   names one of the registration's template parameters, skips the rest, and
   marks the registration online with ``last_seen_at = now``.
4. After commit, publishes ``TELEMETRY_INGESTED`` so side effects such as
   push notifications run outside the transaction.

The bus callback never raises: malformed payloads, unknown devices and
store failures are logged and the message is dropped.
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.domain.devices import Parameter
from app.domain.exceptions import (
    MalformedPayloadError,
    StoreError,
    UnknownDeviceError,
    WaterKontrolError,
)
from app.enums.events import DeviceEvent
from app.schemas.events import TelemetryIngestedPayload
from app.utils.time import ensure_utc, iso_now, utc_now

if TYPE_CHECKING:
    from app.domain.devices import DeviceRepository
    from app.services.protocols import EventPublisher, MessageBus

logger = logging.getLogger(__name__)

TOPIC_LEVELS = 3
MSG_ID_FIELD = "msg_id"
_SCALAR_TYPES = (str, int, float, bool)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of decoding a telemetry payload."""

    payload: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class IngestOutcome:
    """What one ingested message changed."""

    registration_id: int
    serial_number: str
    updated: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    msg_id: str | None = None
    seen_at: datetime | None = None


def parse_payload(raw: bytes | bytearray | str | None) -> ParseResult:
    """Decode a payload into a flat JSON object. Never raises."""
    if raw is None:
        return ParseResult(error="empty payload")
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            return ParseResult(error=f"payload is not UTF-8: {exc}")
    if not raw.strip():
        return ParseResult(error="empty payload")
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        return ParseResult(error=f"invalid JSON: {exc.msg} at position {exc.pos}")
    if not isinstance(decoded, dict):
        return ParseResult(error=f"expected a JSON object, got {type(decoded).__name__}")
    return ParseResult(payload=decoded)


def serial_from_topic(topic: str) -> str | None:
    """Last level of a ``<template>/<abbrev>/<serial>`` topic, or None for any other shape."""
    levels = (topic or "").split("/")
    if len(levels) != TOPIC_LEVELS or not all(levels):
        return None
    return levels[-1]


def stored_value(value: Any) -> str | None:
    """Text form of a scalar payload value; None for anything that is not storable."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, _SCALAR_TYPES):
        return str(value)
    return None


def build_parameter_lookup(parameters: list[Parameter]) -> dict[str, Parameter]:
    """Map payload keys to parameters: by ``type`` first, then by ``name``."""
    lookup: dict[str, Parameter] = {}
    for parameter in parameters:
        if parameter.name:
            lookup.setdefault(parameter.name, parameter)
    for parameter in parameters:
        if parameter.type:
            lookup[parameter.type] = parameter
    return lookup


class TelemetryIngestService:
    """Consumes controller telemetry from the message bus into the store."""

    def __init__(
        self,
        repository: "DeviceRepository",
        mqtt_client: "MessageBus | None" = None,
        event_bus: "EventPublisher | None" = None,
        *,
        topic_pattern: str = "+/+/+",
        unknown_device_log_cooldown_s: float = 600.0,
        unknown_device_log_limit: int = 1024,
    ):
        """
        Args:
            repository: Registration / parameter value store.
            mqtt_client: Bus to subscribe on; None for direct ``ingest`` calls only.
            event_bus: Receives TELEMETRY_INGESTED after each commit.
            topic_pattern: Subscription pattern for telemetry topics.
            unknown_device_log_cooldown_s: Minimum seconds between warnings per unknown serial.
            unknown_device_log_limit: Most unknown serials remembered for throttling.
        """
        self.repository = repository
        self.mqtt_client = mqtt_client
        self.event_bus = event_bus
        self.topic_pattern = topic_pattern
        self._unknown_log_cooldown_s = unknown_device_log_cooldown_s
        self._unknown_log_limit = max(1, int(unknown_device_log_limit))
        # serial -> last warning time, oldest first
        self._unknown_last_logged_at: OrderedDict[str, float] = OrderedDict()
        self.stats = {"ingested": 0, "malformed": 0, "unknown_device": 0, "store_errors": 0}

        if self.mqtt_client is not None:
            self.mqtt_client.subscribe(self.topic_pattern, self._on_message)
            logger.info("TelemetryIngestService listening on %s", self.topic_pattern)

    # ---------------------------------------------------------------------
    # Bus entry point
    # ---------------------------------------------------------------------

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        self.handle_message(str(getattr(msg, "topic", "")), getattr(msg, "payload", b""))

    def handle_message(self, topic: str, payload: bytes | str) -> bool:
        """
        Ingest one message, logging and dropping it on failure.

        Guaranteed not to raise so the network loop keeps running.

        Returns:
            True when the message was committed.
        """
        try:
            self.ingest(topic, payload)
            return True
        except MalformedPayloadError as exc:
            self.stats["malformed"] += 1
            logger.warning("Dropping malformed telemetry on %s: %s", topic, exc)
        except UnknownDeviceError as exc:
            self.stats["unknown_device"] += 1
            self._log_unknown_device(topic, exc)
        except StoreError as exc:
            self.stats["store_errors"] += 1
            logger.error("Telemetry on %s rolled back: %s", topic, exc)
        except WaterKontrolError as exc:
            logger.error("Telemetry on %s dropped: %s", topic, exc)
        except Exception:
            logger.exception("Unexpected error ingesting telemetry on %s", topic)
        return False

    def _log_unknown_device(self, topic: str, exc: UnknownDeviceError) -> None:
        key = exc.detail.get("serial_number") or topic
        now = time.monotonic()
        last = self._unknown_last_logged_at.get(key)
        if last is not None and now - last < self._unknown_log_cooldown_s:
            logger.debug("Telemetry from unknown device %s (suppressed)", key)
            return
        self._unknown_last_logged_at[key] = now
        self._unknown_last_logged_at.move_to_end(key)
        self._prune_unknown_log(now)
        logger.warning("Telemetry from unknown device on %s: %s", topic, exc)

    def _prune_unknown_log(self, now: float) -> None:
        entries = self._unknown_last_logged_at
        while entries:
            oldest_key, logged_at = next(iter(entries.items()))
            if len(entries) <= self._unknown_log_limit and now - logged_at < self._unknown_log_cooldown_s:
                break
            del entries[oldest_key]

    # ---------------------------------------------------------------------
    # Ingestion
    # ---------------------------------------------------------------------

    def ingest(
        self,
        topic: str,
        raw_payload: bytes | str,
        *,
        received_at: datetime | None = None,
    ) -> IngestOutcome:
        """
        Store one telemetry message atomically.

        Args:
            topic: Topic the message arrived on
            raw_payload: Message body
            received_at: Ingestion time, defaults to now (UTC)

        Returns:
            IngestOutcome with the stored and skipped keys

        Raises:
            MalformedPayloadError: Body is not a JSON object
            UnknownDeviceError: No registration for the topic's serial
            StoreError: The transaction failed and was rolled back
        """
        parsed = parse_payload(raw_payload)
        if not parsed.ok:
            raise MalformedPayloadError(parsed.error or "malformed payload", detail={"topic": topic})
        payload = parsed.payload or {}

        serial = serial_from_topic(topic)
        if serial is None:
            raise UnknownDeviceError(
                f"topic {topic!r} does not carry a serial number",
                detail={"topic": topic},
            )

        seen_at = ensure_utc(received_at) if received_at else utc_now()
        msg_id = payload.get(MSG_ID_FIELD)
        msg_id = str(msg_id) if msg_id is not None else None

        with self.repository.transaction() as conn:
            registration = self.repository.find_registration_by_serial(serial, conn=conn)
            if registration is None or registration.registration_id is None:
                raise UnknownDeviceError(
                    f"no registration for serial {serial}",
                    detail={"serial_number": serial, "topic": topic},
                )

            lookup = build_parameter_lookup(
                self.repository.list_parameters_for_registration(registration.registration_id, conn=conn)
            )
            outcome = IngestOutcome(
                registration_id=registration.registration_id,
                serial_number=serial,
                msg_id=msg_id,
                seen_at=seen_at,
            )
            for key, value in payload.items():
                if key == MSG_ID_FIELD:
                    continue
                parameter = lookup.get(key)
                text = stored_value(value)
                if parameter is None or parameter.parameter_id is None or text is None:
                    outcome.skipped.append(key)
                    continue
                self.repository.update_parameter_value(
                    registration.registration_id,
                    parameter.parameter_id,
                    text,
                    updated_at=seen_at,
                    conn=conn,
                )
                outcome.updated[key] = text

            self.repository.touch_registration(registration.registration_id, seen_at, conn=conn)

        self.stats["ingested"] += 1
        logger.info(
            "Telemetry stored for %s (msg_id=%s): %d updated, %d skipped",
            serial,
            msg_id or "N/A",
            len(outcome.updated),
            len(outcome.skipped),
        )
        if outcome.skipped:
            logger.debug("Skipped keys for %s: %s", serial, outcome.skipped)

        self._emit_ingested(topic, registration.owner_id, outcome, payload)
        return outcome

    def _emit_ingested(self, topic: str, owner_id: int | None, outcome: IngestOutcome, raw: dict[str, Any]) -> None:
        if self.event_bus is None:
            return
        try:
            self.event_bus.publish(
                DeviceEvent.TELEMETRY_INGESTED,
                TelemetryIngestedPayload(
                    registration_id=outcome.registration_id,
                    serial_number=outcome.serial_number,
                    owner_id=owner_id,
                    topic=topic,
                    msg_id=outcome.msg_id,
                    updated=outcome.updated,
                    skipped=outcome.skipped,
                    raw=raw,
                    timestamp=iso_now(),
                ),
            )
        except Exception as exc:
            # Committed data stands whatever happens to the side effects
            logger.error("Failed to publish telemetry event for %s: %s", outcome.serial_number, exc)
