"""
Notification Service
====================

Owner push notifications for WaterKontrol controllers.

Hangs off the event bus, so delivery always happens after the telemetry or
liveness transaction has committed and a delivery failure can never undo it.

Features:
- Telemetry update notifications
- Device offline alerts
- Stale FCM token invalidation
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

import requests

from app.enums.events import DeviceEvent, NotificationEvent, NotificationSeverity
from app.schemas.events import (
    DeviceStatusChangedPayload,
    PushNotificationPayload,
    TelemetryIngestedPayload,
)

if TYPE_CHECKING:
    from infrastructure.database.repositories.notifications import NotificationRepository
    from app.services.protocols import EventPublisher, PushSender

logger = logging.getLogger(__name__)

DEFAULT_FCM_URL = "https://fcm.googleapis.com/fcm/send"
STALE_TOKEN_ERRORS = frozenset({"NotRegistered", "InvalidRegistration"})


@dataclass
class PushResult:
    delivered: int = 0
    failed: int = 0
    stale_tokens: List[str] = field(default_factory=list)
    error: Optional[str] = None


class FcmPushSender:
    """Legacy HTTP FCM client."""

    def __init__(self, server_key: str, url: str = DEFAULT_FCM_URL, timeout: float = 5.0):
        self.server_key = server_key
        self.url = url
        self.timeout = timeout

    def send(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, Any]] = None) -> PushResult:
        """
        Send one message to every token. Never raises.

        Tokens reported as ``NotRegistered`` / ``InvalidRegistration`` are
        returned in ``stale_tokens``; an HTTP 404 marks all of them stale.
        """
        if not tokens:
            return PushResult()
        headers = {
            "Content-Type": "application/json",
            "Authorization": "key=" + self.server_key,
        }
        payload = {
            "registration_ids": tokens,
            "notification": {"title": title, "body": body},
            "data": data or {},
        }
        try:
            response = requests.post(self.url, headers=headers, data=json.dumps(payload), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Failed to send FCM notification: %s", e)
            return PushResult(failed=len(tokens), error=str(e))

        if response.status_code == 404:
            return PushResult(failed=len(tokens), stale_tokens=list(tokens), error="HTTP 404")
        if response.status_code >= 400:
            logger.error("FCM rejected notification: HTTP %s %s", response.status_code, response.text)
            return PushResult(failed=len(tokens), error=f"HTTP {response.status_code}")

        try:
            results = response.json().get("results") or []
        except ValueError:
            logger.warning("FCM returned a non-JSON body: %s", response.text)
            return PushResult(delivered=len(tokens))

        outcome = PushResult()
        for token, result in zip(tokens, results):
            error = (result or {}).get("error")
            if error is None:
                outcome.delivered += 1
                continue
            outcome.failed += 1
            if error in STALE_TOKEN_ERRORS:
                outcome.stale_tokens.append(token)
        # FCM may return fewer results than tokens; count the rest as delivered
        outcome.delivered += max(0, len(tokens) - len(results))
        return outcome


class NotificationsService:
    """
    Push notifications for device owners.

    Subscribes to TELEMETRY_INGESTED and DEVICE_STATUS_CHANGED and sends one
    push per event to every active token of the registration owner.
    """

    def __init__(
        self,
        notification_repo: "NotificationRepository",
        push_sender: Optional["PushSender"] = None,
        *,
        enabled: bool = True,
    ):
        """
        Initialize NotificationsService.

        Args:
            notification_repo: Repository for push tokens.
            push_sender: Delivery backend; without one nothing is sent.
            enabled: Master switch.
        """
        self._repo = notification_repo
        self._sender = push_sender
        self.enabled = enabled and push_sender is not None
        self._unsubscribers: List[Callable[[], None]] = []

    def attach(self, event_bus: "EventPublisher") -> None:
        self._unsubscribers.append(event_bus.subscribe(DeviceEvent.TELEMETRY_INGESTED, self.on_telemetry_ingested))
        self._unsubscribers.append(event_bus.subscribe(DeviceEvent.DEVICE_STATUS_CHANGED, self.on_status_changed))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def on_telemetry_ingested(self, payload: TelemetryIngestedPayload | dict) -> None:
        event = TelemetryIngestedPayload.model_validate(payload)
        if event.owner_id is None or not event.updated:
            return
        summary = ", ".join(f"{key}={value}" for key, value in sorted(event.updated.items()))
        self.notify_owner(
            PushNotificationPayload(
                owner_id=event.owner_id,
                notification_type=NotificationEvent.TELEMETRY_UPDATE,
                title=f"Update from {event.serial_number}",
                body=summary,
                data={"serial_number": event.serial_number, **event.updated},
            )
        )

    def on_status_changed(self, payload: DeviceStatusChangedPayload | dict) -> None:
        event = DeviceStatusChangedPayload.model_validate(payload)
        if event.owner_id is None or event.status.value != "offline":
            return
        self.notify_owner(
            PushNotificationPayload(
                owner_id=event.owner_id,
                notification_type=NotificationEvent.DEVICE_OFFLINE,
                severity=NotificationSeverity.WARNING,
                title=f"{event.serial_number} is offline",
                body=f"No data since {event.last_seen_at or 'registration'}",
                data={"serial_number": event.serial_number, "status": event.status.value},
            )
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def notify_owner(self, notification: PushNotificationPayload) -> Optional[PushResult]:
        """Send one notification to the owner's active tokens. Never raises."""
        if not self.enabled or self._sender is None:
            return None
        try:
            tokens = [row["token"] for row in self._repo.get_active_tokens(notification.owner_id)]
            if not tokens:
                logger.debug("Owner %s has no push tokens", notification.owner_id)
                return None

            data = {k: str(v) for k, v in notification.data.items()}
            data["type"] = notification.notification_type.value
            data["severity"] = notification.severity.value
            result = self._sender.send(tokens, notification.title, notification.body, data)

            if result.stale_tokens:
                removed = self._repo.invalidate_tokens(result.stale_tokens)
                logger.info("Invalidated %d stale push token(s) for owner %s", removed, notification.owner_id)
            logger.debug(
                "Push %s to owner %s: %d delivered",
                notification.notification_type.value,
                notification.owner_id,
                result.delivered,
            )
            return result
        except Exception as e:
            logger.error("Push notification to owner %s failed: %s", notification.owner_id, e)
            return None
