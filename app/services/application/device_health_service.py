"""
Device Health Service.

Liveness tracking for registered controllers.

Telemetry marks a registration online. This service runs the periodic
sweep that marks it offline again once nothing has been heard from it for
the offline threshold (five minutes by default).

Responsibilities:
- Flip stale online registrations to offline in one store transaction
- Publish DEVICE_STATUS_CHANGED for every flipped registration
- Audit each flip
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional

from app.enums.device import DeviceStatus
from app.enums.events import DeviceEvent
from app.schemas.events import DeviceStatusChangedPayload
from app.utils.time import ensure_utc, iso_now, utc_now

if TYPE_CHECKING:
    from app.domain.devices import DeviceRepository, Registration
    from app.services.protocols import EventPublisher
    from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)

DEFAULT_OFFLINE_THRESHOLD_MINUTES = 5


class DeviceHealthService:
    """Marks silent controllers offline."""

    def __init__(
        self,
        repository: "DeviceRepository",
        event_bus: Optional["EventPublisher"] = None,
        audit_logger: Optional["AuditLogger"] = None,
        offline_threshold_minutes: int = DEFAULT_OFFLINE_THRESHOLD_MINUTES,
    ):
        """
        Initialize DeviceHealthService.

        Args:
            repository: Registration store.
            event_bus: Receives DEVICE_STATUS_CHANGED events.
            audit_logger: Records each status flip.
            offline_threshold_minutes: Silence after which an online unit goes offline.
        """
        self.repository = repository
        self.event_bus = event_bus
        self.audit_logger = audit_logger
        self.offline_threshold = timedelta(minutes=offline_threshold_minutes)

    def offline_cutoff(self, now: Optional[datetime] = None) -> datetime:
        return ensure_utc(now or utc_now()) - self.offline_threshold

    def sweep_offline(self, now: Optional[datetime] = None) -> List["Registration"]:
        """
        Mark every online registration last seen before ``now - threshold`` offline.

        Raises:
            StoreError: The sweep transaction failed and was rolled back

        Returns:
            Registrations that were flipped, as they were before the flip
        """
        cutoff = self.offline_cutoff(now)
        flipped = self.repository.mark_stale_registrations_offline(cutoff)
        if not flipped:
            return []

        logger.info(
            "Liveness sweep marked %d registration(s) offline: %s",
            len(flipped),
            ", ".join(r.serial_number for r in flipped),
        )
        for registration in flipped:
            self._announce(registration)
        return flipped

    def _announce(self, registration: "Registration") -> None:
        last_seen = registration.last_seen_at.isoformat() if registration.last_seen_at else None
        if self.audit_logger is not None:
            self.audit_logger.log_event(
                actor="liveness_sweep",
                action="mark_offline",
                resource=registration.serial_number,
                outcome="success",
                last_seen_at=last_seen,
            )
        if self.event_bus is None:
            return
        try:
            self.event_bus.publish(
                DeviceEvent.DEVICE_STATUS_CHANGED,
                DeviceStatusChangedPayload(
                    registration_id=registration.registration_id or 0,
                    serial_number=registration.serial_number,
                    owner_id=registration.owner_id,
                    previous_status=DeviceStatus.ONLINE,
                    status=DeviceStatus.OFFLINE,
                    last_seen_at=last_seen,
                    timestamp=iso_now(),
                ),
            )
        except Exception as exc:
            logger.error("Failed to publish status change for %s: %s", registration.serial_number, exc)
