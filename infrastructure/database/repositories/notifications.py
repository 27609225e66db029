"""Repository for owner push tokens."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from infrastructure.database.ops.notifications import NotificationOperations


class NotificationRepository:
    def __init__(self, backend: "NotificationOperations") -> None:
        self._backend = backend

    def add_token(self, owner_id: int, token: str, platform: str = "android") -> int | None:
        return self._backend.add_notification_token(owner_id, token, platform)

    def get_active_tokens(self, owner_id: int) -> list[dict[str, Any]]:
        return self._backend.get_active_notification_tokens(owner_id)

    def invalidate_tokens(self, tokens: list[str]) -> int:
        return self._backend.invalidate_notification_tokens(tokens)
