from __future__ import annotations

import logging
import sqlite3
from typing import Any

from app.utils.time import sqlite_timestamp, utc_now
from infrastructure.database.utils import row_to_dict

logger = logging.getLogger(__name__)


class NotificationOperations:
    """Push token storage for owner notifications."""

    def get_db(self) -> sqlite3.Connection:
        raise NotImplementedError("Subclass must implement get_db()")

    def add_notification_token(self, owner_id: int, token: str, platform: str = "android") -> int | None:
        """Store a push token; re-adding an invalidated token revives it."""
        try:
            db = self.get_db()
            db.execute(
                """
                INSERT INTO NotificationTokens (owner_id, token, platform, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (token) DO UPDATE SET
                    owner_id = excluded.owner_id,
                    platform = excluded.platform,
                    invalidated_at = NULL
                """,
                (owner_id, token, platform, sqlite_timestamp(utc_now())),
            )
            db.commit()
            row = db.execute(
                "SELECT token_id FROM NotificationTokens WHERE token = ?",
                (token,),
            ).fetchone()
            return row["token_id"] if row else None
        except sqlite3.Error as exc:
            logger.error("Error storing notification token for owner %s: %s", owner_id, exc)
            return None

    def get_active_notification_tokens(self, owner_id: int) -> list[dict[str, Any]]:
        try:
            rows = self.get_db().execute(
                """
                SELECT token_id, owner_id, token, platform, created_at
                FROM NotificationTokens
                WHERE owner_id = ? AND invalidated_at IS NULL
                ORDER BY token_id ASC
                """,
                (owner_id,),
            ).fetchall()
            return [row_to_dict(row) for row in rows]
        except sqlite3.Error as exc:
            logger.error("Error fetching notification tokens for owner %s: %s", owner_id, exc)
            return []

    def invalidate_notification_tokens(self, tokens: list[str]) -> int:
        if not tokens:
            return 0
        try:
            db = self.get_db()
            placeholders = ", ".join("?" for _ in tokens)
            cursor = db.execute(
                f"""
                UPDATE NotificationTokens SET invalidated_at = ?
                WHERE invalidated_at IS NULL AND token IN ({placeholders})
                """,
                [sqlite_timestamp(utc_now()), *tokens],
            )
            db.commit()
            return cursor.rowcount
        except sqlite3.Error as exc:
            logger.error("Error invalidating %d notification tokens: %s", len(tokens), exc)
            return 0
