"""In-app notifications for CAs and MR Staff."""

import logging
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.errors import NotFoundError
from core.models import Notification, NotificationCreate
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for notification operations."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create(self, data: NotificationCreate) -> Notification:
        """
        Store a notification for one user.

        Args:
            data: Recipient, type, text and payload

        Returns:
            Created unread notification
        """
        row = self.postgres.execute_returning(
            """
            INSERT INTO notifications (
                id, user_id, type, title, message, data,
                priority, related_case_note_id, is_read, created_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, false, %s
            )
            RETURNING *
            """,
            (
                uuid4(), data.user_id, data.type.value, data.title, data.message,
                Json(data.model_dump(mode="json")["data"]),
                data.priority.value, data.related_case_note_id, now_utc()
            )
        )[0]

        notification = Notification.model_validate(row)
        logger.info("Notification %s (%s) sent to %s", notification.id, data.type.value, data.user_id)
        return notification

    def list_for_user(self, user_id: UUID, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        """
        List a user's notifications, newest first.

        Args:
            user_id: Recipient
            unread_only: Skip notifications already read
            limit: Maximum results
        """
        rows = self.postgres.execute(
            """
            SELECT * FROM notifications
            WHERE user_id = %s AND (NOT %s OR NOT is_read)
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (user_id, unread_only, limit)
        )
        return [Notification.model_validate(row) for row in rows]

    def unread_count(self, user_id: UUID) -> int:
        return self.postgres.execute_scalar(
            "SELECT count(*) FROM notifications WHERE user_id = %s AND NOT is_read",
            (user_id,)
        )

    def mark_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        """
        Mark one of the user's notifications as read.

        Raises:
            NotFoundError: No such notification for this user
        """
        rows = self.postgres.execute_returning(
            """
            UPDATE notifications
            SET is_read = true, read_at = COALESCE(read_at, %s)
            WHERE id = %s AND user_id = %s
            RETURNING *
            """,
            (now_utc(), notification_id, user_id)
        )
        if not rows:
            raise NotFoundError("Notification", notification_id)
        return Notification.model_validate(rows[0])
