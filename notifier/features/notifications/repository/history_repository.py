"""
Postgres repository for notification_history.

Append-only audit of delivery attempts: rows are created as pending and
moved once to a terminal status (sent/failed).
"""

import json

from psycopg.types.json import Jsonb

from notifier.db.helpers import execute_query, fetch_all, fetch_val
from notifier.features.notifications.domain import DeliveryResult, Notification, Recipient
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class NotificationHistoryRepository:
    """Persistence helpers for notification_history."""

    @staticmethod
    async def create_pending(
        notification: Notification,
        recipient: Recipient,
        channel: str,
        subject: str,
    ) -> int:
        query = """
            INSERT INTO notification_history (
                event_type, event_id, entity_key, subscriber_id,
                recipient_email, recipient_phone, channel, notification_type,
                subject, message, metadata, status
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'pending')
            RETURNING id
        """
        return await fetch_val(
            query,
            (
                notification.event_type,
                str(notification.entity_id) if notification.entity_id is not None else None,
                notification.entity_key,
                str(recipient.id) if recipient.id is not None else None,
                recipient.email,
                recipient.phone,
                channel,
                notification.type,
                subject,
                json.dumps(notification.data, ensure_ascii=False, default=str),
                Jsonb(notification.metadata, dumps=lambda obj: json.dumps(obj, default=str)),
            ),
        )

    @staticmethod
    async def mark_result(history_id: int, result: DeliveryResult) -> None:
        # Only pending rows transition; terminal rows are immutable.
        query = """
            UPDATE notification_history
            SET status = %s,
                external_id = %s,
                error_message = %s,
                sent_at = CASE WHEN %s THEN NOW() ELSE NULL END,
                completed_at = NOW()
            WHERE id = %s AND status = 'pending'
        """
        updated = await execute_query(
            query,
            (
                "sent" if result.success else "failed",
                result.external_id,
                (result.error or "")[:1000] or None,
                result.success,
                history_id,
            ),
        )
        if updated == 0:
            logger.warning("History record not pending, status left unchanged", history_id=history_id)

    @staticmethod
    async def list_recent(
        limit: int = 50,
        offset: int = 0,
        event_type: str | None = None,
        status: str | None = None,
    ) -> list[dict]:
        conditions = []
        params: list = []
        if event_type:
            conditions.append("event_type = %s")
            params.append(event_type)
        if status:
            conditions.append("status = %s")
            params.append(status)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT id, event_type, event_id, entity_key, recipient_email, recipient_phone,
                   channel, notification_type, subject, status, external_id,
                   error_message, created_at, sent_at
            FROM notification_history
            {where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
        """
        params.extend([limit, offset])
        return await fetch_all(query, tuple(params))
