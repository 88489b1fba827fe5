"""
Postgres repository for notification_admin_recipients.
"""

from notifier.db.helpers import execute_query, fetch_all, fetch_one
from notifier.features.notifications.domain import Recipient

_RECIPIENT_COLUMNS = "id, name, email, phone, event_types, is_active"


class RecipientRepository:
    """Persistence helpers for notification_admin_recipients."""

    @staticmethod
    async def get_active_for_event(event_type: str) -> list[Recipient]:
        query = f"""
            SELECT {_RECIPIENT_COLUMNS}
            FROM notification_admin_recipients
            WHERE is_active = TRUE AND %s = ANY(event_types)
            ORDER BY id
        """
        rows = await fetch_all(query, (event_type,))
        return [Recipient.from_row(row) for row in rows]

    @staticmethod
    async def list_all() -> list[Recipient]:
        query = f"SELECT {_RECIPIENT_COLUMNS} FROM notification_admin_recipients ORDER BY id"
        rows = await fetch_all(query)
        return [Recipient.from_row(row) for row in rows]

    @staticmethod
    async def create(recipient: Recipient) -> Recipient:
        query = f"""
            INSERT INTO notification_admin_recipients (name, email, phone, event_types, is_active)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_RECIPIENT_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                recipient.name,
                recipient.email,
                recipient.phone,
                recipient.event_types,
                recipient.is_active,
            ),
        )
        return Recipient.from_row(row)

    @staticmethod
    async def update(recipient_id: int, fields: dict) -> Recipient | None:
        allowed = {"name", "email", "phone", "event_types", "is_active"}
        updates = {key: value for key, value in fields.items() if key in allowed}
        if not updates:
            row = await fetch_one(
                f"SELECT {_RECIPIENT_COLUMNS} FROM notification_admin_recipients WHERE id = %s",
                (recipient_id,),
            )
            return Recipient.from_row(row) if row else None

        assignments = ", ".join(f"{column} = %s" for column in updates)
        query = f"""
            UPDATE notification_admin_recipients
            SET {assignments}, updated_at = NOW()
            WHERE id = %s
            RETURNING {_RECIPIENT_COLUMNS}
        """
        row = await fetch_one(query, (*updates.values(), recipient_id))
        return Recipient.from_row(row) if row else None

    @staticmethod
    async def delete(recipient_id: int) -> bool:
        deleted = await execute_query(
            "DELETE FROM notification_admin_recipients WHERE id = %s", (recipient_id,)
        )
        return deleted > 0
