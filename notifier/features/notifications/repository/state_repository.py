"""
Postgres repository for notification_event_state.

One row per (event_type, entity_key); written on every detector check.
"""

from datetime import datetime

from psycopg.types.json import Jsonb

from notifier.db.helpers import execute_query, fetch_all, fetch_one
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_STATE_COLUMNS = """
    id, event_type, entity_id, entity_key, state_data, state_hash, last_checked_at
"""


class NotificationStateRepository:
    """Persistence helpers for notification_event_state."""

    @staticmethod
    async def get(event_type: str, entity_key: str) -> dict | None:
        query = f"""
            SELECT {_STATE_COLUMNS}
            FROM notification_event_state
            WHERE event_type = %s AND entity_key = %s
        """
        return await fetch_one(query, (event_type, entity_key))

    @staticmethod
    async def upsert(
        event_type: str,
        entity_id: str | None,
        entity_key: str,
        state_data: dict,
        state_hash: str,
    ) -> dict:
        query = f"""
            INSERT INTO notification_event_state (
                event_type, entity_id, entity_key, state_data, state_hash,
                last_checked_at, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, NOW(), NOW())
            ON CONFLICT (event_type, entity_key)
            DO UPDATE SET
                entity_id = EXCLUDED.entity_id,
                state_data = EXCLUDED.state_data,
                state_hash = EXCLUDED.state_hash,
                last_checked_at = NOW(),
                updated_at = NOW()
            RETURNING {_STATE_COLUMNS}
        """
        return await fetch_one(
            query, (event_type, entity_id, entity_key, Jsonb(state_data), state_hash)
        )

    @staticmethod
    async def delete_checked_before(event_type: str, cutoff: datetime) -> int:
        query = """
            DELETE FROM notification_event_state
            WHERE event_type = %s AND last_checked_at < %s
        """
        return await execute_query(query, (event_type, cutoff))

    @staticmethod
    async def list_for_event(event_type: str | None = None, limit: int = 200) -> list[dict]:
        if event_type:
            query = f"""
                SELECT {_STATE_COLUMNS}
                FROM notification_event_state
                WHERE event_type = %s
                ORDER BY last_checked_at DESC
                LIMIT %s
            """
            return await fetch_all(query, (event_type, limit))

        query = f"""
            SELECT {_STATE_COLUMNS}
            FROM notification_event_state
            ORDER BY last_checked_at DESC
            LIMIT %s
        """
        return await fetch_all(query, (limit,))

    @staticmethod
    async def delete(event_type: str, entity_key: str | None = None) -> int:
        if entity_key:
            query = """
                DELETE FROM notification_event_state
                WHERE event_type = %s AND entity_key = %s
            """
            deleted = await execute_query(query, (event_type, entity_key))
        else:
            query = "DELETE FROM notification_event_state WHERE event_type = %s"
            deleted = await execute_query(query, (event_type,))

        logger.warning(
            "Notification state cleared",
            event_type=event_type,
            entity_key=entity_key,
            deleted=deleted,
        )
        return deleted
