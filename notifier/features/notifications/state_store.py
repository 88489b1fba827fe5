"""
StateStore - last-observed state per (event_type, entity_key).

Detectors hand every snapshot to compare_state() and then save_state(),
whether or not a notification fired. Detection is therefore decoupled from
delivery: a failed send never causes the same transition to be re-detected.

The first sighting of an entity is never reported as a change (cold-start
quiescence), so a fresh deploy or a backfill does not flood admins.
"""

import hashlib
import json
from datetime import UTC, datetime, timedelta
from typing import Any

from notifier.db.helpers import DatabaseError
from notifier.features.notifications.domain import StateComparison, StateRecord
from notifier.features.notifications.errors import StateStoreError
from notifier.features.notifications.repository.state_repository import (
    NotificationStateRepository,
)
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def hash_state(state_data: dict[str, Any]) -> str:
    """Deterministic sha256 of a snapshot; key order (at any depth) never matters."""
    normalized = json.dumps(
        state_data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class StateStore:
    """Change detection over notification_event_state."""

    hash_state = staticmethod(hash_state)

    def __init__(self, repository: NotificationStateRepository | None = None):
        self.repository = repository or NotificationStateRepository()

    async def get_previous_state(self, event_type: str, entity_key: str) -> StateRecord | None:
        try:
            row = await self.repository.get(event_type, entity_key)
        except DatabaseError as e:
            raise StateStoreError(
                f"Failed to load state for {event_type}/{entity_key}: {e}",
                operation="get_previous_state",
            ) from e
        return StateRecord.from_row(row) if row else None

    async def compare_state(
        self, event_type: str, entity_key: str, new_state_data: dict[str, Any]
    ) -> StateComparison:
        previous = await self.get_previous_state(event_type, entity_key)
        new_hash = hash_state(new_state_data)

        if previous is None:
            return StateComparison(has_changed=False, is_new=True, new_hash=new_hash)

        has_changed = previous.state_hash != new_hash
        return StateComparison(
            has_changed=has_changed,
            is_new=False,
            new_hash=new_hash,
            previous_state=previous.state_data,
            previous_hash=previous.state_hash,
            changes=(
                {"before": previous.state_data, "after": new_state_data} if has_changed else None
            ),
        )

    async def save_state(
        self,
        event_type: str,
        entity_id: str | None,
        entity_key: str,
        state_data: dict[str, Any],
    ) -> StateRecord:
        state_hash = hash_state(state_data)
        try:
            row = await self.repository.upsert(
                event_type,
                str(entity_id) if entity_id is not None else None,
                entity_key,
                state_data,
                state_hash,
            )
        except DatabaseError as e:
            raise StateStoreError(
                f"Failed to save state for {event_type}/{entity_key}: {e}",
                operation="save_state",
            ) from e

        if row:
            return StateRecord.from_row(row)
        return StateRecord(
            event_type=event_type,
            entity_id=entity_id,
            entity_key=entity_key,
            state_data=state_data,
            state_hash=state_hash,
        )

    async def cleanup_old_states(self, event_type: str, older_than_days: int = 7) -> int:
        """Delete records of time-boxed entities not seen for `older_than_days`."""
        cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
        try:
            deleted = await self.repository.delete_checked_before(event_type, cutoff)
        except DatabaseError as e:
            raise StateStoreError(
                f"Failed to clean up state for {event_type}: {e}", operation="cleanup"
            ) from e

        logger.info(
            "Old notification states cleaned up",
            event_type=event_type,
            older_than_days=older_than_days,
            cutoff=cutoff.isoformat(),
            deleted_count=deleted,
        )
        return deleted

    async def get_all_states(self, event_type: str | None = None) -> list[StateRecord]:
        try:
            rows = await self.repository.list_for_event(event_type)
        except DatabaseError as e:
            raise StateStoreError(f"Failed to list states: {e}", operation="list") from e
        return [StateRecord.from_row(row) for row in rows]

    async def clear_states(self, event_type: str, entity_key: str | None = None) -> int:
        """Forget stored state so the next sighting is treated as new."""
        try:
            return await self.repository.delete(event_type, entity_key)
        except DatabaseError as e:
            raise StateStoreError(f"Failed to clear states: {e}", operation="clear") from e
