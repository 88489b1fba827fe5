"""
State cleanup job - deletes stored state of time-boxed entities.

Waitlist sessions are keyed by date and time, so their state rows stop
being refreshed once the session is in the past. The daily birthday and
membership expiry digests key their rows by date in the same way. Rows not
checked for STATE_CLEANUP_OLDER_THAN_DAYS are removed. Set-diff detectors
keep a single long-lived row and are not listed here.
"""

from notifier.config import settings
from notifier.features.notifications.errors import StateStoreError
from notifier.features.notifications.state_store import StateStore
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def run_state_cleanup(
    state_store: StateStore | None = None,
    event_types: list[str] | None = None,
    older_than_days: int | None = None,
) -> dict:
    """
    Returns:
        dict: {"success": bool, "deleted": {event_type: count}, "errors": list}
    """
    store = state_store or StateStore()
    targets = event_types if event_types is not None else settings.STATE_CLEANUP_EVENT_TYPES
    days = older_than_days if older_than_days is not None else settings.STATE_CLEANUP_OLDER_THAN_DAYS

    result = {"success": True, "deleted": {}, "errors": []}
    for event_type in targets:
        try:
            result["deleted"][event_type] = await store.cleanup_old_states(event_type, days)
        except StateStoreError as e:
            error_msg = f"Failed to clean up {event_type}: {e}"
            logger.error(error_msg)
            result["errors"].append(error_msg)
            result["success"] = False

    logger.info("State cleanup job completed", result=result)
    return result
