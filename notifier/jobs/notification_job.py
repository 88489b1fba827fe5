"""
One notification cycle, run by the external scheduler (cron, every few minutes).

Usage:
    python -m notifier.jobs.worker notifications
"""

from notifier.features.notifications.factory import build_orchestrator
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def run_notification_cycle() -> None:
    orchestrator = build_orchestrator()
    try:
        result = await orchestrator.run()
    finally:
        await orchestrator.close()

    if result.skipped:
        logger.info("Notification cycle skipped, another run holds the slot")
        return

    logger.info("Notification cycle finished", **result.to_dict())
