"""
Ops summary alert - one Telegram message per completed run that sent something.

Optional: without OPS_TELEGRAM_BOT_TOKEN / OPS_TELEGRAM_CHAT_ID it is a no-op.
The orchestrator fires it in the background, so a failure here never affects
a notification run; errors are raised to the caller (the background task
callback logs them).
"""

import httpx

from notifier.config import settings
from notifier.features.notifications.domain import RunResult
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4000


class OpsAlerter:
    def __init__(
        self,
        bot_token: str | None = None,
        chat_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.bot_token = bot_token or settings.OPS_TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id or settings.OPS_TELEGRAM_CHAT_ID
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(10.0), transport=transport)

    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def format_summary(result: RunResult) -> str:
        lines = [
            f"Notification run #{result.job_run_id} completed",
            f"events: {result.events_detected} | sent: {result.notifications_sent} "
            f"| failed: {result.notifications_failed}",
        ]
        for detector in result.detector_results:
            line = f"- {detector.name}: {detector.events_detected} events"
            if detector.error:
                line += f" (error: {detector.error[:100]})"
            lines.append(line)
        return "\n".join(lines)[:MAX_MESSAGE_LENGTH]

    async def send_run_summary(self, result: RunResult) -> bool:
        if not self.is_configured():
            logger.debug("Ops alerter not configured, skipping summary")
            return False

        response = await self._client.post(
            f"{TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage",
            json={
                "chat_id": self.chat_id,
                "text": self.format_summary(result),
                "disable_web_page_preview": True,
            },
        )
        response.raise_for_status()
        logger.info("Ops summary sent", job_run_id=result.job_run_id)
        return True
