"""Email delivery through the Resend API."""

import httpx

from notifier.config import settings
from notifier.features.notifications.channels.base import BaseChannel
from notifier.features.notifications.domain import DeliveryResult, Notification, Recipient
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EmailChannel(BaseChannel):
    channel_name = "email"

    def __init__(
        self,
        api_key: str | None = None,
        from_email: str | None = None,
        api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(transport=transport)
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_email = from_email or settings.NOTIFICATION_FROM_EMAIL
        self.api_url = (api_url or settings.RESEND_API_URL).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, recipient: Recipient, notification: Notification) -> DeliveryResult:
        if not self.is_configured():
            logger.warning("Email channel not configured", missing="RESEND_API_KEY")
            return self.failure("Email channel not configured")
        if not recipient.email:
            return self.failure("No email address for recipient")

        message = self.render_template(notification)
        return await self.deliver(notification, self._post_email(recipient.email, message))

    async def _post_email(self, to: str, message) -> str | None:
        payload = await self.post(
            f"{self.api_url}/emails",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.from_email,
                "to": to,
                "subject": message.subject,
                "html": message.html,
                "text": message.text,
            },
        )
        return payload.get("id")
