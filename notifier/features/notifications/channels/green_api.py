"""WhatsApp delivery through Green-API (a linked WhatsApp account, no templates)."""

import httpx

from notifier.config import settings
from notifier.features.notifications.channels.base import BaseChannel, normalize_phone
from notifier.features.notifications.domain import DeliveryResult, Notification, Recipient
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def format_chat_id(phone: str | None) -> str | None:
    digits = normalize_phone(phone)
    return f"{digits}@c.us" if digits else None


class GreenApiWhatsAppChannel(BaseChannel):
    channel_name = "whatsapp"

    def __init__(
        self,
        instance_id: str | None = None,
        api_token: str | None = None,
        api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(transport=transport)
        self.instance_id = instance_id or settings.GREEN_API_INSTANCE_ID
        self.api_token = api_token or settings.GREEN_API_TOKEN
        self.api_url = (api_url or settings.GREEN_API_URL).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.instance_id and self.api_token)

    async def send(self, recipient: Recipient, notification: Notification) -> DeliveryResult:
        if not self.is_configured():
            logger.warning("WhatsApp channel not configured", provider="green_api")
            return self.failure("Green API channel not configured")

        chat_id = format_chat_id(recipient.phone)
        if not chat_id:
            return self.failure("No phone number for recipient")

        message = self.render_template(notification).text
        return await self.deliver(notification, self._post_message(chat_id, message))

    async def _post_message(self, chat_id: str, message: str) -> str | None:
        payload = await self.post(
            f"{self.api_url}/waInstance{self.instance_id}/sendMessage/{self.api_token}",
            json={"chatId": chat_id, "message": message},
        )
        return payload.get("idMessage")
