"""
WhatsApp delivery through the Twilio Messages API.

Business-initiated WhatsApp messages outside the 24h session window need an
approved content template. When TWILIO_USE_CONTENT_TEMPLATES is on and the
notification type has a content SID, the message is sent as ContentSid with
positional ContentVariables; otherwise the rendered text goes out as Body.
"""

import json

import httpx

from notifier.config import settings
from notifier.features.notifications.channels.base import BaseChannel, normalize_phone
from notifier.features.notifications.channels.templates import content_variables
from notifier.features.notifications.domain import DeliveryResult, Notification, Recipient
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_BODY_LENGTH = 1600


def format_whatsapp_address(phone: str | None) -> str | None:
    digits = normalize_phone(phone)
    return f"whatsapp:+{digits}" if digits else None


class TwilioWhatsAppChannel(BaseChannel):
    channel_name = "whatsapp"

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        use_content_templates: bool | None = None,
        content_sids: dict[str, str] | None = None,
        api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(transport=transport)
        self.account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number or settings.TWILIO_WHATSAPP_FROM
        self.use_content_templates = (
            settings.TWILIO_USE_CONTENT_TEMPLATES
            if use_content_templates is None
            else use_content_templates
        )
        self.content_sids = content_sids if content_sids is not None else settings.TWILIO_CONTENT_SIDS
        self.api_url = (api_url or settings.TWILIO_API_URL).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def build_form(self, to: str, notification: Notification) -> dict[str, str]:
        from_number = self.from_number
        if not from_number.startswith("whatsapp:"):
            from_number = f"whatsapp:{from_number}"
        form = {"From": from_number, "To": to}

        content_sid = self.content_sids.get(notification.type) if self.use_content_templates else None
        if content_sid:
            form["ContentSid"] = content_sid
            form["ContentVariables"] = json.dumps(content_variables(notification), ensure_ascii=False)
        else:
            form["Body"] = self.render_template(notification).text[:MAX_BODY_LENGTH]
        return form

    async def send(self, recipient: Recipient, notification: Notification) -> DeliveryResult:
        if not self.is_configured():
            logger.warning("WhatsApp channel not configured", provider="twilio")
            return self.failure("WhatsApp channel not configured")

        to = format_whatsapp_address(recipient.phone)
        if not to:
            return self.failure("No phone number for recipient")

        return await self.deliver(notification, self._post_message(self.build_form(to, notification)))

    async def _post_message(self, form: dict[str, str]) -> str | None:
        payload = await self.post(
            f"{self.api_url}/Accounts/{self.account_sid}/Messages.json",
            auth=(self.account_sid, self.auth_token),
            data=form,
        )
        return payload.get("sid")
