"""
BaseChannel - delivery contract for one provider.

send() never raises for expected failures (not configured, missing address,
provider rejection, transport error); it returns DeliveryResult(success=False)
so the orchestrator can record the attempt and move on.
"""

import re
from abc import ABC, abstractmethod

import httpx

from notifier.config import settings
from notifier.features.notifications.channels.templates import RenderedMessage, render
from notifier.features.notifications.domain import DeliveryResult, Notification, Recipient
from notifier.features.notifications.errors import ChannelDeliveryError
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def normalize_phone(phone: str | None, country_code: str = "972") -> str | None:
    """Digits only, local numbers (leading 0) rewritten to the country prefix."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    if digits.startswith("0"):
        digits = country_code + digits[1:]
    return digits


class BaseChannel(ABC):
    channel_name: str = "base"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, timeout: float | None = None):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.CHANNEL_SEND_TIMEOUT_SECONDS),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the provider credentials are present."""

    @abstractmethod
    async def send(self, recipient: Recipient, notification: Notification) -> DeliveryResult:
        """Deliver one notification to one recipient."""

    def render_template(self, notification: Notification) -> RenderedMessage:
        return render(notification)

    def failure(self, error: str) -> DeliveryResult:
        return DeliveryResult(success=False, channel=self.channel_name, error=error)

    def raise_for_provider_error(self, response: httpx.Response) -> dict:
        """Parse a provider response, raising ChannelDeliveryError on non-2xx."""
        try:
            payload = response.json() if response.text else {}
        except ValueError:
            payload = {}

        if not response.is_success:
            message = payload.get("message") if isinstance(payload, dict) else None
            raise ChannelDeliveryError(
                message or f"{self.channel_name} provider error (HTTP {response.status_code})",
                channel=self.channel_name,
                status_code=response.status_code,
                response_data=payload if isinstance(payload, dict) else {},
            )
        return payload if isinstance(payload, dict) else {}

    async def post(self, url: str, **kwargs) -> dict:
        """POST to the provider; every failure surfaces as ChannelDeliveryError."""
        try:
            response = await self._client.post(url, **kwargs)
        except httpx.RequestError as e:
            raise ChannelDeliveryError(
                f"{self.channel_name} request failed: {e}", channel=self.channel_name
            ) from e
        return self.raise_for_provider_error(response)

    async def deliver(self, notification: Notification, request) -> DeliveryResult:
        """Run a provider request coroutine and map its outcome to a DeliveryResult."""
        try:
            external_id = await request
        except ChannelDeliveryError as e:
            logger.error(
                "Channel send failed",
                channel=self.channel_name,
                notification_type=notification.type,
                status_code=e.status_code,
                error=str(e),
            )
            return self.failure(str(e))

        logger.info(
            "Channel send succeeded",
            channel=self.channel_name,
            notification_type=notification.type,
            external_id=external_id,
        )
        return DeliveryResult(success=True, channel=self.channel_name, external_id=external_id)
