"""Delivery channels, registered by channel name ("email", "whatsapp")."""

from notifier.config import settings
from notifier.features.notifications.channels.base import BaseChannel
from notifier.features.notifications.channels.email import EmailChannel
from notifier.features.notifications.channels.green_api import GreenApiWhatsAppChannel
from notifier.features.notifications.channels.whatsapp import TwilioWhatsAppChannel
from notifier.features.notifications.errors import ConfigurationError

WHATSAPP_PROVIDERS: dict[str, type[BaseChannel]] = {
    "twilio": TwilioWhatsAppChannel,
    "green_api": GreenApiWhatsAppChannel,
}


def build_channels(whatsapp_provider: str | None = None) -> dict[str, BaseChannel]:
    provider = (whatsapp_provider or settings.WHATSAPP_PROVIDER).lower()
    whatsapp_cls = WHATSAPP_PROVIDERS.get(provider)
    if whatsapp_cls is None:
        raise ConfigurationError(
            f"Unknown WHATSAPP_PROVIDER '{provider}' (expected one of {sorted(WHATSAPP_PROVIDERS)})",
            operation="build_channels",
        )
    return {"email": EmailChannel(), "whatsapp": whatsapp_cls()}


__all__ = [
    "BaseChannel",
    "EmailChannel",
    "GreenApiWhatsAppChannel",
    "TwilioWhatsAppChannel",
    "WHATSAPP_PROVIDERS",
    "build_channels",
]
