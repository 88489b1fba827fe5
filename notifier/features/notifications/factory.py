"""Wiring of the notification engine from settings (API lifespan and worker)."""

from notifier.config import Settings, settings
from notifier.features.notifications.channels import build_channels
from notifier.features.notifications.detectors import build_detectors
from notifier.features.notifications.detectors.base import Clock
from notifier.features.notifications.orchestrator import NotificationOrchestrator
from notifier.features.notifications.state_store import StateStore
from notifier.infrastructure.alerts.ops_alerter import OpsAlerter
from notifier.services.arbox_client import ArboxClient


def build_orchestrator(config: Settings = settings, clock: Clock | None = None) -> NotificationOrchestrator:
    """
    Build a fully wired orchestrator.

    Raises:
        ConfigurationError: Arbox credentials are missing or the WhatsApp provider is unknown
    """
    state_store = StateStore()
    arbox = ArboxClient()
    return NotificationOrchestrator(
        state_store=state_store,
        detectors=build_detectors(state_store, arbox, config=config.get_detector_config(), clock=clock),
        channels=build_channels(config.WHATSAPP_PROVIDER),
        ops_alerter=OpsAlerter(),
        config=config,
    )
