"""
Notification engine feature package.

Detectors snapshot upstream studio data, the StateStore decides what
changed, and the orchestrator delivers admin notifications over email and
WhatsApp with an audit trail in notification_history.
"""

# Re-export the primary building blocks for easy access.
from .domain.models import DeliveryResult, Notification, Recipient, RunResult  # noqa: F401
from .errors import (  # noqa: F401
    ChannelDeliveryError,
    ConfigurationError,
    NotificationError,
    StateStoreError,
    UpstreamFetchError,
)
