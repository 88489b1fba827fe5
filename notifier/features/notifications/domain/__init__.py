"""
Domain subpackage for the notification engine.
"""

from .models import (
    DeliveryResult,
    DetectorRunSummary,
    EntityState,
    Notification,
    Recipient,
    RunResult,
    StateComparison,
    StateRecord,
)

__all__ = [
    "DeliveryResult",
    "DetectorRunSummary",
    "EntityState",
    "Notification",
    "Recipient",
    "RunResult",
    "StateComparison",
    "StateRecord",
]
