"""
Event detectors.

Each detector is keyed by its event_type; the orchestrator runs them in
registration order.
"""

from typing import Any

from notifier.features.notifications.detectors.base import BaseDetector, Clock
from notifier.features.notifications.detectors.birthday import BirthdayDetector
from notifier.features.notifications.detectors.membership_expiry import MembershipExpiryDetector
from notifier.features.notifications.detectors.new_lead import NewLeadDetector
from notifier.features.notifications.detectors.new_membership import NewMembershipDetector
from notifier.features.notifications.detectors.trial import TrialDetector
from notifier.features.notifications.detectors.waitlist_capacity import WaitlistCapacityDetector
from notifier.features.notifications.state_store import StateStore
from notifier.services.arbox_client import ArboxClient

DETECTOR_CLASSES: list[type[BaseDetector]] = [
    WaitlistCapacityDetector,
    BirthdayDetector,
    NewLeadDetector,
    TrialDetector,
    MembershipExpiryDetector,
    NewMembershipDetector,
]


def build_detectors(
    state_store: StateStore,
    arbox: ArboxClient,
    config: dict[str, Any] | None = None,
    clock: Clock | None = None,
) -> dict[str, BaseDetector]:
    return {
        detector_cls.event_type: detector_cls(state_store, arbox, config=config, clock=clock)
        for detector_cls in DETECTOR_CLASSES
    }


__all__ = [
    "DETECTOR_CLASSES",
    "BaseDetector",
    "BirthdayDetector",
    "MembershipExpiryDetector",
    "NewLeadDetector",
    "NewMembershipDetector",
    "TrialDetector",
    "WaitlistCapacityDetector",
    "build_detectors",
]
