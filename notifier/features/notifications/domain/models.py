"""
Domain models for the notification engine.

Lightweight dataclasses shared by the state store, detectors, channels,
orchestrator and repositories. They carry no persistence logic.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class StateRecord:
    """Represents a notification_event_state row."""

    event_type: str
    entity_key: str
    state_data: dict[str, Any]
    state_hash: str
    entity_id: str | None = None
    last_checked_at: datetime | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "StateRecord":
        return cls(
            id=row.get("id"),
            event_type=row["event_type"],
            entity_id=row.get("entity_id"),
            entity_key=row["entity_key"],
            state_data=row.get("state_data") or {},
            state_hash=row["state_hash"],
            last_checked_at=row.get("last_checked_at"),
        )


@dataclass(slots=True)
class StateComparison:
    """Outcome of comparing a fresh snapshot against the stored state."""

    has_changed: bool
    is_new: bool
    new_hash: str
    previous_state: dict[str, Any] | None = None
    previous_hash: str | None = None
    changes: dict[str, Any] | None = None

    @property
    def before(self) -> dict[str, Any]:
        return self.previous_state or {}

    @property
    def after(self) -> dict[str, Any]:
        return (self.changes or {}).get("after", {})


@dataclass(slots=True)
class EntityState:
    """Identity and detection-relevant snapshot derived from one upstream entity."""

    entity_id: str | None
    entity_key: str
    state_data: dict[str, Any]


@dataclass(slots=True)
class Notification:
    """
    A detected event ready for delivery.

    `recipients` are the domain participants (waitlisted people, new leads,
    birthday members); the admin audience is resolved by the orchestrator.
    """

    type: str
    event_type: str
    entity_id: str | None
    entity_key: str
    recipients: list[dict[str, Any]] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Recipient:
    """Represents a notification_admin_recipients row (or the configured fallback)."""

    email: str | None = None
    phone: str | None = None
    name: str | None = None
    event_types: list[str] = field(default_factory=list)
    is_active: bool = True
    id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Recipient":
        return cls(
            id=row.get("id"),
            name=row.get("name"),
            email=row.get("email") or None,
            phone=row.get("phone") or None,
            event_types=list(row.get("event_types") or []),
            is_active=bool(row.get("is_active", True)),
        )


@dataclass(slots=True)
class DeliveryResult:
    """Outcome of one channel send."""

    success: bool
    channel: str
    external_id: str | None = None
    error: str | None = None


@dataclass(slots=True)
class DetectorRunSummary:
    """Per-detector counters reported in the job run details."""

    name: str
    events_detected: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "events_detected": self.events_detected,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "error": self.error,
        }


@dataclass(slots=True)
class RunResult:
    """Aggregate result of one orchestrator run."""

    success: bool
    events_detected: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    job_run_id: int | None = None
    skipped: bool = False
    detector_results: list[DetectorRunSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "skipped": self.skipped,
            "job_run_id": self.job_run_id,
            "events_detected": self.events_detected,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "detectors": [summary.to_dict() for summary in self.detector_results],
        }
