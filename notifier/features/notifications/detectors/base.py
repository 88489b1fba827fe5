"""
BaseDetector - template method shared by all detectors.

detect():
    1. entities = await fetch_current_data()
    2. per entity: extract_state_data -> compare_state -> should_notify
       -> build_notification_payload
    3. save_state for every entity, notified or not
    4. return the notifications

Set-diff and daily-digest detectors override detect() but keep the same
contract: state is only advanced after a successful fetch, and a
StateStoreError always propagates to the orchestrator.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from notifier.config import settings
from notifier.features.notifications.domain import EntityState, Notification, StateComparison
from notifier.features.notifications.errors import StateStoreError
from notifier.features.notifications.state_store import StateStore
from notifier.infrastructure.observability.logging import get_logger
from notifier.services.arbox_client import ArboxClient

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class BaseDetector(ABC):
    event_type: str = ""

    def __init__(
        self,
        state_store: StateStore,
        arbox: ArboxClient,
        config: dict[str, Any] | None = None,
        clock: Clock | None = None,
    ):
        self.state_store = state_store
        self.arbox = arbox
        self.config = {**settings.get_detector_config(), **(config or {})}
        self.timezone = ZoneInfo(self.config["timezone"])
        self._clock = clock

    @property
    def name(self) -> str:
        return self.event_type

    def now(self) -> datetime:
        """Current time in the business time zone."""
        current = self._clock() if self._clock else datetime.now(self.timezone)
        if current.tzinfo is None:
            return current.replace(tzinfo=self.timezone)
        return current.astimezone(self.timezone)

    def today(self) -> date:
        return self.now().date()

    def is_within_run_window(self) -> bool:
        """True during [run_hour:00, run_hour:run_minute_window) local time."""
        current = self.now()
        in_window = (
            current.hour == self.config["run_hour"]
            and current.minute < self.config["run_minute_window"]
        )
        logger.debug(
            "Run window check",
            detector=self.event_type,
            local_time=current.strftime("%H:%M"),
            run_hour=self.config["run_hour"],
            run_minute_window=self.config["run_minute_window"],
            in_window=in_window,
        )
        return in_window

    @abstractmethod
    async def fetch_current_data(self) -> list[dict[str, Any]]:
        """Load the current entities from the upstream feed."""

    @abstractmethod
    def extract_state_data(self, entity: dict[str, Any]) -> EntityState:
        """Derive identity and the detection-relevant snapshot of an entity."""

    @abstractmethod
    def should_notify(self, comparison: StateComparison, entity: dict[str, Any]) -> bool:
        """Domain predicate applied on top of a detected hash change."""

    @abstractmethod
    def build_notification_payload(
        self, comparison: StateComparison, entity: dict[str, Any]
    ) -> Notification:
        """Build the notification for an entity that passed should_notify."""

    async def detect(self) -> list[Notification]:
        entities = await self.fetch_current_data()
        notifications: list[Notification] = []

        for entity in entities:
            try:
                extracted = self.extract_state_data(entity)
                comparison = await self.state_store.compare_state(
                    self.event_type, extracted.entity_key, extracted.state_data
                )

                if comparison.has_changed and self.should_notify(comparison, entity):
                    notifications.append(self.build_notification_payload(comparison, entity))

                await self.state_store.save_state(
                    self.event_type,
                    extracted.entity_id,
                    extracted.entity_key,
                    extracted.state_data,
                )
            except StateStoreError:
                raise
            except Exception as e:
                logger.error(
                    "Failed to process entity, skipping",
                    detector=self.event_type,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.info(
            "Detection complete",
            detector=self.event_type,
            entities_checked=len(entities),
            notifications=len(notifications),
        )
        return notifications

    async def load_state_data(self, entity_key: str) -> dict[str, Any] | None:
        """Stored snapshot for a single-entity detector, or None on first sight."""
        previous = await self.state_store.get_previous_state(self.event_type, entity_key)
        return previous.state_data if previous else None

    def detected_at(self) -> str:
        return self.now().isoformat()


def id_list(values) -> list[str]:
    """Sorted, de-duplicated string ids; JSON state never depends on feed order or id type."""
    return sorted({str(value) for value in values if value is not None})


def full_name(first: str | None, last: str | None) -> str:
    return f"{first or ''} {last or ''}".strip()


def parse_feed_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD[...] or DD/MM/YYYY; anything else is treated as missing."""
    if not value:
        return None
    text = str(value).strip()
    try:
        if "/" in text:
            day, month, year = text.split("/")[:3]
            return date(int(year[:4]), int(month), int(day))
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
