"""
NewMembershipDetector - memberships that started within the lookback window.

Stored state is the set of members already announced (key `new_memberships`).
It is pruned to the current window on every run so it never grows without
bound. The very first run adopts the current window as the baseline.
"""

from datetime import date, timedelta
from typing import Any

from notifier.features.notifications.detectors.base import BaseDetector, id_list
from notifier.features.notifications.detectors.members import member_from_user
from notifier.features.notifications.domain import EntityState, Notification, StateComparison
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ENTITY_KEY = "new_memberships"


class NewMembershipDetector(BaseDetector):
    event_type = "new_membership_notifications"
    notification_type = "new_membership"

    async def fetch_current_data(self) -> list[dict[str, Any]]:
        """All mapped users; filtering to the window happens in detect()."""
        return [member_from_user(user) for user in await self.arbox.get_users()]

    def in_window(self, members: list[dict[str, Any]]) -> list[dict[str, Any]]:
        today = self.today()
        window_start = today - timedelta(days=self.config["lookback_days"])

        recent = []
        for member in members:
            if member["id"] is None or not member["membership_start"] or not member["membership_type"]:
                continue
            start = date.fromisoformat(member["membership_start"])
            if window_start <= start <= today:
                recent.append({**member, "days_since_start": (today - start).days})
        return recent

    def extract_state_data(self, entity: dict[str, Any]) -> EntityState:
        return EntityState(
            entity_id=ENTITY_KEY,
            entity_key=ENTITY_KEY,
            state_data={"notified_user_ids": entity["notified_user_ids"]},
        )

    def should_notify(self, comparison: StateComparison | None, entity: dict[str, Any]) -> bool:
        return bool(entity["pending"])

    def build_notification_payload(
        self, comparison: StateComparison | None, entity: dict[str, Any]
    ) -> Notification:
        pending = sorted(entity["pending"], key=lambda m: m["membership_start"], reverse=True)
        return Notification(
            type=self.notification_type,
            event_type=self.event_type,
            entity_id=ENTITY_KEY,
            entity_key=ENTITY_KEY,
            recipients=pending,
            data={"member_count": len(pending), "members": pending},
            metadata={
                "detected_at": self.detected_at(),
                "lookback_days": self.config["lookback_days"],
            },
        )

    async def detect(self) -> list[Notification]:
        members = await self.fetch_current_data()
        if not members:
            logger.info("No users in feed", detector=self.event_type)
            return []

        recent = self.in_window(members)
        current_ids = {m["id"] for m in recent}
        previous = await self.load_state_data(ENTITY_KEY)

        notifications = []
        if previous is None:
            logger.info(
                "Adopting membership baseline", detector=self.event_type, count=len(current_ids)
            )
            snapshot = {"pending": [], "notified_user_ids": id_list(current_ids)}
        else:
            already_notified = set(previous.get("notified_user_ids", []))
            pending = [m for m in recent if m["id"] not in already_notified]
            snapshot = {
                "pending": pending,
                # Everyone in the window is announced now; ids that left the window are dropped.
                "notified_user_ids": id_list(current_ids),
            }
            if self.should_notify(None, snapshot):
                notifications.append(self.build_notification_payload(None, snapshot))

        logger.info(
            "Membership diff computed",
            detector=self.event_type,
            in_window=len(recent),
            new_count=len(snapshot["pending"]),
        )
        extracted = self.extract_state_data(snapshot)
        await self.state_store.save_state(
            self.event_type, extracted.entity_id, ENTITY_KEY, extracted.state_data
        )
        return notifications
