"""
MembershipExpiryDetector - daily digest of memberships ending soon.

Same run window and per-day keying as the birthday digest. Members are
enriched with days_until_expiry and sorted most urgent first.
"""

from datetime import date, timedelta
from typing import Any

from notifier.features.notifications.detectors.base import BaseDetector, id_list
from notifier.features.notifications.detectors.members import member_from_user
from notifier.features.notifications.domain import EntityState, Notification, StateComparison
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class MembershipExpiryDetector(BaseDetector):
    event_type = "membership_expiry_notifications"
    notification_type = "membership_expiring"

    async def fetch_current_data(self) -> list[dict[str, Any]]:
        today = self.today()
        window_end = today + timedelta(days=self.config["expiry_window_days"])
        users = await self.arbox.get_users()

        expiring = []
        for member in (member_from_user(user) for user in users):
            if member["id"] is None or not member["membership_end"]:
                continue
            end = date.fromisoformat(member["membership_end"])
            if today <= end <= window_end:
                member["days_until_expiry"] = (end - today).days
                expiring.append(member)

        expiring.sort(key=lambda m: (m["days_until_expiry"], m["full_name"]))
        logger.info(
            "Expiring memberships found",
            detector=self.event_type,
            count=len(expiring),
            window_days=self.config["expiry_window_days"],
        )
        return expiring

    def extract_state_data(self, entity: dict[str, Any]) -> EntityState:
        return EntityState(
            entity_id="expiring_memberships",
            entity_key=f"expiring_memberships_{entity['date']}",
            state_data={
                "date": entity["date"],
                "expiring_count": len(entity["members"]),
                "notified_user_ids": entity["notified_user_ids"],
            },
        )

    def should_notify(self, comparison: StateComparison | None, entity: dict[str, Any]) -> bool:
        return bool(entity["pending"])

    def build_notification_payload(
        self, comparison: StateComparison | None, entity: dict[str, Any]
    ) -> Notification:
        pending = entity["pending"]
        return Notification(
            type=self.notification_type,
            event_type=self.event_type,
            entity_id="expiring_memberships",
            entity_key=f"expiring_memberships_{entity['date']}",
            recipients=pending,
            data={
                "expiring_count": len(pending),
                "members": pending,
                "window_days": self.config["expiry_window_days"],
            },
            metadata={
                "detected_at": self.detected_at(),
                "window_days": self.config["expiry_window_days"],
            },
        )

    async def detect(self) -> list[Notification]:
        if not self.is_within_run_window():
            logger.debug("Outside run window, skipping", detector=self.event_type)
            return []

        expiring = await self.fetch_current_data()
        if not expiring:
            return []

        today_key = self.today().isoformat()
        previous = await self.load_state_data(f"expiring_memberships_{today_key}") or {}
        already_notified = set(previous.get("notified_user_ids", []))

        pending = [m for m in expiring if m["id"] not in already_notified]
        digest = {
            "date": today_key,
            "members": expiring,
            "pending": pending,
            "notified_user_ids": id_list(already_notified | {m["id"] for m in pending}),
        }

        notifications = []
        if self.should_notify(None, digest):
            notifications.append(self.build_notification_payload(None, digest))

        extracted = self.extract_state_data(digest)
        await self.state_store.save_state(
            self.event_type, extracted.entity_id, extracted.entity_key, extracted.state_data
        )
        return notifications
