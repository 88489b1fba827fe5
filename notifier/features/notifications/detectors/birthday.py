"""
BirthdayDetector - one morning digest of active members celebrating today.

Runs only inside the daily run window. State lives under a per-day key, so
every run after the first one that day only notifies people who were not
already listed (e.g. a member added to the system mid-window).
"""

import calendar
from datetime import date
from typing import Any

from notifier.features.notifications.detectors.base import (
    BaseDetector,
    full_name,
    id_list,
    parse_feed_date,
)
from notifier.features.notifications.domain import EntityState, Notification, StateComparison
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _is_active(user: dict[str, Any]) -> bool:
    if user.get("status") == "active" or user.get("isActive") or user.get("activeMembership"):
        return True
    if user.get("active") in (1, True, "1"):
        return True
    return any(m.get("status") == "active" for m in user.get("memberships") or [])


def is_birthday_on(birth_date: date, day: date) -> bool:
    """Month/day match; 29 Feb birthdays fall on 28 Feb in non-leap years."""
    if (birth_date.month, birth_date.day) == (day.month, day.day):
        return True
    return (
        birth_date.month == 2
        and birth_date.day == 29
        and not calendar.isleap(day.year)
        and (day.month, day.day) == (2, 28)
    )


class BirthdayDetector(BaseDetector):
    event_type = "birthday_notifications"
    notification_type = "birthday_today"

    async def fetch_current_data(self) -> list[dict[str, Any]]:
        today = self.today()
        users = await self.arbox.get_users()

        birthdays = []
        for user in users:
            birth_date = parse_feed_date(
                user.get("dateOfBirth") or user.get("birthDate") or user.get("birthday")
            )
            if birth_date is None or user.get("id") is None or not _is_active(user):
                continue
            if not is_birthday_on(birth_date, today):
                continue

            first = user.get("firstName") or user.get("first_name")
            last = user.get("lastName") or user.get("last_name")
            birthdays.append(
                {
                    "id": str(user["id"]),
                    "first_name": first or "",
                    "last_name": last or "",
                    "full_name": full_name(first, last),
                    "phone": user.get("phone") or user.get("phoneNumber") or "",
                    "email": user.get("email") or "",
                    "turning_age": today.year - birth_date.year,
                }
            )

        logger.info("Birthdays found", detector=self.event_type, count=len(birthdays))
        return birthdays

    def extract_state_data(self, entity: dict[str, Any]) -> EntityState:
        """`entity` is the day's digest: {"date": ..., "birthdays": [...], "notified_user_ids": [...]}."""
        return EntityState(
            entity_id=entity["date"],
            entity_key=f"birthdays_{entity['date']}",
            state_data={
                "date": entity["date"],
                "birthday_count": len(entity["birthdays"]),
                "user_ids": id_list(b["id"] for b in entity["birthdays"]),
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
            entity_id=entity["date"],
            entity_key=f"birthdays_{entity['date']}",
            recipients=pending,
            data={
                "date": entity["date"],
                "birthday_count": len(pending),
                "birthdays": pending,
            },
            metadata={"detected_at": self.detected_at()},
        )

    async def detect(self) -> list[Notification]:
        if not self.is_within_run_window():
            logger.debug("Outside run window, skipping", detector=self.event_type)
            return []

        birthdays = await self.fetch_current_data()
        if not birthdays:
            return []

        today_key = self.today().isoformat()
        entity_key = f"birthdays_{today_key}"
        previous = await self.load_state_data(entity_key) or {}
        already_notified = set(previous.get("notified_user_ids", []))

        pending = [b for b in birthdays if b["id"] not in already_notified]
        digest = {
            "date": today_key,
            "birthdays": birthdays,
            "pending": pending,
            "notified_user_ids": id_list(already_notified | {b["id"] for b in pending}),
        }

        notifications = []
        if self.should_notify(None, digest):
            notifications.append(self.build_notification_payload(None, digest))
        else:
            logger.info("Birthdays already notified today", detector=self.event_type)

        extracted = self.extract_state_data(digest)
        await self.state_store.save_state(
            self.event_type, extracted.entity_id, extracted.entity_key, extracted.state_data
        )
        return notifications
