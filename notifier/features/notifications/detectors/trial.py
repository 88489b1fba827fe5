"""
TrialDetector - new trial registrations and upcoming-trial reminders.

One entity (key `all_trials`) holds two sets:
    trial_ids       trials seen in the feed on the last run
    reminders_sent  trials already reminded about, pruned to the feed
"""

from datetime import datetime, time, timedelta
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

ENTITY_KEY = "all_trials"


class TrialDetector(BaseDetector):
    event_type = "trial_notifications"
    notification_type = "new_trial"
    reminder_notification_type = "trial_reminder"

    async def fetch_current_data(self) -> list[dict[str, Any]]:
        start = self.today()
        end = start + timedelta(days=self.config["trial_lookahead_days"])
        trials = await self.arbox.get_trials(start.isoformat(), end.isoformat())

        mapped = []
        for trial in trials:
            if trial.get("id") is None:
                continue
            trial_date = parse_feed_date(trial.get("date"))
            mapped.append(
                {
                    "id": str(trial["id"]),
                    "user_fk": trial.get("user_fk"),
                    "first_name": trial.get("first_name") or "",
                    "last_name": trial.get("last_name") or "",
                    "full_name": full_name(trial.get("first_name"), trial.get("last_name")),
                    "phone": trial.get("phone") or "",
                    "email": trial.get("email") or "",
                    "date": trial_date.isoformat() if trial_date else None,
                    "time": str(trial.get("time") or "")[:5] or None,
                    "class_name": trial.get("name"),
                    "coach": trial.get("coach"),
                    "location": trial.get("location"),
                    "status": trial.get("status"),
                    "checked_in": trial.get("checked_in") == 1,
                    "source": trial.get("bs_name"),
                    "schedule_id": trial.get("schedule_id"),
                    "created_at": trial.get("created_at"),
                }
            )
        return mapped

    def starts_at(self, trial: dict[str, Any]) -> datetime | None:
        if not trial["date"] or not trial["time"]:
            return None
        try:
            start_time = time.fromisoformat(trial["time"])
        except ValueError:
            return None
        trial_date = datetime.fromisoformat(trial["date"]).date()
        return datetime.combine(trial_date, start_time, tzinfo=self.timezone)

    def due_for_reminder(self, trials: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Trials starting in (now, now + reminder_window_hours]."""
        now = self.now()
        window_end = now + timedelta(hours=self.config["reminder_window_hours"])
        due = []
        for trial in trials:
            starts_at = self.starts_at(trial)
            if starts_at is not None and now < starts_at <= window_end:
                due.append(trial)
        return due

    def extract_state_data(self, entity: dict[str, Any]) -> EntityState:
        return EntityState(
            entity_id=ENTITY_KEY,
            entity_key=ENTITY_KEY,
            state_data={
                "trial_ids": id_list(t["id"] for t in entity["trials"]),
                "reminders_sent": entity["reminders_sent"],
            },
        )

    def should_notify(self, comparison: StateComparison | None, entity: dict[str, Any]) -> bool:
        return bool(entity["new_trials"] or entity["reminders_due"])

    def build_notification_payload(
        self, comparison: StateComparison | None, entity: dict[str, Any]
    ) -> Notification:
        new_trials = entity["new_trials"]
        return Notification(
            type=self.notification_type,
            event_type=self.event_type,
            entity_id="new_trials",
            entity_key=ENTITY_KEY,
            recipients=new_trials,
            data={"trial_count": len(new_trials), "trials": new_trials},
            metadata={
                "detected_at": self.detected_at(),
                "previous_count": entity["previous_count"],
                "current_count": len(entity["trials"]),
            },
        )

    def build_reminder_payload(self, entity: dict[str, Any]) -> Notification:
        due = entity["reminders_due"]
        hours = self.config["reminder_window_hours"]
        return Notification(
            type=self.reminder_notification_type,
            event_type=self.event_type,
            entity_id="trial_reminders",
            entity_key=ENTITY_KEY,
            recipients=due,
            data={"trial_count": len(due), "trials": due, "reminder_window_hours": hours},
            metadata={"detected_at": self.detected_at(), "reminder_window_hours": hours},
        )

    async def detect(self) -> list[Notification]:
        trials = await self.fetch_current_data()
        if not trials:
            logger.info("No trials in feed", detector=self.event_type)
            return []

        current_ids = {t["id"] for t in trials}
        previous = await self.load_state_data(ENTITY_KEY)
        previous_ids = set((previous or {}).get("trial_ids", []))
        reminded = set((previous or {}).get("reminders_sent", [])) & current_ids
        first_run = not previous_ids

        due = [t for t in self.due_for_reminder(trials) if t["id"] not in reminded]
        entity = {
            "trials": trials,
            "previous_count": len(previous_ids),
            "new_trials": [] if first_run else [t for t in trials if t["id"] not in previous_ids],
            "reminders_due": [] if first_run else due,
            "reminders_sent": id_list(reminded | {t["id"] for t in due}),
        }
        if first_run:
            logger.info(
                "Adopting trial baseline",
                detector=self.event_type,
                trial_count=len(trials),
                already_in_window=len(due),
            )

        notifications = []
        if self.should_notify(None, entity):
            if entity["new_trials"]:
                notifications.append(self.build_notification_payload(None, entity))
            if entity["reminders_due"]:
                notifications.append(self.build_reminder_payload(entity))

        logger.info(
            "Trial diff computed",
            detector=self.event_type,
            previous_count=len(previous_ids),
            current_count=len(current_ids),
            new_count=len(entity["new_trials"]),
            reminders=len(entity["reminders_due"]),
        )
        extracted = self.extract_state_data(entity)
        await self.state_store.save_state(
            self.event_type, extracted.entity_id, ENTITY_KEY, extracted.state_data
        )
        return notifications
