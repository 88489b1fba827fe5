"""
WaitlistCapacityDetector - a spot opens in a full session that has a waitlist.

Joins the waitlist feed (DD/MM/YYYY dates) with the schedule feed
(YYYY-MM-DD dates, HH:MM:SS start times) on (date, HH:MM, session name).
Fires on the full -> available edge only; later changes while spots stay
open (bookings shuffling, people joining the waitlist) stay quiet.
"""

import asyncio
from datetime import timedelta
from typing import Any

from notifier.features.notifications.detectors.base import BaseDetector, id_list, parse_feed_date
from notifier.features.notifications.domain import EntityState, Notification, StateComparison
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _booking_count(value: Any) -> int:
    if isinstance(value, list):
        return len(value)
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class WaitlistCapacityDetector(BaseDetector):
    event_type = "waitlist_capacity"
    notification_type = "waitlist_spot_available"

    async def fetch_current_data(self) -> list[dict[str, Any]]:
        start = self.today()
        end = start + timedelta(days=self.config["waitlist_lookahead_days"])

        waitlist_task = asyncio.create_task(
            self.arbox.get_waitlist_entries(start.isoformat(), end.isoformat())
        )
        schedule_task = asyncio.create_task(
            self.arbox.get_schedule(start.strftime("%d-%m-%Y"), end.strftime("%d-%m-%Y"))
        )
        try:
            waitlist_entries, schedule = await asyncio.gather(waitlist_task, schedule_task)
        except BaseException:
            # a failed feed must not leave the other request running
            for task in (waitlist_task, schedule_task):
                task.cancel()
            await asyncio.gather(waitlist_task, schedule_task, return_exceptions=True)
            raise
        logger.info(
            "Waitlist feeds loaded",
            detector=self.event_type,
            waitlist_entries=len(waitlist_entries),
            sessions=len(schedule),
        )

        capacity_by_session: dict[tuple[str, str, str], dict[str, Any]] = {}
        for session in schedule:
            session_date = parse_feed_date(session.get("date"))
            if session_date is None:
                continue
            start_time = str(session.get("startTime") or "")[:5]
            max_members = session.get("maxMembers")
            bookings = _booking_count(session.get("bookings"))
            capacity_by_session[(session_date.isoformat(), start_time, session.get("name") or "")] = {
                "schedule_id": session.get("id"),
                "max_members": max_members,
                "current_bookings": bookings,
                "available_spots": (int(max_members) - bookings) if max_members is not None else None,
                "is_cancelled": bool(session.get("isCancelled")),
            }

        sessions: dict[tuple[str, str, str], dict[str, Any]] = {}
        for entry in waitlist_entries:
            entry_date = parse_feed_date(entry.get("date"))
            if entry_date is None:
                continue
            key = (entry_date.isoformat(), str(entry.get("time") or "")[:5], entry.get("event_name") or "")

            if key not in sessions:
                capacity = capacity_by_session.get(key, {})
                sessions[key] = {
                    "date": key[0],
                    "time": key[1],
                    "event_name": key[2],
                    "coach": entry.get("coach"),
                    "schedule_id": capacity.get("schedule_id"),
                    "max_members": capacity.get("max_members"),
                    "current_bookings": capacity.get("current_bookings"),
                    "available_spots": capacity.get("available_spots"),
                    "is_cancelled": capacity.get("is_cancelled", False),
                    "waitlist": [],
                }

            sessions[key]["waitlist"].append(
                {
                    "id": entry.get("user_fk"),
                    "name": entry.get("name"),
                    "phone": entry.get("phone"),
                    "entry_time": entry.get("entry_time"),
                }
            )

        return list(sessions.values())

    def extract_state_data(self, entity: dict[str, Any]) -> EntityState:
        entity_key = f"{entity['date']}_{entity['time']}_{entity['event_name']}"
        spots = entity["available_spots"]
        schedule_id = entity.get("schedule_id")
        return EntityState(
            entity_id=str(schedule_id) if schedule_id is not None else entity_key,
            entity_key=entity_key,
            state_data={
                "available_spots": spots,
                "has_available_spot": spots > 0 if spots is not None else None,
                "waitlist_count": len(entity["waitlist"]),
                "waitlist_user_ids": id_list(person["id"] for person in entity["waitlist"]),
            },
        )

    def should_notify(self, comparison: StateComparison, entity: dict[str, Any]) -> bool:
        if comparison.is_new or not comparison.has_changed or entity.get("is_cancelled"):
            return False

        previous_spots = comparison.before.get("available_spots")
        current_spots = comparison.after.get("available_spots")
        spot_opened = (
            previous_spots is not None
            and previous_spots <= 0
            and current_spots is not None
            and current_spots > 0
        )
        if spot_opened and entity["waitlist"]:
            logger.info(
                "Spot opened in waitlisted session",
                detector=self.event_type,
                session_date=entity["date"],
                session_time=entity["time"],
                event_name=entity["event_name"],
                available_spots=current_spots,
                waitlist_size=len(entity["waitlist"]),
            )
            return True
        return False

    def build_notification_payload(
        self, comparison: StateComparison, entity: dict[str, Any]
    ) -> Notification:
        ordered = sorted(entity["waitlist"], key=lambda person: str(person.get("entry_time") or ""))
        recipients = [
            {
                "id": person["id"],
                "name": person["name"],
                "phone": person["phone"],
                "entry_time": person["entry_time"],
                "position": position,
            }
            for position, person in enumerate(ordered, start=1)
        ]
        extracted = self.extract_state_data(entity)

        return Notification(
            type=self.notification_type,
            event_type=self.event_type,
            entity_id=extracted.entity_id,
            entity_key=extracted.entity_key,
            recipients=recipients,
            data={
                "session_date": entity["date"],
                "session_time": entity["time"],
                "event_name": entity["event_name"],
                "coach": entity["coach"],
                "available_spots": entity["available_spots"],
                "max_members": entity["max_members"],
                "current_bookings": entity["current_bookings"],
                "previous_spots": comparison.before.get("available_spots"),
                "waitlist_user_ids": extracted.state_data["waitlist_user_ids"],
            },
            metadata={
                "detected_at": self.detected_at(),
                "total_waitlist_size": len(entity["waitlist"]),
            },
        )
