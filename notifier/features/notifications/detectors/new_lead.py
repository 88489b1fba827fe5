"""
NewLeadDetector - leads whose id was not in the previously stored set.

The whole lead list is one entity (key `all_leads`). With no stored set the
current ids become the baseline without notifying.
"""

from typing import Any

from notifier.features.notifications.detectors.base import BaseDetector, full_name, id_list
from notifier.features.notifications.domain import EntityState, Notification, StateComparison
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ENTITY_KEY = "all_leads"


class NewLeadDetector(BaseDetector):
    event_type = "new_lead_notifications"
    notification_type = "new_lead"

    async def fetch_current_data(self) -> list[dict[str, Any]]:
        leads = await self.arbox.get_leads()
        return [
            {
                "id": str(lead["id"]),
                "first_name": lead.get("first_name") or "",
                "last_name": lead.get("last_name") or "",
                "full_name": full_name(lead.get("first_name"), lead.get("last_name")),
                "phone": lead.get("phone") or lead.get("mobile") or "",
                "email": lead.get("email") or "",
                "source": lead.get("lead_source") or "Unknown",
                "status": lead.get("lead_status") or "New",
                "created_at": lead.get("created_at"),
                "notes": lead.get("notes") or "",
            }
            for lead in leads
            if lead.get("id") is not None
        ]

    def extract_state_data(self, entity: dict[str, Any]) -> EntityState:
        return EntityState(
            entity_id=ENTITY_KEY,
            entity_key=ENTITY_KEY,
            state_data={"lead_ids": id_list(lead["id"] for lead in entity["leads"])},
        )

    def should_notify(self, comparison: StateComparison, entity: dict[str, Any]) -> bool:
        return not comparison.is_new and bool(entity["new_leads"])

    def build_notification_payload(
        self, comparison: StateComparison, entity: dict[str, Any]
    ) -> Notification:
        new_leads = entity["new_leads"]
        return Notification(
            type=self.notification_type,
            event_type=self.event_type,
            entity_id="new_leads",
            entity_key=ENTITY_KEY,
            recipients=new_leads,
            data={"lead_count": len(new_leads), "leads": new_leads},
            metadata={
                "detected_at": self.detected_at(),
                "previous_count": len(comparison.before.get("lead_ids", [])),
                "current_count": len(entity["leads"]),
            },
        )

    async def detect(self) -> list[Notification]:
        leads = await self.fetch_current_data()
        if not leads:
            logger.info("No leads in feed", detector=self.event_type)
            return []

        snapshot = {"leads": leads, "new_leads": []}
        extracted = self.extract_state_data(snapshot)
        comparison = await self.state_store.compare_state(
            self.event_type, ENTITY_KEY, extracted.state_data
        )
        previous_ids = set(comparison.before.get("lead_ids", []))

        notifications = []
        if comparison.is_new or not previous_ids:
            logger.info("Adopting lead baseline", detector=self.event_type, lead_count=len(leads))
        elif comparison.has_changed:
            snapshot["new_leads"] = [lead for lead in leads if lead["id"] not in previous_ids]
            if self.should_notify(comparison, snapshot):
                notifications.append(self.build_notification_payload(comparison, snapshot))

        logger.info(
            "Lead diff computed",
            detector=self.event_type,
            previous_count=len(previous_ids),
            current_count=len(leads),
            new_count=len(snapshot["new_leads"]),
        )
        await self.state_store.save_state(
            self.event_type, extracted.entity_id, ENTITY_KEY, extracted.state_data
        )
        return notifications
