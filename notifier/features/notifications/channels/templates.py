"""
Message renderers shared by the email and WhatsApp channels.

Each renderer turns a Notification into a subject line and plain-text body;
HTML is derived from the text. Unknown types, and payloads a renderer
cannot read, fall back to a generic JSON dump.
"""

import html
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from notifier.features.notifications.domain import Notification
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

LIST_PREVIEW = 5
GENERIC_DATA_LIMIT = 500


@dataclass(slots=True)
class RenderedMessage:
    subject: str
    text: str
    html: str


def _more(items: list, shown: int = LIST_PREVIEW) -> list[str]:
    return [f"...and {len(items) - shown} more"] if len(items) > shown else []


def _days_label(days: int | None) -> str:
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def _waitlist_spot_available(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    subject = f"Spot available: {data.get('event_name')} {data.get('session_date')} {data.get('session_time')}"
    lines = [
        "A spot opened up!",
        "",
        f"{data.get('event_name')}",
        f"{data.get('session_date')} {data.get('session_time')}",
    ]
    if data.get("coach"):
        lines.append(f"Coach: {data['coach']}")
    lines += [
        "",
        f"{data.get('available_spots')} spot(s) available",
        f"{n.metadata.get('total_waitlist_size', len(n.recipients))} waiting",
        "",
        "Waitlist:",
    ]
    lines += [
        f"{person.get('position')}. {person.get('name') or ''} {person.get('phone') or ''}".rstrip()
        for person in n.recipients[:3]
    ]
    lines += _more(n.recipients, 3)
    return subject, lines


def _birthday_today(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    birthdays = data.get("birthdays", [])
    subject = f"Birthdays today ({data.get('date')}): {len(birthdays)}"
    lines = [f"Birthdays today, {data.get('date')}", "", f"{len(birthdays)} celebrating:"]
    lines += [f"- {b.get('full_name')} ({b.get('turning_age')})" for b in birthdays[:LIST_PREVIEW]]
    lines += _more(birthdays)
    lines += ["", "Send your wishes!"]
    return subject, lines


def _new_lead(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    leads = data.get("leads", [])
    if len(leads) == 1:
        lead = leads[0]
        subject = f"New lead: {lead.get('full_name')}"
        lines = [
            "New lead!",
            "",
            f"Name: {lead.get('full_name')}",
            f"Phone: {lead.get('phone') or 'not provided'}",
            f"Source: {lead.get('source')}",
        ]
    else:
        subject = f"{len(leads)} new leads"
        lines = [f"{len(leads)} new leads!", ""]
        lines += [
            f"- {lead.get('full_name')} | {lead.get('phone') or '-'} | {lead.get('source')}"
            for lead in leads[:LIST_PREVIEW]
        ]
        lines += _more(leads)
    lines += ["", "Get in touch soon!"]
    return subject, lines


def _trial_line(trial: dict[str, Any]) -> str:
    return f"- {trial.get('full_name')} | {trial.get('class_name')} | {trial.get('date')} {trial.get('time') or ''}".rstrip()


def _new_trial(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    trials = data.get("trials", [])
    if len(trials) == 1:
        trial = trials[0]
        subject = f"New trial class: {trial.get('full_name')}"
        lines = [
            "New trial class booked!",
            "",
            f"{trial.get('full_name')}",
            f"{trial.get('class_name')}",
            f"{trial.get('date')} {trial.get('time') or ''}".rstrip(),
            f"Phone: {trial.get('phone') or 'not provided'}",
            "",
            "Send a confirmation message!",
        ]
    else:
        subject = f"{len(trials)} new trial classes"
        lines = [f"{len(trials)} new trial classes!", ""]
        lines += [_trial_line(trial) for trial in trials[:LIST_PREVIEW]]
        lines += _more(trials)
    return subject, lines


def _trial_reminder(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    trials = data.get("trials", [])
    hours = data.get("reminder_window_hours")
    subject = f"Trial reminder: {len(trials)} within {hours}h"
    lines = [f"Reminder: {len(trials)} trial class(es) in less than {hours} hours", ""]
    for trial in trials:
        lines.append(_trial_line(trial))
        lines.append(f"  Phone: {trial.get('phone') or '-'}")
    lines += ["", "Send the trainees a reminder!"]
    return subject, lines


def _membership_expiring(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    members = data.get("members", [])
    if len(members) == 1:
        member = members[0]
        subject = f"Membership expiring {_days_label(member.get('days_until_expiry'))}: {member.get('full_name')}"
        lines = [
            f"Membership expires {_days_label(member.get('days_until_expiry'))}",
            "",
            f"{member.get('full_name')}",
            f"{member.get('membership_type')}",
            f"End date: {member.get('membership_end')}",
            f"Phone: {member.get('phone') or 'not provided'}",
        ]
    else:
        subject = f"{len(members)} memberships expiring"
        lines = [f"{len(members)} memberships expiring!", ""]
        lines += [
            f"- {m.get('full_name')} | {m.get('membership_type')} | {_days_label(m.get('days_until_expiry'))}"
            for m in members[:LIST_PREVIEW]
        ]
        lines += _more(members)
    lines += ["", "Reach out about renewal!"]
    return subject, lines


def _new_membership(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    members = data.get("members", [])
    if len(members) == 1:
        member = members[0]
        subject = f"New membership: {member.get('full_name')}"
        lines = [
            "New membership!",
            "",
            f"{member.get('full_name')}",
            f"{member.get('membership_type')}",
            f"Start date: {member.get('membership_start')}",
            f"Phone: {member.get('phone') or 'not provided'}",
        ]
    else:
        subject = f"{len(members)} new memberships"
        lines = [f"{len(members)} new memberships!", ""]
        lines += [f"- {m.get('full_name')} | {m.get('membership_type')}" for m in members[:LIST_PREVIEW]]
        lines += _more(members)
    lines += ["", "Welcome aboard!"]
    return subject, lines


def _document_signed(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    subject = f"Document signed: {data.get('template_name')}"
    lines = [
        "Document signed!",
        "",
        f"{data.get('customer_name')} signed:",
        f"{data.get('template_name')}",
        "",
        f"Signer: {data.get('signer_name')}",
        f"Date: {data.get('signed_at')}",
    ]
    return subject, lines


def _new_order(data: dict[str, Any], n: Notification) -> tuple[str, list[str]]:
    subject = f"New order from {data.get('customer_name')}"
    lines = ["New order!", "", f"Customer: {data.get('customer_name')}", "", "Items:"]
    for item in data.get("items", []):
        details = " - ".join(str(item[key]) for key in ("name", "color", "size") if item.get(key))
        lines.append(f"- {details} x{item.get('quantity', 1)} ({item.get('total')})")
    lines += ["", f"Total: {data.get('total_amount')}"]
    return subject, lines


RENDERERS: dict[str, Callable[[dict[str, Any], Notification], tuple[str, list[str]]]] = {
    "waitlist_spot_available": _waitlist_spot_available,
    "birthday_today": _birthday_today,
    "new_lead": _new_lead,
    "new_trial": _new_trial,
    "trial_reminder": _trial_reminder,
    "membership_expiring": _membership_expiring,
    "new_membership": _new_membership,
    "document_signed": _document_signed,
    "new_order": _new_order,
}


def render_generic(notification: Notification) -> tuple[str, list[str]]:
    dumped = json.dumps(notification.data, ensure_ascii=False, indent=2, default=str)
    return f"Notification: {notification.type}", [
        "New notification",
        "",
        f"Type: {notification.type}",
        dumped[:GENERIC_DATA_LIMIT],
    ]


def render(notification: Notification) -> RenderedMessage:
    renderer = RENDERERS.get(notification.type)
    if renderer is None:
        subject, lines = render_generic(notification)
    else:
        try:
            subject, lines = renderer(notification.data or {}, notification)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Renderer rejected payload, using generic layout",
                notification_type=notification.type,
                error=str(e),
                error_type=type(e).__name__,
            )
            subject, lines = render_generic(notification)

    text = "\n".join(lines)
    body = "<br>\n".join(html.escape(line) for line in lines)
    return RenderedMessage(
        subject=subject,
        text=text,
        html=f"<div dir=\"auto\"><h2>{html.escape(subject)}</h2><p>{body}</p></div>",
    )


def content_variables(notification: Notification) -> dict[str, str]:
    """Positional variables for approved WhatsApp content templates."""
    data = notification.data or {}
    if notification.type == "waitlist_spot_available":
        values = [
            data.get("event_name"),
            f"{data.get('session_date')} {data.get('session_time')}",
            data.get("available_spots"),
            notification.metadata.get("total_waitlist_size", len(notification.recipients)),
        ]
    else:
        rendered = render(notification)
        values = [rendered.subject, rendered.text]
    return {str(index): str(value) for index, value in enumerate(values, start=1)}
