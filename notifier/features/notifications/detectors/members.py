"""Shared mapping of Arbox user rows for the membership lifecycle detectors."""

from typing import Any

from notifier.features.notifications.detectors.base import full_name, parse_feed_date


def member_from_user(user: dict[str, Any]) -> dict[str, Any]:
    start = parse_feed_date(user.get("start"))
    end = parse_feed_date(user.get("end"))
    return {
        "id": str(user["id"]) if user.get("id") is not None else None,
        "user_fk": user.get("user_fk"),
        "first_name": user.get("first_name") or "",
        "last_name": user.get("last_name") or "",
        "full_name": full_name(user.get("first_name"), user.get("last_name")),
        "phone": user.get("phone") or "",
        "email": user.get("email") or "",
        "membership_type": user.get("membership_type_name") or "",
        "membership_start": start.isoformat() if start else None,
        "membership_end": end.isoformat() if end else None,
        "is_active": user.get("active") in (1, True, "1"),
    }
