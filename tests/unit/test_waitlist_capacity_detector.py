"""
Tests for WaitlistCapacityDetector.

Covers the full -> available edge, cold start, and the changes that must
stay quiet (waitlist churn, booking shuffles while spots stay open,
cancelled sessions).
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import asyncio

import pytest

from notifier.features.notifications.detectors import WaitlistCapacityDetector
from notifier.features.notifications.errors import UpstreamFetchError

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=ZoneInfo("Asia/Jerusalem"))
EVENT = "waitlist_capacity"
KEY = "2026-03-11_18:00_Pilates"


def session(bookings=10, max_members=10, cancelled=False):
    return {
        "id": 555,
        "date": "2026-03-11",
        "startTime": "18:00:00",
        "name": "Pilates",
        "maxMembers": max_members,
        "bookings": bookings,
        "isCancelled": cancelled,
    }


def waiter(user_fk, name, entry_time):
    return {
        "date": "11/03/2026",
        "time": "18:00",
        "event_name": "Pilates",
        "coach": "Dana",
        "user_fk": user_fk,
        "name": name,
        "phone": f"05000000{user_fk}",
        "entry_time": entry_time,
    }


@pytest.fixture
def detector(state_store, arbox):
    return WaitlistCapacityDetector(state_store, arbox, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_cold_start_saves_baseline_without_notifying(detector, arbox, state_repository):
    arbox.schedule = [session(bookings=9)]
    arbox.waitlist = [waiter(1, "Noa", "2026-03-09T10:00:00")]

    assert await detector.detect() == []

    stored = state_repository.state(EVENT, KEY)
    assert stored == {
        "available_spots": 1,
        "has_available_spot": True,
        "waitlist_count": 1,
        "waitlist_user_ids": ["1"],
    }


@pytest.mark.asyncio
async def test_fetch_uses_lookahead_range_in_each_feed_format(detector, arbox):
    await detector.detect()

    assert ("waitlist", "2026-03-10", "2026-03-13") in arbox.calls
    assert ("schedule", "10-03-2026", "13-03-2026") in arbox.calls


@pytest.mark.asyncio
async def test_spot_opening_fires_once(detector, arbox):
    arbox.schedule = [session(bookings=10)]
    arbox.waitlist = [waiter(1, "Noa", "2026-03-09T10:00:00")]
    assert await detector.detect() == []

    arbox.schedule = [session(bookings=9)]
    notifications = await detector.detect()

    assert len(notifications) == 1
    notification = notifications[0]
    assert notification.type == "waitlist_spot_available"
    assert notification.event_type == EVENT
    assert notification.entity_id == "555"
    assert notification.entity_key == KEY
    assert notification.data["available_spots"] == 1
    assert notification.data["previous_spots"] == 0
    assert notification.data["coach"] == "Dana"
    assert notification.metadata["total_waitlist_size"] == 1

    # Same snapshot on the next tick
    assert await detector.detect() == []


@pytest.mark.asyncio
async def test_changes_while_spot_stays_open_are_quiet(detector, arbox):
    arbox.schedule = [session(bookings=10)]
    arbox.waitlist = [waiter(1, "Noa", "2026-03-09T10:00:00")]
    await detector.detect()

    arbox.schedule = [session(bookings=8)]
    assert len(await detector.detect()) == 1

    arbox.schedule = [session(bookings=9)]
    arbox.waitlist.append(waiter(2, "Lior", "2026-03-09T11:00:00"))
    assert await detector.detect() == []


@pytest.mark.asyncio
async def test_waitlist_churn_in_full_session_is_quiet(detector, arbox):
    arbox.schedule = [session(bookings=10)]
    arbox.waitlist = [waiter(1, "Noa", "2026-03-09T10:00:00")]
    await detector.detect()

    arbox.waitlist.append(waiter(2, "Lior", "2026-03-09T11:00:00"))
    assert await detector.detect() == []


@pytest.mark.asyncio
async def test_cancelled_session_never_fires(detector, arbox):
    arbox.schedule = [session(bookings=10, cancelled=True)]
    arbox.waitlist = [waiter(1, "Noa", "2026-03-09T10:00:00")]
    await detector.detect()

    arbox.schedule = [session(bookings=5, cancelled=True)]
    assert await detector.detect() == []


@pytest.mark.asyncio
async def test_unknown_capacity_never_fires(detector, arbox, state_repository):
    arbox.schedule = [session(max_members=None)]
    arbox.waitlist = [waiter(1, "Noa", "2026-03-09T10:00:00")]
    await detector.detect()

    assert state_repository.state(EVENT, KEY)["available_spots"] is None

    arbox.schedule = [session(bookings=5)]
    assert await detector.detect() == []


@pytest.mark.asyncio
async def test_recipients_ordered_by_entry_time(detector, arbox):
    arbox.schedule = [session(bookings=10)]
    arbox.waitlist = [
        waiter(3, "Maya", "2026-03-09T12:00:00"),
        waiter(1, "Noa", "2026-03-09T10:00:00"),
        waiter(2, "Lior", "2026-03-09T11:00:00"),
    ]
    await detector.detect()

    arbox.schedule = [session(bookings=[{"id": n} for n in range(8)])]
    [notification] = await detector.detect()

    assert [r["name"] for r in notification.recipients] == ["Noa", "Lior", "Maya"]
    assert [r["position"] for r in notification.recipients] == [1, 2, 3]
    assert notification.data["available_spots"] == 2
    assert notification.data["waitlist_user_ids"] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_sessions_are_tracked_independently(detector, arbox, state_repository):
    other = session(bookings=10)
    other.update(id=556, startTime="19:00:00")
    late_waiter = waiter(4, "Tom", "2026-03-09T09:00:00")
    late_waiter["time"] = "19:00"

    arbox.schedule = [session(bookings=10), other]
    arbox.waitlist = [waiter(1, "Noa", "2026-03-09T10:00:00"), late_waiter]
    await detector.detect()

    arbox.schedule = [session(bookings=10), {**other, "bookings": 9}]
    [notification] = await detector.detect()

    assert notification.entity_key == "2026-03-11_19:00_Pilates"
    assert len(state_repository.rows) == 2


@pytest.mark.asyncio
async def test_full_yoga_session_opens_a_spot_for_dana(state_store, arbox, state_repository):
    now = datetime(2025, 12, 7, 9, 0, tzinfo=ZoneInfo("Asia/Jerusalem"))
    detector = WaitlistCapacityDetector(state_store, arbox, clock=lambda: now)
    yoga = {
        "id": 901,
        "date": "2025-12-08",
        "startTime": "18:00:00",
        "name": "Yoga",
        "maxMembers": 10,
        "bookings": 10,
    }
    arbox.waitlist = [
        {
            "date": "08/12/2025",
            "time": "18:00",
            "event_name": "Yoga",
            "user_fk": 7,
            "name": "Dana",
            "phone": "0501234567",
        }
    ]
    arbox.schedule = [yoga]

    assert await detector.detect() == []
    assert state_repository.state(EVENT, "2025-12-08_18:00_Yoga")["available_spots"] == 0

    arbox.schedule = [{**yoga, "bookings": 9}]
    notifications = await detector.detect()

    assert len(notifications) == 1
    [notification] = notifications
    assert [{k: r[k] for k in ("name", "phone", "position")} for r in notification.recipients] == [
        {"name": "Dana", "phone": "0501234567", "position": 1}
    ]
    assert notification.data["available_spots"] == 1


class SlowScheduleArbox:
    def __init__(self):
        self.schedule_cancelled = False

    async def get_waitlist_entries(self, from_date, to_date):
        raise UpstreamFetchError("Arbox returned 502", status_code=502)

    async def get_schedule(self, from_date, to_date):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.schedule_cancelled = True
            raise
        return []


@pytest.mark.asyncio
async def test_failed_waitlist_feed_cancels_schedule_request(state_store, state_repository):
    arbox = SlowScheduleArbox()
    detector = WaitlistCapacityDetector(state_store, arbox, clock=lambda: NOW)

    with pytest.raises(UpstreamFetchError):
        await asyncio.wait_for(detector.detect(), timeout=5)

    assert arbox.schedule_cancelled is True
    assert state_repository.rows == {}
