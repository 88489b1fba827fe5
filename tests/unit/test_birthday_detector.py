"""Tests for the daily birthday digest."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from notifier.features.notifications.detectors import BirthdayDetector
from notifier.features.notifications.detectors.birthday import is_birthday_on

TZ = ZoneInfo("Asia/Jerusalem")


def user(user_id, birth, active=1, first="Noa", last="Levi"):
    return {
        "id": user_id,
        "firstName": first,
        "lastName": last,
        "dateOfBirth": birth,
        "phone": "0521111111",
        "email": f"user{user_id}@studio.test",
        "active": active,
    }


def make_detector(state_store, arbox, clock):
    return BirthdayDetector(state_store, arbox, config={"run_hour": 10, "run_minute_window": 10}, clock=clock)


@pytest.fixture
def in_window(clock):
    clock.now = datetime(2026, 3, 10, 10, 5, tzinfo=TZ)
    return clock


def test_leap_day_birthday_lands_on_feb_28():
    assert is_birthday_on(date(2000, 2, 29), date(2026, 2, 28))
    assert not is_birthday_on(date(2000, 2, 29), date(2028, 2, 28))
    assert is_birthday_on(date(2000, 2, 29), date(2028, 2, 29))
    assert is_birthday_on(date(1990, 3, 10), date(2026, 3, 10))


@pytest.mark.asyncio
async def test_outside_run_window_does_nothing(state_store, arbox, clock, state_repository):
    clock.now = datetime(2026, 3, 10, 10, 30, tzinfo=TZ)
    arbox.users = [user(1, "1990-03-10")]

    assert await make_detector(state_store, arbox, clock).detect() == []
    assert arbox.calls == []
    assert state_repository.rows == {}


@pytest.mark.asyncio
async def test_fires_once_per_day_inside_window(state_store, arbox, in_window, state_repository):
    arbox.users = [
        user(1, "1990-03-10"),
        user(2, "10/03/1985", first="Lior", last="Cohen"),
        user(3, "1990-03-11"),
        user(4, "1990-03-10", active=0),
    ]
    detector = make_detector(state_store, arbox, in_window)

    [notification] = await detector.detect()

    assert notification.type == "birthday_today"
    assert notification.entity_key == "birthdays_2026-03-10"
    assert notification.data["birthday_count"] == 2
    assert {b["full_name"] for b in notification.data["birthdays"]} == {"Noa Levi", "Lior Cohen"}
    assert {b["turning_age"] for b in notification.data["birthdays"]} == {36, 41}

    in_window.now = datetime(2026, 3, 10, 10, 9, tzinfo=TZ)
    assert await detector.detect() == []

    stored = state_repository.state("birthday_notifications", "birthdays_2026-03-10")
    assert stored["notified_user_ids"] == ["1", "2"]


@pytest.mark.asyncio
async def test_member_added_mid_window_gets_own_notification(state_store, arbox, in_window):
    arbox.users = [user(1, "1990-03-10")]
    detector = make_detector(state_store, arbox, in_window)
    await detector.detect()

    arbox.users.append(user(7, "1995-03-10", first="Maya", last="Bar"))
    [notification] = await detector.detect()

    assert [b["id"] for b in notification.recipients] == ["7"]


@pytest.mark.asyncio
async def test_no_birthdays_writes_no_state(state_store, arbox, in_window, state_repository):
    arbox.users = [user(1, "1990-06-01")]

    assert await make_detector(state_store, arbox, in_window).detect() == []
    assert state_repository.rows == {}


@pytest.mark.asyncio
async def test_three_runs_in_one_window_fire_once(state_store, arbox, in_window):
    arbox.users = [user(1, "1990-03-10")]
    detector = make_detector(state_store, arbox, in_window)

    counts = []
    for minute in (1, 5, 9):
        in_window.now = datetime(2026, 3, 10, 10, minute, tzinfo=TZ)
        counts.append(len(await detector.detect()))

    assert counts == [1, 0, 0]
