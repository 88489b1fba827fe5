"""Tests for NewLeadDetector set-diff behaviour."""

import pytest

from notifier.features.notifications.detectors import NewLeadDetector

EVENT = "new_lead_notifications"


def lead(lead_id, first="Dana", last="Gal", source="Instagram"):
    return {
        "id": lead_id,
        "first_name": first,
        "last_name": last,
        "phone": "0541234567",
        "lead_source": source,
        "lead_status": "New",
        "created_at": "2026-03-10T08:00:00",
    }


@pytest.fixture
def detector(state_store, arbox, clock):
    return NewLeadDetector(state_store, arbox, clock=clock)


@pytest.mark.asyncio
async def test_first_run_adopts_baseline(detector, arbox, state_repository):
    arbox.leads = [lead(1), lead(2)]

    assert await detector.detect() == []
    assert state_repository.state(EVENT, "all_leads") == {"lead_ids": ["1", "2"]}


@pytest.mark.asyncio
async def test_only_unseen_leads_are_reported(detector, arbox):
    arbox.leads = [lead(1), lead(2)]
    await detector.detect()

    arbox.leads = [lead(2), lead(3, first="Omer", last="Tal", source=None)]
    [notification] = await detector.detect()

    assert notification.type == "new_lead"
    assert notification.data["lead_count"] == 1
    assert notification.data["leads"][0]["full_name"] == "Omer Tal"
    assert notification.data["leads"][0]["source"] == "Unknown"
    assert notification.metadata == {
        "detected_at": notification.metadata["detected_at"],
        "previous_count": 2,
        "current_count": 2,
    }


@pytest.mark.asyncio
async def test_growing_feed_reports_exactly_the_added_leads(detector, arbox):
    arbox.leads = [lead(n) for n in (1, 2, 3)]
    assert await detector.detect() == []

    arbox.leads = [lead(n) for n in (1, 2, 3, 4, 5)]
    [notification] = await detector.detect()

    assert [item["id"] for item in notification.data["leads"]] == ["4", "5"]
    assert notification.data["lead_count"] == 2


@pytest.mark.asyncio
async def test_removed_leads_do_not_notify(detector, arbox, state_repository):
    arbox.leads = [lead(1), lead(2)]
    await detector.detect()

    arbox.leads = [lead(2)]
    assert await detector.detect() == []
    assert state_repository.state(EVENT, "all_leads") == {"lead_ids": ["2"]}


@pytest.mark.asyncio
async def test_unchanged_feed_is_quiet(detector, arbox):
    arbox.leads = [lead(2), lead(1)]
    await detector.detect()

    arbox.leads = [lead(1), lead(2)]
    assert await detector.detect() == []


@pytest.mark.asyncio
async def test_empty_feed_keeps_previous_state(detector, arbox, state_repository):
    arbox.leads = [lead(1)]
    await detector.detect()

    arbox.leads = []
    assert await detector.detect() == []
    assert state_repository.state(EVENT, "all_leads") == {"lead_ids": ["1"]}

    arbox.leads = [lead(1)]
    assert await detector.detect() == []


@pytest.mark.asyncio
async def test_fetch_failure_leaves_state_untouched(detector, arbox, state_repository):
    arbox.leads = [lead(1)]
    await detector.detect()
    upserts = state_repository.upserts

    arbox.fail_with = RuntimeError("feed down")
    with pytest.raises(RuntimeError):
        await detector.detect()

    assert state_repository.upserts == upserts
