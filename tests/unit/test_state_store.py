"""
Tests for StateStore change detection.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from notifier.db.helpers import DatabaseError
from notifier.features.notifications.errors import StateStoreError
from notifier.features.notifications.state_store import hash_state


def test_hash_ignores_key_order_at_every_depth():
    a = {"available_spots": 2, "meta": {"x": 1, "y": [1, 2]}, "waitlist_count": 3}
    b = {"waitlist_count": 3, "meta": {"y": [1, 2], "x": 1}, "available_spots": 2}

    assert hash_state(a) == hash_state(b)
    assert len(hash_state(a)) == 64


def test_hash_changes_with_values():
    assert hash_state({"available_spots": 0}) != hash_state({"available_spots": 1})


@pytest.mark.asyncio
async def test_first_sighting_is_new_and_not_changed(state_store):
    comparison = await state_store.compare_state("waitlist_capacity", "k1", {"available_spots": 0})

    assert comparison.is_new is True
    assert comparison.has_changed is False
    assert comparison.previous_state is None
    assert comparison.changes is None


@pytest.mark.asyncio
async def test_identical_snapshot_is_unchanged(state_store):
    await state_store.save_state("waitlist_capacity", "42", "k1", {"available_spots": 0, "waitlist_count": 2})

    comparison = await state_store.compare_state(
        "waitlist_capacity", "k1", {"waitlist_count": 2, "available_spots": 0}
    )

    assert comparison.is_new is False
    assert comparison.has_changed is False
    assert comparison.changes is None


@pytest.mark.asyncio
async def test_changed_snapshot_carries_before_and_after(state_store):
    await state_store.save_state("waitlist_capacity", "42", "k1", {"available_spots": 0})

    comparison = await state_store.compare_state("waitlist_capacity", "k1", {"available_spots": 1})

    assert comparison.has_changed is True
    assert comparison.before == {"available_spots": 0}
    assert comparison.after == {"available_spots": 1}
    assert comparison.previous_hash == hash_state({"available_spots": 0})
    assert comparison.new_hash == hash_state({"available_spots": 1})


@pytest.mark.asyncio
async def test_save_state_upserts_single_record(state_store, state_repository):
    await state_store.save_state("waitlist_capacity", 42, "k1", {"available_spots": 0})
    record = await state_store.save_state("waitlist_capacity", 42, "k1", {"available_spots": 3})

    assert len(state_repository.rows) == 1
    assert record.entity_id == "42"
    assert record.state_data == {"available_spots": 3}
    assert record.state_hash == hash_state({"available_spots": 3})


@pytest.mark.asyncio
async def test_cleanup_deletes_only_stale_rows_of_event_type(state_store, state_repository):
    await state_store.save_state("waitlist_capacity", None, "old", {"a": 1})
    await state_store.save_state("waitlist_capacity", None, "fresh", {"a": 2})
    await state_store.save_state("new_lead_notifications", None, "all_leads", {"lead_ids": []})

    long_ago = datetime.now(ZoneInfo("UTC")) - timedelta(days=30)
    state_repository.rows[("waitlist_capacity", "old")]["last_checked_at"] = long_ago
    state_repository.rows[("new_lead_notifications", "all_leads")]["last_checked_at"] = long_ago

    deleted = await state_store.cleanup_old_states("waitlist_capacity", older_than_days=7)

    assert deleted == 1
    assert ("waitlist_capacity", "fresh") in state_repository.rows
    assert ("new_lead_notifications", "all_leads") in state_repository.rows


@pytest.mark.asyncio
async def test_clear_states_resets_to_cold_start(state_store):
    await state_store.save_state("waitlist_capacity", None, "k1", {"a": 1})
    await state_store.save_state("waitlist_capacity", None, "k2", {"a": 1})

    assert await state_store.clear_states("waitlist_capacity", "k1") == 1
    assert (await state_store.compare_state("waitlist_capacity", "k1", {"a": 1})).is_new is True
    assert len(await state_store.get_all_states("waitlist_capacity")) == 1


@pytest.mark.asyncio
async def test_database_errors_surface_as_state_store_error(state_store, state_repository):
    state_repository.fail_with = DatabaseError("connection refused", operation="fetch_one")

    with pytest.raises(StateStoreError):
        await state_store.compare_state("waitlist_capacity", "k1", {"a": 1})

    with pytest.raises(StateStoreError):
        await state_store.save_state("waitlist_capacity", None, "k1", {"a": 1})
