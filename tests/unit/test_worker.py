from unittest.mock import AsyncMock

import pytest

from notifier.features.notifications.domain import RunResult
from notifier.jobs import notification_job, worker


@pytest.fixture(autouse=True)
def fake_pool(monkeypatch):
    pool = AsyncMock()
    monkeypatch.setattr(worker, "db_pool", pool)
    return pool


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch, fake_pool):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True
    fake_pool.initialize.assert_awaited_once()
    fake_pool.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_worker_closes_pool_on_failure(monkeypatch, fake_pool):
    async def broken_job():
        raise RuntimeError("boom")

    monkeypatch.setitem(worker.JOB_REGISTRY, "broken", broken_job)

    with pytest.raises(RuntimeError):
        await worker.run_worker("broken")

    fake_pool.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_worker_unknown_job(fake_pool):
    with pytest.raises(ValueError):
        await worker.run_worker("missing")

    fake_pool.initialize.assert_not_awaited()


def test_job_name_from_env(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["worker"])
    monkeypatch.setenv("WORKER_JOB", " State_Cleanup ")

    assert worker._resolve_job_name() == "state_cleanup"


def test_registry_exposes_notification_and_cleanup_jobs():
    assert set(worker.JOB_REGISTRY) >= {"notifications", "state_cleanup"}


@pytest.mark.asyncio
async def test_notification_cycle_closes_orchestrator(monkeypatch):
    orchestrator = AsyncMock()
    orchestrator.run.return_value = RunResult(success=True, job_run_id=1)
    monkeypatch.setattr(notification_job, "build_orchestrator", lambda: orchestrator)

    await notification_job.run_notification_cycle()

    orchestrator.run.assert_awaited_once()
    orchestrator.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_notification_cycle_closes_orchestrator_on_failure(monkeypatch):
    orchestrator = AsyncMock()
    orchestrator.run.side_effect = RuntimeError("state store down")
    monkeypatch.setattr(notification_job, "build_orchestrator", lambda: orchestrator)

    with pytest.raises(RuntimeError):
        await notification_job.run_notification_cycle()

    orchestrator.close.assert_awaited_once()
