"""Tests for the Telegram ops summary alert."""

import json

import httpx
import pytest

from notifier.config import settings
from notifier.features.notifications.domain import DetectorRunSummary, RunResult
from notifier.infrastructure.alerts.ops_alerter import OpsAlerter


def run_result():
    return RunResult(
        success=True,
        job_run_id=42,
        events_detected=2,
        notifications_sent=3,
        notifications_failed=1,
        detector_results=[
            DetectorRunSummary(name="waitlist_capacity", events_detected=2),
            DetectorRunSummary(name="new_lead_notifications", error="Arbox API error (HTTP 502)"),
        ],
    )


def test_format_summary():
    text = OpsAlerter.format_summary(run_result())

    assert text.splitlines()[0] == "Notification run #42 completed"
    assert "events: 2 | sent: 3 | failed: 1" in text
    assert "- waitlist_capacity: 2 events" in text
    assert "(error: Arbox API error (HTTP 502))" in text


@pytest.mark.asyncio
async def test_send_run_summary_posts_to_bot():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    alerter = OpsAlerter(bot_token="123:abc", chat_id="-100", transport=httpx.MockTransport(handler))

    assert await alerter.send_run_summary(run_result()) is True
    await alerter.close()

    assert seen[0].url == "https://api.telegram.org/bot123:abc/sendMessage"
    body = json.loads(seen[0].content)
    assert body["chat_id"] == "-100"
    assert body["text"].startswith("Notification run #42")


@pytest.mark.asyncio
async def test_unconfigured_alerter_is_noop(monkeypatch):
    monkeypatch.setattr(settings, "OPS_TELEGRAM_BOT_TOKEN", None)
    alerter = OpsAlerter(chat_id="-100")

    assert alerter.is_configured() is False
    assert await alerter.send_run_summary(run_result()) is False


@pytest.mark.asyncio
async def test_http_error_is_raised():
    alerter = OpsAlerter(
        bot_token="123:abc",
        chat_id="-100",
        transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"ok": False})),
    )

    with pytest.raises(httpx.HTTPStatusError):
        await alerter.send_run_summary(run_result())
