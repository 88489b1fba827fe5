"""
NotificationOrchestrator - one detection and delivery cycle.

run():
    1. Single-flight guard (in-process flag + job run row under an advisory lock)
    2. Run each selected detector sequentially, each under a timeout
    3. Deliver every notification to the admin recipients subscribed to its
       event type, over every channel the recipient has an address for
    4. Close the job run with counters (or as failed) and fire the ops summary

Failure policy:
    - UpstreamFetchError: isolated to the detector, the run continues
    - delivery errors: recorded per attempt in notification_history, never retried
    - StateStoreError, detector timeouts, database errors: the run fails
"""

import asyncio
import time
from collections.abc import Iterable

from notifier.config import Settings, settings
from notifier.features.notifications.channels.base import BaseChannel
from notifier.features.notifications.detectors.base import BaseDetector
from notifier.features.notifications.domain import (
    DeliveryResult,
    DetectorRunSummary,
    Notification,
    Recipient,
    RunResult,
)
from notifier.features.notifications.errors import NotificationError, UpstreamFetchError
from notifier.features.notifications.repository.history_repository import (
    NotificationHistoryRepository,
)
from notifier.features.notifications.repository.job_run_repository import JobRunRepository
from notifier.features.notifications.repository.recipient_repository import RecipientRepository
from notifier.features.notifications.state_store import StateStore
from notifier.infrastructure.alerts.ops_alerter import OpsAlerter
from notifier.infrastructure.observability.logging import (
    bind_job_context,
    clear_job_context,
    get_logger,
    log_delivery_attempt,
)

logger = get_logger(__name__)

JOB_NAME = "notification_orchestrator"


class NotificationOrchestrator:
    def __init__(
        self,
        state_store: StateStore,
        detectors: dict[str, BaseDetector],
        channels: dict[str, BaseChannel],
        history_repository: NotificationHistoryRepository | None = None,
        job_run_repository: JobRunRepository | None = None,
        recipient_repository: RecipientRepository | None = None,
        ops_alerter: OpsAlerter | None = None,
        config: Settings = settings,
    ):
        self.state_store = state_store
        self.detectors = detectors
        self.channels = channels
        self.history = history_repository or NotificationHistoryRepository()
        self.job_runs = job_run_repository or JobRunRepository()
        self.recipients = recipient_repository or RecipientRepository()
        self.ops_alerter = ops_alerter
        self.config = config

        self.is_running = False
        self._background_tasks: set[asyncio.Task] = set()

    # =======================================================================
    # RUN
    # =======================================================================

    async def run(self, detector_names: Iterable[str] | None = None) -> RunResult:
        if self.is_running:
            logger.warning("Notification run already in progress, skipping")
            return RunResult(success=False, skipped=True)

        self.is_running = True
        try:
            return await self._run(detector_names)
        finally:
            self.is_running = False
            clear_job_context()

    async def _run(self, detector_names: Iterable[str] | None) -> RunResult:
        selected = self.select_detectors(detector_names)

        job_run_id = await self.job_runs.start_run(
            JOB_NAME, stale_after_minutes=self.config.JOB_RUN_STALE_MINUTES
        )
        if job_run_id is None:
            return RunResult(success=False, skipped=True)

        bind_job_context(job_run_id=job_run_id)
        result = RunResult(success=True, job_run_id=job_run_id)
        started = time.perf_counter()
        logger.info("Notification run started", detectors=[d.name for d in selected])

        try:
            for detector in selected:
                summary = await self._run_detector(detector)
                result.detector_results.append(summary)
                result.events_detected += summary.events_detected
                result.notifications_sent += summary.notifications_sent
                result.notifications_failed += summary.notifications_failed
        except Exception as e:
            result.success = False
            logger.error(
                "Notification run failed",
                error=str(e),
                error_type=type(e).__name__,
                events_detected=result.events_detected,
            )
            await self._complete(result, "failed", error_message=str(e))
            raise

        await self._complete(result, "completed")
        logger.info(
            "Notification run completed",
            duration_seconds=round(time.perf_counter() - started, 3),
            events_detected=result.events_detected,
            notifications_sent=result.notifications_sent,
            notifications_failed=result.notifications_failed,
        )
        self._schedule_ops_summary(result)
        return result

    def select_detectors(self, detector_names: Iterable[str] | None) -> list[BaseDetector]:
        names = detector_names if detector_names is not None else self.config.NOTIFICATION_DETECTORS
        if names is None:
            return list(self.detectors.values())

        selected = []
        for name in names:
            detector = self.detectors.get(name)
            if detector is None:
                logger.warning("Unknown detector requested, ignoring", detector=name)
                continue
            selected.append(detector)
        return selected

    async def _run_detector(self, detector: BaseDetector) -> DetectorRunSummary:
        summary = DetectorRunSummary(name=detector.name)
        bind_job_context(detector=detector.name)
        timeout = self.config.DETECTOR_TIMEOUT_SECONDS

        try:
            notifications = await asyncio.wait_for(detector.detect(), timeout=timeout)
        except UpstreamFetchError as e:
            logger.error(
                "Detector upstream fetch failed, continuing",
                status_code=e.status_code,
                error=str(e),
            )
            summary.error = str(e)
            return summary
        except TimeoutError as e:
            raise NotificationError(
                f"Detector {detector.name} timed out after {timeout}s", operation="detect"
            ) from e

        summary.events_detected = len(notifications)
        for notification in notifications:
            results = await self.send_notification(notification)
            summary.notifications_sent += sum(1 for r in results if r.success)
            summary.notifications_failed += sum(1 for r in results if not r.success)

        logger.info(
            "Detector finished",
            events_detected=summary.events_detected,
            notifications_sent=summary.notifications_sent,
            notifications_failed=summary.notifications_failed,
        )
        return summary

    async def _complete(self, result: RunResult, status: str, error_message: str | None = None) -> None:
        await self.job_runs.complete_run(
            result.job_run_id,
            status,
            events_detected=result.events_detected,
            notifications_sent=result.notifications_sent,
            notifications_failed=result.notifications_failed,
            error_message=error_message,
            details={"detectors": [s.to_dict() for s in result.detector_results]},
        )

    # =======================================================================
    # DELIVERY
    # =======================================================================

    async def resolve_recipients(self, event_type: str) -> list[Recipient]:
        recipients = await self.recipients.get_active_for_event(event_type)
        if recipients:
            return recipients

        fallback = self.config.fallback_recipient()
        if fallback:
            logger.info("No recipients registered, using fallback admin", event_type=event_type)
            return [Recipient(event_types=[event_type], **fallback)]

        logger.warning("No recipients for event type", event_type=event_type)
        return []

    @staticmethod
    def channels_for(recipient: Recipient) -> list[str]:
        names = []
        if recipient.email:
            names.append("email")
        if recipient.phone:
            names.append("whatsapp")
        return names

    async def send_notification(self, notification: Notification) -> list[DeliveryResult]:
        """
        Deliver one notification to every subscribed admin over every usable channel.

        Also the entry point for out-of-cycle events raised by other parts of
        the system (document_signed, new_order).

        Returns:
            One DeliveryResult per attempted (recipient, channel) pair.
        """
        results: list[DeliveryResult] = []

        for recipient in await self.resolve_recipients(notification.event_type):
            for channel_name in self.channels_for(recipient):
                channel = self.channels.get(channel_name)
                if channel is None or not channel.is_configured():
                    logger.warning(
                        "Channel not configured, skipping",
                        channel=channel_name,
                        notification_type=notification.type,
                    )
                    continue
                results.append(await self._deliver(channel, recipient, notification))

        return results

    async def _deliver(
        self, channel: BaseChannel, recipient: Recipient, notification: Notification
    ) -> DeliveryResult:
        render_error = None
        try:
            subject = channel.render_template(notification).subject
        except Exception as e:
            logger.error(
                "Template rendering failed",
                channel=channel.channel_name,
                notification_type=notification.type,
                error=str(e),
                error_type=type(e).__name__,
            )
            subject = f"Notification: {notification.type}"
            render_error = f"Rendering failed: {e}"

        history_id = await self.history.create_pending(
            notification, recipient, channel.channel_name, subject
        )

        started = time.perf_counter()
        try:
            if render_error:
                result = DeliveryResult(success=False, channel=channel.channel_name, error=render_error)
            else:
                result = await asyncio.wait_for(
                    channel.send(recipient, notification),
                    timeout=self.config.CHANNEL_SEND_TIMEOUT_SECONDS,
                )
        except TimeoutError:
            result = DeliveryResult(
                success=False, channel=channel.channel_name, error="Channel send timed out"
            )
        except Exception as e:
            logger.error(
                "Unexpected channel error",
                channel=channel.channel_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            result = DeliveryResult(success=False, channel=channel.channel_name, error=str(e))

        log_delivery_attempt(
            channel=channel.channel_name,
            notification_type=notification.type,
            success=result.success,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
            error=result.error,
        )
        await self.history.mark_result(history_id, result)
        return result

    # =======================================================================
    # OPS SUMMARY
    # =======================================================================

    def _schedule_ops_summary(self, result: RunResult) -> None:
        if self.ops_alerter is None or not self.ops_alerter.is_configured():
            return
        quiet = not result.events_detected and not any(s.error for s in result.detector_results)
        if quiet and not self.config.OPS_SUMMARY_ON_QUIET_RUNS:
            return

        task = asyncio.create_task(self.ops_alerter.send_run_summary(result))
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_task_done)

    def _on_background_task_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Ops summary alert failed", error=str(error), error_type=type(error).__name__)

    async def drain_background_tasks(self, timeout: float = 10.0) -> None:
        """Wait for pending ops alerts; one-shot workers call this before exiting."""
        if self._background_tasks:
            await asyncio.wait(set(self._background_tasks), timeout=timeout)

    async def close(self) -> None:
        """Release the HTTP clients held by channels, detectors and the ops alerter."""
        await self.drain_background_tasks()
        for channel in self.channels.values():
            await channel.close()
        for arbox in {id(d.arbox): d.arbox for d in self.detectors.values()}.values():
            await arbox.close()
        if self.ops_alerter is not None:
            await self.ops_alerter.close()
