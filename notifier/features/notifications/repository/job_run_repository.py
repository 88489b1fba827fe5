"""
Postgres repository for notification_job_runs.

Each orchestrator invocation is bracketed by start_run/complete_run.
start_run doubles as the single-flight guard: under a transaction-scoped
advisory lock it refuses to open a run while another one for the same job
is still marked running and younger than the stale window.
"""

from psycopg.types.json import Jsonb

from notifier.db.helpers import execute_query, fetch_all, fetch_one_in_transaction
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class JobRunRepository:
    """Persistence helpers for notification_job_runs."""

    @staticmethod
    async def start_run(job_name: str, stale_after_minutes: int = 30) -> int | None:
        """
        Open a running job row.

        Returns:
            The new job run id, or None when another run holds the slot.
        """
        row = await fetch_one_in_transaction(
            [
                ("SELECT pg_advisory_xact_lock(hashtext(%s))", (job_name,)),
                (
                    """
                    INSERT INTO notification_job_runs (job_name, status, started_at)
                    SELECT %s, 'running', NOW()
                    WHERE NOT EXISTS (
                        SELECT 1 FROM notification_job_runs
                        WHERE job_name = %s
                          AND status = 'running'
                          AND started_at > NOW() - make_interval(mins => %s)
                    )
                    RETURNING id
                    """,
                    (job_name, job_name, stale_after_minutes),
                ),
            ]
        )
        if not row:
            logger.warning("Another job run is in progress", job_name=job_name)
            return None
        return row["id"]

    @staticmethod
    async def complete_run(
        job_run_id: int,
        status: str,
        events_detected: int = 0,
        notifications_sent: int = 0,
        notifications_failed: int = 0,
        error_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        query = """
            UPDATE notification_job_runs
            SET status = %s,
                events_detected = %s,
                notifications_sent = %s,
                notifications_failed = %s,
                error_message = %s,
                details = %s,
                completed_at = NOW()
            WHERE id = %s AND status = 'running'
        """
        await execute_query(
            query,
            (
                status,
                events_detected,
                notifications_sent,
                notifications_failed,
                (error_message or "")[:1000] or None,
                Jsonb(details) if details is not None else None,
                job_run_id,
            ),
        )

    @staticmethod
    async def list_recent(limit: int = 20) -> list[dict]:
        query = """
            SELECT id, job_name, status, events_detected, notifications_sent,
                   notifications_failed, error_message, details, started_at, completed_at
            FROM notification_job_runs
            ORDER BY started_at DESC
            LIMIT %s
        """
        return await fetch_all(query, (limit,))
