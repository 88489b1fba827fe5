"""
Admin routes for the notification engine.

Usage:
    GET    /notifications/history            - delivery audit trail
    GET    /notifications/jobs               - recent orchestrator runs
    POST   /notifications/run                - trigger a run now
    POST   /notifications/events             - deliver an out-of-cycle event
    GET    /notifications/state              - stored detector state
    DELETE /notifications/state              - forget stored state (next sighting is new)
    GET    /notifications/recipients         - admin recipients
    POST   /notifications/recipients
    PATCH  /notifications/recipients/{id}
    DELETE /notifications/recipients/{id}
"""

from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from notifier.db.helpers import DatabaseError
from notifier.features.notifications.api.schemas import (
    EventRequest,
    RecipientCreateRequest,
    RecipientUpdateRequest,
    RunRequest,
)
from notifier.features.notifications.domain import Notification, Recipient
from notifier.features.notifications.errors import NotificationError
from notifier.features.notifications.orchestrator import NotificationOrchestrator
from notifier.features.notifications.repository.history_repository import (
    NotificationHistoryRepository,
)
from notifier.features.notifications.repository.job_run_repository import JobRunRepository
from notifier.features.notifications.repository.recipient_repository import RecipientRepository
from notifier.features.notifications.state_store import StateStore
from notifier.infrastructure.observability.logging import get_logger

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = get_logger(__name__)


def get_orchestrator(request: Request) -> NotificationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification engine is not configured",
        )
    return orchestrator


def get_history_repository() -> NotificationHistoryRepository:
    return NotificationHistoryRepository()


def get_job_run_repository() -> JobRunRepository:
    return JobRunRepository()


def get_recipient_repository() -> RecipientRepository:
    return RecipientRepository()


def get_state_store() -> StateStore:
    return StateStore()


def _server_error(message: str, error: Exception) -> HTTPException:
    logger.error(message, error=str(error), error_type=type(error).__name__)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


# =======================================================================
# HISTORY & RUNS
# =======================================================================


@router.get("/history")
async def list_history(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    event_type: str | None = None,
    status_filter: Literal["pending", "sent", "failed"] | None = Query(None, alias="status"),
    history: NotificationHistoryRepository = Depends(get_history_repository),
) -> dict:
    try:
        rows = await history.list_recent(
            limit=limit, offset=offset, event_type=event_type, status=status_filter
        )
    except DatabaseError as e:
        raise _server_error("Failed to load notification history", e) from e
    return {"history": rows, "count": len(rows)}


@router.get("/jobs")
async def list_jobs(
    limit: int = Query(20, ge=1, le=200),
    job_runs: JobRunRepository = Depends(get_job_run_repository),
) -> dict:
    try:
        rows = await job_runs.list_recent(limit)
    except DatabaseError as e:
        raise _server_error("Failed to load job runs", e) from e
    return {"jobs": rows, "count": len(rows)}


@router.post("/run")
async def trigger_run(
    body: RunRequest | None = None,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """
    Run the detectors now.

    A run that is already in progress is not interrupted; the response then
    carries skipped=true.
    """
    try:
        result = await orchestrator.run(body.detectors if body else None)
    except (NotificationError, DatabaseError) as e:
        raise _server_error("Notification run failed", e) from e

    logger.info("Manual notification run finished", skipped=result.skipped, job_run_id=result.job_run_id)
    return result.to_dict()


@router.post("/events")
async def send_event(
    body: EventRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> dict:
    notification = Notification(
        type=body.type,
        event_type=body.event_type,
        entity_id=body.entity_id,
        entity_key=body.entity_key or body.entity_id or body.type,
        data=body.data,
    )
    try:
        results = await orchestrator.send_notification(notification)
    except DatabaseError as e:
        raise _server_error("Failed to deliver event", e) from e

    return {
        "sent": sum(1 for r in results if r.success),
        "failed": sum(1 for r in results if not r.success),
        "results": [asdict(r) for r in results],
    }


# =======================================================================
# STATE
# =======================================================================


@router.get("/state")
async def list_state(
    event_type: str | None = None,
    state_store: StateStore = Depends(get_state_store),
) -> dict:
    try:
        records = await state_store.get_all_states(event_type)
    except NotificationError as e:
        raise _server_error("Failed to load detector state", e) from e
    return {"states": [asdict(r) for r in records], "count": len(records)}


@router.delete("/state")
async def clear_state(
    event_type: str = Query(..., min_length=1),
    entity_key: str | None = None,
    state_store: StateStore = Depends(get_state_store),
) -> dict:
    try:
        deleted = await state_store.clear_states(event_type, entity_key)
    except NotificationError as e:
        raise _server_error("Failed to clear detector state", e) from e

    logger.info("Detector state cleared", event_type=event_type, entity_key=entity_key, deleted=deleted)
    return {"deleted": deleted}


# =======================================================================
# RECIPIENTS
# =======================================================================


@router.get("/recipients")
async def list_recipients(
    recipients: RecipientRepository = Depends(get_recipient_repository),
) -> dict:
    try:
        rows = await recipients.list_all()
    except DatabaseError as e:
        raise _server_error("Failed to load recipients", e) from e
    return {"recipients": [asdict(r) for r in rows]}


@router.post("/recipients", status_code=status.HTTP_201_CREATED)
async def create_recipient(
    body: RecipientCreateRequest,
    recipients: RecipientRepository = Depends(get_recipient_repository),
) -> dict:
    if not body.email and not body.phone:
        raise HTTPException(
            status_code=422,
            detail="A recipient needs an email or a phone number",
        )
    try:
        created = await recipients.create(Recipient(**body.model_dump()))
    except DatabaseError as e:
        raise _server_error("Failed to create recipient", e) from e
    return asdict(created)


@router.patch("/recipients/{recipient_id}")
async def update_recipient(
    recipient_id: int,
    body: RecipientUpdateRequest,
    recipients: RecipientRepository = Depends(get_recipient_repository),
) -> dict:
    try:
        updated = await recipients.update(recipient_id, body.model_dump(exclude_unset=True))
    except DatabaseError as e:
        raise _server_error("Failed to update recipient", e) from e
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")
    return asdict(updated)


@router.delete("/recipients/{recipient_id}")
async def delete_recipient(
    recipient_id: int,
    recipients: RecipientRepository = Depends(get_recipient_repository),
) -> dict:
    try:
        deleted = await recipients.delete(recipient_id)
    except DatabaseError as e:
        raise _server_error("Failed to delete recipient", e) from e
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")
    return {"deleted": True}
