# notifier/routes/health.py
"""
Health check endpoints with database pool monitoring.
"""

import time

from fastapi import APIRouter, Request

from notifier.config import settings
from notifier.db.pool import db_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "studio-notifier"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check: database pool, notification engine wiring and configuration.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if "pool_stats" in db_health:
            checks["database"].update(db_health["pool_stats"])
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Notification engine
    orchestrator = getattr(request.app.state, "orchestrator", None)
    checks["notifications"] = {
        "ok": orchestrator is not None,
        "channels": (
            {name: channel.is_configured() for name, channel in orchestrator.channels.items()}
            if orchestrator
            else {}
        ),
    }
    overall_ok = overall_ok and orchestrator is not None

    # 3) Configuration
    config_issues = []
    if not settings.ARBOX_API_URL or not settings.ARBOX_API_KEY:
        config_issues.append("ARBOX_API_URL / ARBOX_API_KEY not set")
    if not settings.RESEND_API_KEY:
        config_issues.append("RESEND_API_KEY not set (email disabled)")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
