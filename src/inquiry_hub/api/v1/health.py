"""Health check endpoints.

/health is a plain liveness probe. /health/ready additionally reads from the
record store so a broken database connection marks the instance degraded.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.inquiry_hub.config import get_settings
from src.inquiry_hub.inquiries.repository import USERS

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check; no dependencies are touched."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    checks: dict = {"record_store": "ok", "crm_targets": []}

    store = getattr(request.app.state, "store", None)
    if store is None:
        checks["record_store"] = "not_initialized"
    else:
        try:
            await store.query(USERS, [], limit=1)
        except Exception as e:
            checks["record_store"] = "error"
            checks["record_store_error"] = str(e)

    orchestrator = getattr(request.app.state, "sync_orchestrator", None)
    if orchestrator is not None:
        checks["crm_targets"] = sorted(t.value for t in orchestrator.configured_targets)

    healthy = checks["record_store"] == "ok"
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if healthy else "degraded", "checks": checks},
    )
