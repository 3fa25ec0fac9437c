# backup_gc/main.py
"""
HTTP surface for the garbage collector.

GET  /health                 - Liveness
GET  /ready                  - 200 once the backup cache has synced, 503 before
GET  /v1/admin/gc/status     - Runtime and reconciliation counters
POST /v1/admin/gc/resync     - Enqueue every cached backup now
GET  /v1/admin/gc/preview    - Cached backups that are expired right now
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backup_gc.auth import require_admin_key
from backup_gc.keys import meta_namespace_key
from backup_gc.runtime import GCRuntime

logger = logging.getLogger(__name__)

SERVICE_NAME = "backup-gc"


# -----------------------------------------------------------------------------
# Response Models
# -----------------------------------------------------------------------------


class GCStatsResponse(BaseModel):
    processed: int
    expired: int
    submitted: int
    failed: int


class GCStatusResponse(BaseModel):
    """Controller status."""

    running: bool
    cache_synced: bool
    backups_cached: int
    queue_depth: int
    workers: int
    sync_period_seconds: float
    last_resync_at: datetime | None = None
    stats: GCStatsResponse


class ResyncResponse(BaseModel):
    enqueued: int


class ExpiredBackup(BaseModel):
    key: str
    uid: str
    expiration: datetime | None


class PreviewResponse(BaseModel):
    """Backups a reconciliation pass would request deletion for."""

    evaluated_at: datetime
    total_cached: int
    expired: list[ExpiredBackup]


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_runtime(request: Request) -> GCRuntime:
    return request.app.state.runtime


# -----------------------------------------------------------------------------
# Admin router
# -----------------------------------------------------------------------------

router = APIRouter(prefix="/v1/admin/gc", tags=["admin-gc"], dependencies=[Depends(require_admin_key)])


@router.get("/status", response_model=GCStatusResponse)
def gc_status(runtime: GCRuntime = Depends(get_runtime)) -> GCStatusResponse:
    return GCStatusResponse(**runtime.status())


@router.post("/resync", response_model=ResyncResponse)
def gc_resync(runtime: GCRuntime = Depends(get_runtime)) -> ResyncResponse:
    enqueued = runtime.controller.enqueue_all_backups()
    logger.info(f"Manual resync enqueued {enqueued} backups", extra={"event": "manual_resync", "enqueued": enqueued})
    return ResyncResponse(enqueued=enqueued)


@router.get("/preview", response_model=PreviewResponse)
def gc_preview(runtime: GCRuntime = Depends(get_runtime)) -> PreviewResponse:
    controller = runtime.controller
    evaluated_at = controller.clock.now()
    expired = controller.preview_expired()
    return PreviewResponse(
        evaluated_at=evaluated_at,
        total_cached=len(runtime.cache),
        expired=[ExpiredBackup(key=meta_namespace_key(b), uid=b.uid, expiration=b.expiration) for b in expired],
    )


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(runtime: GCRuntime, manage_lifecycle: bool = False) -> FastAPI:
    """
    Build the FastAPI app around a runtime.

    With manage_lifecycle=True the runtime is started and stopped with the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            runtime.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                runtime.stop()

    app = FastAPI(title="Backup GC Controller", lifespan=lifespan)
    app.state.runtime = runtime

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/ready")
    def ready(runtime: GCRuntime = Depends(get_runtime)):
        if not runtime.cache.has_synced():
            return JSONResponse(status_code=503, content={"ready": False, "reason": "backup cache not synced"})
        return {"ready": True}

    app.include_router(router)
    return app
