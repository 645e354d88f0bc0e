from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.settings import settings
from superfan_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except Exception as exc:
        logger.error("Readiness database probe failed", error=str(exc))
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"

    worker = getattr(request.app.state, "hold_expiry_worker", None)
    if settings.hold_expiry_worker_enabled and worker is not None:
        running = bool(worker.is_running)
        last_run = worker.last_run_at.isoformat() if worker.last_run_at else None
        components["hold_expiry_worker"] = ComponentStatus(
            status="ready" if running else "degraded",
            detail=None if running else "Hold expiry worker not running",
            last_success_at=last_run,
        )
        if not running and status == "ready":
            status = "degraded"
    else:
        components["hold_expiry_worker"] = ComponentStatus(
            status="disabled",
            detail="Hold expiry worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
