"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def ready(request: Request) -> dict[str, str]:
    engine = getattr(request.app.state, "engine", None)
    return {
        "status": "ready" if engine is not None else "starting",
        "environment": request.app.state.settings.environment,
    }
