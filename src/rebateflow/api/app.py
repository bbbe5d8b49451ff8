"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rebateflow.api.routes import admin, health
from rebateflow.core.config import AppSettings
from rebateflow.core.exceptions import InvalidStateError, NotFoundError, RulesValidationError
from rebateflow.core.logging import configure_logging
from rebateflow.services import RebateEngine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down application resources."""
    settings: AppSettings = app.state.settings
    configure_logging(settings)
    if getattr(app.state, "engine", None) is None:
        app.state.engine = RebateEngine.from_settings(settings)
    yield


def _error(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(settings: AppSettings | None = None, engine: RebateEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass ``engine`` to run over pre-built stores (tests, local memory runs).
    """
    app = FastAPI(
        title="RebateFlow Incentive Accrual Engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or (engine.settings if engine else AppSettings())
    app.state.engine = engine

    app.add_exception_handler(NotFoundError, _error(404))
    app.add_exception_handler(InvalidStateError, _error(409))
    app.add_exception_handler(RulesValidationError, _error(422))
    app.add_exception_handler(ValueError, _error(422))

    app.include_router(health.router)
    app.include_router(admin.router, prefix="/admin")
    return app
