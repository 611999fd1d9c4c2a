# streampass/main.py
from __future__ import annotations

"""
# StreamPass API · Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the entitlement and
playback-source resolution engine.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- Middleware order: request id → gzip.
- Centralized exception handling: engine errors render as problem+json with a
  stable `code`.
- Graceful local/dev behavior (best-effort Redis connect, never crash on import).

## Probes
- `/healthz`: liveness (process up).
- `/readyz`: readiness (quick DB/Redis checks).
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

# Importing sets up Loguru handlers and the stdlib intercept.
from streampass.core import logger as _logsetup  # noqa: F401
from streampass.core.config import settings
from streampass.core.exception_handlers import (
    app_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from streampass.core.exceptions import AppException
from streampass.core.redis_client import redis_wrapper
from streampass.db.session import db_healthcheck, dispose_engine
from streampass.middleware.request_id import RequestIDMiddleware

logger = logging.getLogger("streampass")


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup:
        - Best-effort connect to Redis. Playback for rentals and cascades
          answer `UPSTREAM_UNAVAILABLE` until it is reachable.

    Shutdown:
        - Dispose the DB engine and close Redis.
    """
    logger.info("✅ StreamPass API starting up (env=%s)", settings.ENV)
    try:
        await redis_wrapper.connect()
    except RuntimeError:
        logger.exception("Redis connect failed (continuing in degraded mode)")

    try:
        yield
    finally:
        await dispose_engine()
        await redis_wrapper.close()
        logger.info("🛑 StreamPass API shutting down")


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
    )

    # ── Middlewares (order matters) ─────────────────────────────────────────
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(RequestIDMiddleware)  # outermost: correlation id for everything below

    # ── Exception handlers ──────────────────────────────────────────────────
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]

    # ── Routers (versioned API) ─────────────────────────────────────────────
    from streampass.api.v1.routers import router as api_v1_router

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/healthz", tags=["meta"])
    async def healthz() -> dict[str, bool]:
        """Liveness probe. No external checks."""
        return {"ok": True}

    @app.get("/readyz", tags=["meta"])
    async def readyz() -> JSONResponse:
        """Readiness probe: DB `SELECT 1` and Redis ping."""
        redis_ok = await redis_wrapper.is_connected()
        db_ok = await db_healthcheck()
        ready = db_ok and redis_ok
        return JSONResponse(
            {"ready": ready, "checks": {"db": db_ok, "redis": redis_ok}},
            status_code=200 if ready else 503,
        )

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "app"]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "streampass.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        log_level=os.getenv("LOG_LEVEL", "info"),
    )
