"""
Security Services Desk API

Thin FastAPI backend between the desk UI and its REST backend: cached,
concurrency-limited backend reads plus request intake helpers.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from secdesk.config import get_settings
from secdesk.middleware import (
    RequestIDLogFilter,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from secdesk.routers import intake, security_services
from secdesk.services.http_client import close_shared_client
from secdesk.services.request_cache import get_request_cache

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

settings = get_settings()


def configure_logging(level: str = "INFO") -> None:
    """Log to stderr with the request ID on every line."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestIDLogFilter())
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    configure_logging("DEBUG" if settings.debug else settings.log_level)
    # Build the shared cache/queue up front so config errors surface at boot
    get_request_cache()
    yield
    await close_shared_client()


app = FastAPI(
    title="Security Services Desk API",
    description="Request intake helpers and cached backend access for the security desk",
    version=VERSION,
    lifespan=lifespan,
)

# Starlette runs the last-added middleware first
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# Routers
app.include_router(security_services.router, prefix="/api/desk")
app.include_router(intake.router, prefix="/api/desk")


def _check_config() -> str:
    """Verify required configuration is loaded. Returns 'ok' or 'fail'."""
    s = get_settings()
    if s.backend_api_url and s.queue_max_concurrent >= 1:
        return "ok"
    return "fail"


def _run_health_checks() -> dict[str, Any]:
    """Run all health checks, returning the full response body."""
    config_status = _check_config()
    cache = get_request_cache()
    checks = {"config": config_status}
    failed = [k for k, v in checks.items() if v != "ok"]

    if failed:
        overall = "degraded"
        logger.warning("Health check degraded, failed: %s", ", ".join(failed))
    else:
        overall = "ok"

    return {
        "status": overall,
        "service": "secdesk-api",
        "version": VERSION,
        "checks": checks,
        "queue": {
            "in_flight": cache.queue.in_flight_count,
            "waiting": cache.queue.waiting_count,
            "max_concurrent": cache.queue.max_concurrent,
        },
        "cache": {"entries": len(cache)},
    }


@app.get("/api/desk/health")
async def health_check() -> JSONResponse:
    """Health check with queue and cache occupancy."""
    result = _run_health_checks()
    status_code = 200 if result["status"] in ("ok", "degraded") else 503
    return JSONResponse(content=result, status_code=status_code)
