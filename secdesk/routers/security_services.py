"""Security services catalogue, permissions, and cache control endpoints."""

import logging

import httpx
from fastapi import APIRouter, HTTPException

from secdesk.services.errors import RemoteRequestError
from secdesk.services.security_services import (
    clear_caches,
    get_available_services,
    get_user_service_permissions,
    invalidate_cache,
)

router = APIRouter(tags=["security-services"])
logger = logging.getLogger(__name__)


def _backend_failure(exc: Exception) -> HTTPException:
    if isinstance(exc, RemoteRequestError):
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    logger.error("Backend unreachable: %s", exc)
    return HTTPException(status_code=502, detail="Backend unavailable")


@router.get("/security-services")
async def list_services():
    """List the security services the desk offers."""
    try:
        return await get_available_services()
    except (RemoteRequestError, httpx.HTTPError) as e:
        raise _backend_failure(e) from e


@router.get("/security-services/permissions/{user_id}")
async def user_permissions(user_id: str):
    """Services a given user may raise requests for."""
    try:
        return await get_user_service_permissions(user_id)
    except (RemoteRequestError, httpx.HTTPError) as e:
        raise _backend_failure(e) from e


@router.delete("/security-services/cache", status_code=204)
async def invalidate_services_cache(user_id: str | None = None) -> None:
    """Forget cached catalogue and permissions (one user's, or all)."""
    invalidate_cache(user_id)


@router.post("/cache/clear", status_code=204)
async def clear_all_caches() -> None:
    """Forget every cached backend response."""
    clear_caches()
