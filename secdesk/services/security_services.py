"""Security services catalogue and per-user service permissions.

Both lookups go through the shared request cache with a 5-minute TTL, so
the desk UI can poll them freely.
"""

import logging
from typing import Any
from urllib.parse import quote

from secdesk.config import get_settings
from secdesk.services.http_client import cache_key, cached_backend_get
from secdesk.services.request_cache import get_request_cache

logger = logging.getLogger(__name__)

SERVICES_PATH = "/security-services"
PERMISSIONS_PATH = "/security-services/permissions"


def _permissions_path(user_id: str) -> str:
    return f"{PERMISSIONS_PATH}/{quote(user_id, safe='')}"


async def get_available_services() -> Any:
    """Return the catalogue of security services offered by the desk."""
    return await cached_backend_get(
        SERVICES_PATH, ttl=get_settings().security_services_cache_ttl
    )


async def get_user_service_permissions(user_id: str) -> Any:
    """Return which security services *user_id* may raise requests for."""
    if not user_id:
        raise ValueError("user_id is required")
    return await cached_backend_get(
        _permissions_path(user_id),
        ttl=get_settings().security_services_cache_ttl,
    )


def invalidate_cache(user_id: str | None = None) -> None:
    """Drop the cached catalogue plus one user's permissions (or everyone's)."""
    cache = get_request_cache()
    cache.invalidate(cache_key(SERVICES_PATH))
    if user_id:
        cache.invalidate(cache_key(_permissions_path(user_id)))
        return
    dropped = cache.invalidate_prefix(PERMISSIONS_PATH + "/")
    logger.debug("Invalidated %d cached permission lookups", dropped)


def clear_caches() -> None:
    """Empty every cached backend response."""
    get_request_cache().clear()
    logger.info("All service caches cleared")
