"""Shared HTTP client utilities for the desk REST backend."""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from secdesk.config import get_settings
from secdesk.services.errors import RemoteRequestError
from secdesk.services.request_cache import RequestCache, get_request_cache

logger = logging.getLogger(__name__)

# Module-level shared client (created lazily, lives for the process lifetime)
_client: httpx.AsyncClient | None = None


def get_shared_client() -> httpx.AsyncClient:
    """Return a shared httpx.AsyncClient, creating it on first call."""
    global _client
    if _client is None or _client.is_closed:
        settings = get_settings()
        _client = httpx.AsyncClient(
            base_url=settings.backend_api_url,
            timeout=settings.backend_timeout,
        )
    return _client


async def close_shared_client() -> None:
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
    _client = None


def backend_headers() -> dict[str, str]:
    """Build standard backend request headers.

    Includes the Authorization header only when a token is configured.
    """
    settings = get_settings()
    headers: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if settings.backend_api_token:
        headers["Authorization"] = f"Bearer {settings.backend_api_token}"
    return headers


def _error_payload(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {"error": resp.text or resp.reason_phrase}
    if isinstance(data, dict):
        return data
    return {"error": str(data)}


async def backend_get(path: str, params: dict[str, str] | None = None) -> Any:
    """GET a backend endpoint and return its parsed JSON body.

    Raises:
        RemoteRequestError: the backend answered with a non-2xx status.
        httpx.HTTPError: the request never got a response.
    """
    client = get_shared_client()
    resp = await client.get(path, headers=backend_headers(), params=params)
    if not resp.is_success:
        logger.warning("Backend API %d for %s", resp.status_code, path)
        raise RemoteRequestError(resp.status_code, _error_payload(resp), url=path)
    return resp.json()


def cache_key(path: str, params: dict[str, str] | None = None) -> str:
    """Stable cache key for a GET; parameter order does not matter."""
    if not params:
        return path
    return f"{path}?{urlencode(sorted(params.items()))}"


async def cached_backend_get(
    path: str,
    params: dict[str, str] | None = None,
    *,
    ttl: float | None = None,
    cache: RequestCache | None = None,
) -> Any:
    """``backend_get`` through the request cache (and therefore the queue)."""
    if cache is None:
        cache = get_request_cache()
    return await cache.get(
        cache_key(path, params), lambda: backend_get(path, params), ttl
    )
