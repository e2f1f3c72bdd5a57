"""Time-bounded result cache in front of the request queue.

Successful results are kept for the call's TTL.  Structured backend errors
are kept only for a short window so a failing backend is not hammered with
retries, yet is tried again soon; while such an entry is fresh, callers get
a fresh copy of the original error raised rather than a value.  Other errors are
never cached.

Staleness is checked lazily on read; nothing is evicted in the background.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from secdesk.config import get_settings
from secdesk.services.errors import RemoteRequestError, is_structured_remote_error
from secdesk.services.request_queue import OperationFactory, RequestQueue

logger = logging.getLogger(__name__)

QUEUE_KEY_PREFIX = "request_"


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    effective_ttl: float
    # Never raised itself; each fresh hit raises a copy
    error: RemoteRequestError | None = None

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.effective_ttl


class RequestCache:
    """Per-key result memory routed through a :class:`RequestQueue`."""

    def __init__(
        self,
        queue: RequestQueue,
        ttl: float = 30.0,
        error_window: float = 5.0,
        min_error_ttl: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_error_ttl <= 0:
            raise ValueError("min_error_ttl must be positive")
        self._queue = queue
        self._ttl = ttl
        self._error_window = error_window
        self._min_error_ttl = min_error_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def error_ttl(self, ttl: float) -> float:
        """TTL for an error entry: the short window, never above *ttl*, never <= 0."""
        return max(min(ttl, self._error_window), self._min_error_ttl)

    def peek(self, key: str) -> CacheEntry | None:
        """Return the fresh entry for *key* without touching the queue."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry

    async def get(
        self, key: str, factory: OperationFactory, ttl: float | None = None
    ) -> Any:
        """Return the cached value for *key*, or run *factory* through the queue.

        Args:
            key: Identifies the operation; equal keys must be safe to share.
            factory: Zero-argument callable returning an awaitable.
            ttl: Seconds to keep a successful result (defaults to the cache TTL).
        """
        ttl = self._ttl if ttl is None else ttl

        entry = self.peek(key)
        if entry is not None:
            if entry.error is not None:
                logger.debug("Cached error for %s", key)
                raise entry.error.copy()
            logger.debug("Cache hit for %s", key)
            return entry.value

        try:
            value = await self._queue.enqueue(QUEUE_KEY_PREFIX + key, factory)
        except Exception as exc:
            if is_structured_remote_error(exc):
                error_ttl = self.error_ttl(ttl)
                self._entries[key] = CacheEntry(
                    value=exc.cache_payload(),
                    stored_at=self._clock(),
                    effective_ttl=error_ttl,
                    error=exc.copy(),
                )
                logger.warning(
                    "Request %s failed, backing off for %.1fs: %s", key, error_ttl, exc
                )
            raise

        self._entries[key] = CacheEntry(
            value=value, stored_at=self._clock(), effective_ttl=ttl
        )
        return value

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with *prefix*; return how many."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()


# Process-wide instance (created lazily, lives for the process lifetime)
_request_cache: RequestCache | None = None


def build_request_cache() -> RequestCache:
    """Construct a cache and its queue from the current settings."""
    settings = get_settings()
    queue = RequestQueue(
        max_concurrent=settings.queue_max_concurrent,
        processing_delay=settings.queue_processing_delay,
    )
    return RequestCache(
        queue,
        ttl=settings.cache_ttl,
        error_window=settings.cache_error_window,
        min_error_ttl=settings.cache_min_error_ttl,
    )


def get_request_cache() -> RequestCache:
    """Return the shared RequestCache, creating it on first call."""
    global _request_cache
    if _request_cache is None:
        _request_cache = build_request_cache()
    return _request_cache
