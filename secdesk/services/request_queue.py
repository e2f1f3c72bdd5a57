"""Concurrency-limited request queue with in-flight de-duplication.

At most ``max_concurrent`` operations run at once.  Extra requests wait in
arrival order and are drained as slots free up, one immediately after each
completion and the rest after ``processing_delay`` seconds to smooth bursts.
A request whose key is already running is merged into that call instead of
starting a second one.

Usage::

    queue = RequestQueue(max_concurrent=3)
    data = await queue.enqueue("services", lambda: client.get("/services"))
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

OperationFactory = Callable[[], Awaitable[Any]]


@dataclass
class QueueEntry:
    """A request admitted to the queue but not necessarily started."""

    key: str
    factory: OperationFactory
    future: asyncio.Future[Any]


def _chain(source: asyncio.Future[Any], target: asyncio.Future[Any]) -> None:
    """Resolve *target* with whatever *source* ends up with."""

    def _copy_outcome(done: asyncio.Future[Any]) -> None:
        if target.done():
            return
        if done.cancelled():
            target.cancel()
        elif done.exception() is not None:
            target.set_exception(done.exception())
        else:
            target.set_result(done.result())

    source.add_done_callback(_copy_outcome)


class RequestQueue:
    """FIFO admission control for keyed async operations.

    All state is mutated from the event loop between awaits, so no locks
    are needed.  Admitted operations cannot be cancelled: a caller that
    stops waiting leaves the shared operation running for everyone else.
    """

    def __init__(self, max_concurrent: int = 3, processing_delay: float = 0.3) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if processing_delay < 0:
            raise ValueError("processing_delay must not be negative")
        self._max_concurrent = max_concurrent
        self._processing_delay = processing_delay
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._waiting: deque[QueueEntry] = deque()
        # Strong refs so running tasks are not garbage collected
        self._tasks: set[asyncio.Task[None]] = set()
        self._drain_handle: asyncio.TimerHandle | None = None

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def waiting_count(self) -> int:
        return len(self._waiting)

    @property
    def drain_pending(self) -> bool:
        return self._drain_handle is not None

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def enqueue(self, key: str, factory: OperationFactory) -> Any:
        """Run ``factory()`` under the concurrency limit and return its result.

        If *key* is already running, the caller shares that call's outcome
        and *factory* is never invoked.  Exceptions raised by the factory
        propagate unchanged to every caller waiting on it.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            logger.debug("Merging request %s into in-flight call", key)
            return await asyncio.shield(in_flight)

        entry = QueueEntry(key, factory, asyncio.get_running_loop().create_future())
        if len(self._in_flight) >= self._max_concurrent:
            self._waiting.append(entry)
            logger.debug(
                "Deferring request %s (%d in flight, %d waiting)",
                key,
                len(self._in_flight),
                len(self._waiting),
            )
        else:
            self._start(entry)
        return await asyncio.shield(entry.future)

    def _start(self, entry: QueueEntry) -> None:
        self._in_flight[entry.key] = entry.future
        task = asyncio.get_running_loop().create_task(self._execute(entry))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, entry: QueueEntry) -> None:
        try:
            result = await entry.factory()
        except asyncio.CancelledError:
            entry.future.cancel()
            raise
        except Exception as exc:
            entry.future.set_exception(exc)
            # Mark retrieved; waiters still receive the exception
            entry.future.exception()
        else:
            entry.future.set_result(result)
        finally:
            # Removed before any follow-up dispatch so a new caller for the
            # same key never merges with a finished call.
            if self._in_flight.get(entry.key) is entry.future:
                del self._in_flight[entry.key]
            self._on_complete()

    def _on_complete(self) -> None:
        # A pending drain timer means a dispatch happened recently; leave
        # the freed slot to the timer.
        if self._drain_handle is None:
            self._dispatch_next()
            self._schedule_drain()

    def _dispatch_next(self) -> bool:
        """Start the oldest waiting entry if a slot is free."""
        while self._waiting and len(self._in_flight) < self._max_concurrent:
            entry = self._waiting.popleft()
            in_flight = self._in_flight.get(entry.key)
            if in_flight is not None:
                # Same key started while this one waited; share its outcome.
                logger.debug("Joining waiting request %s to in-flight call", entry.key)
                _chain(in_flight, entry.future)
                continue
            logger.debug("Dispatching queued request %s", entry.key)
            self._start(entry)
            return True
        return False

    def _schedule_drain(self) -> None:
        if self._waiting and self._drain_handle is None:
            self._drain_handle = asyncio.get_running_loop().call_later(
                self._processing_delay, self._drain
            )

    def _drain(self) -> None:
        self._drain_handle = None
        # Saturated: the next completion dispatches instead
        if self._dispatch_next():
            self._schedule_drain()
