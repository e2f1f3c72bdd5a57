"""Tests for RequestQueue: concurrency cap, merging, FIFO dispatch."""

import asyncio

import pytest

from secdesk.services.request_queue import RequestQueue


def _gated(gate: asyncio.Event, started: list[str], name: str, result=None):
    async def op():
        started.append(name)
        await gate.wait()
        return result if result is not None else name

    return op


async def _settle(rounds: int = 3) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestConstruction:
    def test_defaults(self):
        queue = RequestQueue()
        assert queue.max_concurrent == 3
        assert queue.in_flight_count == 0
        assert queue.waiting_count == 0

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            RequestQueue(max_concurrent=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValueError):
            RequestQueue(processing_delay=-1)

    async def test_rejects_empty_key(self):
        queue = RequestQueue()

        async def op():
            return 1

        with pytest.raises(ValueError):
            await queue.enqueue("", op)


class TestConcurrencyCap:
    async def test_never_exceeds_max_concurrent(self):
        queue = RequestQueue(max_concurrent=2, processing_delay=0)
        running = 0
        peak = 0

        async def op(i):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return i

        results = await asyncio.gather(
            *(queue.enqueue(f"k{i}", lambda i=i: op(i)) for i in range(7))
        )

        assert results == list(range(7))
        assert peak == 2
        assert queue.in_flight_count == 0
        assert queue.waiting_count == 0

    async def test_excess_requests_wait(self):
        queue = RequestQueue(max_concurrent=1, processing_delay=0)
        gate = asyncio.Event()
        started: list[str] = []

        first = asyncio.create_task(queue.enqueue("a", _gated(gate, started, "a")))
        second = asyncio.create_task(queue.enqueue("b", _gated(gate, started, "b")))
        await _settle()

        assert queue.in_flight_count == 1
        assert queue.waiting_count == 1
        assert started == ["a"]

        gate.set()
        assert await asyncio.gather(first, second) == ["a", "b"]


class TestDeduplication:
    async def test_same_key_invokes_factory_once(self):
        queue = RequestQueue()
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"services": ["sim-swap"]}

        r1, r2 = await asyncio.gather(queue.enqueue("k", op), queue.enqueue("k", op))

        assert calls == 1
        assert r1 is r2

    async def test_merged_callers_get_the_same_exception(self):
        queue = RequestQueue()
        error = RuntimeError("backend down")

        async def op():
            await asyncio.sleep(0)
            raise error

        results = await asyncio.gather(
            queue.enqueue("k", op), queue.enqueue("k", op), return_exceptions=True
        )

        assert results[0] is error
        assert results[1] is error
        assert not queue.is_in_flight("k")

    async def test_finished_key_runs_again(self):
        """A call after completion never merges with the finished operation."""
        queue = RequestQueue()
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            return calls

        assert await queue.enqueue("k", op) == 1
        assert await queue.enqueue("k", op) == 2
        assert not queue.is_in_flight("k")

    async def test_waiting_duplicate_joins_in_flight_call(self):
        queue = RequestQueue(max_concurrent=2, processing_delay=0.01)
        gate_x, gate_y, gate_k = asyncio.Event(), asyncio.Event(), asyncio.Event()
        started: list[str] = []
        task_x = asyncio.create_task(queue.enqueue("x", _gated(gate_x, started, "x")))
        task_y = asyncio.create_task(queue.enqueue("y", _gated(gate_y, started, "y")))
        await _settle()

        calls = 0

        async def k_op():
            nonlocal calls
            calls += 1
            await gate_k.wait()
            return "k"

        k1 = asyncio.create_task(queue.enqueue("k", k_op))
        k2 = asyncio.create_task(queue.enqueue("k", k_op))
        await _settle()
        assert queue.waiting_count == 2

        gate_x.set()
        await task_x  # frees a slot: first "k" starts
        gate_y.set()
        await task_y  # the drain timer owns this slot
        await asyncio.sleep(0.05)  # drain: second "k" joins the first
        assert queue.waiting_count == 0
        assert not queue.drain_pending

        gate_k.set()
        assert await asyncio.gather(k1, k2) == ["k", "k"]
        assert calls == 1


class TestFifo:
    async def test_waiting_requests_start_in_arrival_order(self):
        queue = RequestQueue(max_concurrent=1, processing_delay=0)
        gate = asyncio.Event()
        started: list[str] = []

        tasks = [asyncio.create_task(queue.enqueue("x", _gated(gate, started, "x")))]
        await _settle()
        for name in ("a", "b", "c"):
            tasks.append(
                asyncio.create_task(queue.enqueue(name, _gated(gate, started, name)))
            )
        await _settle()
        assert queue.waiting_count == 3

        gate.set()
        await asyncio.gather(*tasks)

        assert started == ["x", "a", "b", "c"]

    async def test_failure_still_dispatches_next(self):
        queue = RequestQueue(max_concurrent=1, processing_delay=0)

        async def boom():
            await asyncio.sleep(0)
            raise ValueError("bad request")

        async def ok():
            return "ok"

        results = await asyncio.gather(
            queue.enqueue("a", boom), queue.enqueue("b", ok), return_exceptions=True
        )

        assert isinstance(results[0], ValueError)
        assert results[1] == "ok"


class TestPacedDrain:
    async def test_simultaneous_completions_are_paced(self):
        queue = RequestQueue(max_concurrent=2, processing_delay=0.2)
        loop = asyncio.get_running_loop()
        gate = asyncio.Event()
        started: list[str] = []
        start_times: dict[str, float] = {}

        def timed(name):
            async def op():
                start_times[name] = loop.time()
                return name

            return op

        running = [
            asyncio.create_task(queue.enqueue(name, _gated(gate, started, name)))
            for name in ("x", "y")
        ]
        await _settle()
        waiting = [
            asyncio.create_task(queue.enqueue(name, timed(name))) for name in ("a", "b", "c")
        ]
        await _settle()
        assert queue.waiting_count == 3

        gate.set()  # x and y free both slots in the same tick
        await _settle(5)

        assert list(start_times) == ["a"]
        assert queue.waiting_count == 2
        assert queue.drain_pending

        assert await asyncio.gather(*running, *waiting) == ["x", "y", "a", "b", "c"]
        assert start_times["b"] - start_times["a"] >= 0.18
        assert start_times["c"] - start_times["b"] >= 0.18
        assert queue.waiting_count == 0
        assert not queue.drain_pending

    async def test_completion_dispatches_immediately_when_no_drain_pending(self):
        queue = RequestQueue(max_concurrent=1, processing_delay=10.0)
        gate = asyncio.Event()
        started: list[str] = []

        first = asyncio.create_task(queue.enqueue("x", _gated(gate, started, "x")))
        await _settle()
        second = asyncio.create_task(queue.enqueue("a", _gated(gate, started, "a")))
        await _settle()

        gate.set()
        assert await asyncio.wait_for(asyncio.gather(first, second), 1.0) == ["x", "a"]
        assert not queue.drain_pending


class TestCancellation:
    async def test_cancelled_caller_does_not_cancel_shared_operation(self):
        queue = RequestQueue()
        gate = asyncio.Event()
        started: list[str] = []
        op = _gated(gate, started, "k", result="done")

        first = asyncio.create_task(queue.enqueue("k", op))
        second = asyncio.create_task(queue.enqueue("k", op))
        await _settle()

        first.cancel()
        gate.set()

        assert await second == "done"
        with pytest.raises(asyncio.CancelledError):
            await first
        assert started == ["k"]
