"""Tests for the inference concurrency gate."""

import asyncio

import pytest

from food_recognition.services.gate import ConcurrencyGate


def test_gate_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        ConcurrencyGate(0)


def test_gate_never_exceeds_limit_and_completes_all_calls() -> None:
    gate = ConcurrencyGate(3)
    inside = 0
    peak = 0

    async def work(index: int) -> int:
        nonlocal inside, peak
        inside += 1
        peak = max(peak, inside)
        await asyncio.sleep(0.01)
        inside -= 1
        return index

    async def scenario() -> list[int]:
        return await asyncio.gather(
            *(gate.run(lambda i=i: work(i)) for i in range(10))
        )

    results = asyncio.run(scenario())

    assert results == list(range(10))
    assert peak == 3
    assert gate.active == 0
    assert gate.queued == 0


def test_gate_admits_waiters_in_fifo_order() -> None:
    gate = ConcurrencyGate(1)
    order: list[str] = []

    async def waiter(name: str) -> None:
        async with gate.slot():
            order.append(name)

    async def scenario() -> None:
        await gate.acquire()
        tasks = []
        for name in ("first", "second", "third"):
            tasks.append(asyncio.create_task(waiter(name)))
            await asyncio.sleep(0)
        assert gate.queued == 3
        gate.release()
        await asyncio.gather(*tasks)

    asyncio.run(scenario())

    assert order == ["first", "second", "third"]


def test_released_slot_is_handed_to_waiter_not_newcomer() -> None:
    gate = ConcurrencyGate(1)
    order: list[str] = []

    async def worker(name: str) -> None:
        async with gate.slot():
            order.append(name)

    async def scenario() -> None:
        await gate.acquire()
        queued = asyncio.create_task(worker("queued"))
        await asyncio.sleep(0)
        gate.release()
        assert gate.active == 1
        newcomer = asyncio.create_task(worker("newcomer"))
        await asyncio.gather(queued, newcomer)

    asyncio.run(scenario())

    assert order == ["queued", "newcomer"]


def test_gate_releases_slot_when_work_fails() -> None:
    gate = ConcurrencyGate(1)

    async def failing() -> None:
        raise RuntimeError("upstream failed")

    async def scenario() -> None:
        with pytest.raises(RuntimeError):
            await gate.run(failing)
        assert gate.active == 0
        assert await gate.run(lambda: asyncio.sleep(0, result="ok")) == "ok"

    asyncio.run(scenario())


def test_cancelled_waiter_leaves_queue() -> None:
    gate = ConcurrencyGate(1)

    async def scenario() -> None:
        await gate.acquire()
        waiter = asyncio.create_task(gate.acquire())
        await asyncio.sleep(0)
        assert gate.queued == 1
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert gate.queued == 0
        gate.release()
        assert gate.active == 0

    asyncio.run(scenario())


def test_release_without_slot_is_an_error() -> None:
    with pytest.raises(RuntimeError):
        ConcurrencyGate(2).release()
