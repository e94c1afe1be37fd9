import asyncio

import pytest

from fieldops.cancellation import CancellationScope
from fieldops.errors import ErrorKind, OperationCancelled


async def test_run_returns_the_result() -> None:
    scope = CancellationScope("test")

    async def work() -> int:
        return 5

    assert await scope.run(work()) == 5
    assert scope.pending == 0


async def test_cancel_aborts_outstanding_calls() -> None:
    scope = CancellationScope("test")
    started = asyncio.Event()

    async def slow() -> None:
        started.set()
        await asyncio.sleep(30)

    waiter = asyncio.create_task(scope.run(slow()))
    await started.wait()

    assert scope.cancel() == 1
    with pytest.raises(OperationCancelled) as excinfo:
        await waiter
    assert excinfo.value.kind is ErrorKind.CANCELLED
    assert scope.cancelled


async def test_calls_after_cancel_fail_immediately() -> None:
    scope = CancellationScope("test")
    scope.cancel()
    ran = []

    async def work() -> None:
        ran.append(True)

    with pytest.raises(OperationCancelled):
        await scope.run(work())
    assert ran == []


async def test_cancelling_the_caller_is_not_swallowed() -> None:
    scope = CancellationScope("test")
    started = asyncio.Event()

    async def slow() -> None:
        started.set()
        await asyncio.sleep(30)

    waiter = asyncio.create_task(scope.run(slow()))
    await started.wait()
    waiter.cancel()

    with pytest.raises(asyncio.CancelledError):
        await waiter
