"""Cancellation scope owned by a workflow instance."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from .errors import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationScope:
    """Tracks the in-flight calls of one workflow so teardown can abort them all.

    Calls are routed through :meth:`run`. After :meth:`cancel`, every tracked
    call is cancelled and raises :class:`OperationCancelled` in its awaiter,
    and new calls fail immediately with the same error.
    """

    def __init__(self, name: str = "scope") -> None:
        self.name = name
        self._tasks: set[asyncio.Task] = set()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def run(self, awaitable: Awaitable[T]) -> T:
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(f"{self.name} was cancelled")

        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._cancelled and (current is None or not current.cancelling()):
                raise OperationCancelled(f"{self.name} was cancelled") from None
            raise
        finally:
            self._tasks.discard(task)

    def cancel(self) -> int:
        """Abort every outstanding call; returns how many were still running."""
        self._cancelled = True
        outstanding = [task for task in self._tasks if not task.done()]
        for task in outstanding:
            task.cancel()
        if outstanding:
            logger.debug(f"Cancelled {len(outstanding)} outstanding call(s) in {self.name}")
        return len(outstanding)
