"""Async fan-out and timeout primitives used by the guardrail orchestrator."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Sequence

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Run awaitables with bounded concurrency.

    ``run`` yields ``(index, value)`` pairs as tasks finish; ``gather`` joins all of them and
    restores submission order. The first task exception cancels the remaining tasks and is
    re-raised.
    """

    max_concurrency: int
    cancel_token: CancellationToken | None = None
    _token: CancellationToken = field(init=False, repr=False)
    _semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._token = self.cancel_token or CancellationToken()
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def run(self, awaitables: Sequence[Awaitable[T]]) -> AsyncIterator[tuple[int, T]]:
        tasks: dict[asyncio.Task[T], int] = {}
        for index, awaitable in enumerate(awaitables):
            self._token.raise_if_cancelled()
            tasks[asyncio.create_task(self._run_one(awaitable))] = index

        pending = set(tasks)
        try:
            while pending:
                self._token.raise_if_cancelled()
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=tasks.__getitem__):
                    if task.cancelled():
                        raise asyncio.CancelledError("worker task cancelled")
                    exc = task.exception()
                    if exc is not None:
                        await _cancel_all(pending)
                        raise exc
                    yield tasks[task], task.result()
        except asyncio.CancelledError:
            await _cancel_all(pending)
            raise

    async def gather(self, awaitables: Sequence[Awaitable[T]]) -> list[T]:
        collected: dict[int, T] = {}
        async for index, value in self.run(awaitables):
            collected[index] = value
        return [collected[index] for index in sorted(collected)]

    async def _run_one(self, awaitable: Awaitable[T]) -> T:
        async with self._semaphore:
            self._token.raise_if_cancelled()
            return await awaitable


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``awaitable`` for at most ``timeout_seconds``; raise ``TimeoutError`` past that."""

    if timeout_seconds <= 0:
        _close_unscheduled(awaitable)
        raise ValueError("timeout_seconds must be > 0")

    token = cancel_token or CancellationToken()
    if token.is_cancelled:
        _close_unscheduled(awaitable)
        raise asyncio.CancelledError("operation cancelled")

    task: asyncio.Task[T] = asyncio.ensure_future(awaitable)
    cancel_wait = asyncio.create_task(token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait},
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if task in done:
            return task.result()

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        if cancel_wait in done:
            raise asyncio.CancelledError("operation cancelled")
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    finally:
        cancel_wait.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait


async def _cancel_all(tasks: set[asyncio.Task[T]]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


def _close_unscheduled(awaitable: Awaitable[object]) -> None:
    # Raw coroutine objects must be closed or CPython warns "never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "WorkerPool",
    "run_with_timeout",
]
