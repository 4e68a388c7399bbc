"""Cooperative cancellation for in-flight operations."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable
from typing import TypeVar

from wallet_cli.exceptions import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation flag shared by the session and the executor.

    Cancellation is cooperative: nothing is interrupted until the holder
    checks the token, either explicitly with :meth:`raise_if_cancelled`
    or by racing an awaitable against it with :meth:`guard`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation (idempotent)."""
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the token fires first.

        When the token fires first the awaitable's task is cancelled and
        awaited, then :class:`OperationCancelled` is raised.
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled("operation cancelled")
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, OperationCancelled):
            pass
        raise OperationCancelled("operation cancelled")
