"""Generation-scoped cancellation.

A CancellationScope is allocated fresh for every accepted session.  It is
the only signal that stops that session's watcher and reader tasks, and
cancelling it can never be observed by a later generation's scope.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class ScopeCancelled(Exception):
    """Raised by CancellationScope.race() when the scope wins the race."""


class CancellationScope:
    """One-shot cancellation signal bound to a single session generation."""

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation.  Idempotent."""
        self._event.set()

    async def wait(self) -> None:
        """Block until the scope is cancelled."""
        await self._event.wait()

    async def race(self, aw: Awaitable[T]) -> T:
        """Await *aw* unless the scope is cancelled first.

        If cancellation wins, *aw* is cancelled and awaited before
        ScopeCancelled is raised, so no stray task outlives the call.
        """
        if self.cancelled:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise ScopeCancelled(f"generation {self.generation} cancelled")

        work = asyncio.ensure_future(aw)
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
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await work
        raise ScopeCancelled(f"generation {self.generation} cancelled")

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"<CancellationScope generation={self.generation} {state}>"
