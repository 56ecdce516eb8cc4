"""The single live client session."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

from kubeinvaders.models.scope import CancellationScope


class Socket(Protocol):
    """The subset of starlette's WebSocket the relay depends on."""

    async def accept(self) -> None: ...

    async def send_text(self, data: str) -> None: ...

    async def receive_text(self) -> str: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass
class Session:
    """State of one accepted connection.

    Only ConnectionManager mutates a Session, and only while holding its
    lock.  A new connection always gets a new Session; fields of a
    published Session are never reassigned except by teardown.
    """

    socket: Socket | None
    scope: CancellationScope
    connected: bool = True
    tasks: list[asyncio.Task[Any]] = field(default_factory=list)

    @property
    def generation(self) -> int:
        return self.scope.generation

    async def wait_closed(self) -> None:
        """Block until the session has been torn down and its tasks finished."""
        await self.scope.wait()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
