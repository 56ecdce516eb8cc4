"""Shared fakes and fixtures for kubeinvaders tests.

None of the tests need a Kubernetes cluster or a real network socket:
FakeSocket stands in for starlette's WebSocket, FakeCluster for the
ClusterClient, and FakeSubscription for a PodSubscription whose events the
test pushes by hand.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest
from fastapi import WebSocketDisconnect

from kubeinvaders.errors import ListError, WatchSetupError
from kubeinvaders.models.cluster import EventKind, WatchCursor, WatchEvent
from kubeinvaders.models.messages import PodSnapshot
from kubeinvaders.relay.manager import ConnectionManager

# ---------------------------------------------------------------------------
# Pod / event factory helpers
# ---------------------------------------------------------------------------


def make_pod(name: str = "web-7f9c-abcde", namespace: str = "default", phase: str = "Running") -> PodSnapshot:
    """Create a PodSnapshot with a minimal status block."""
    return PodSnapshot(namespace=namespace, name=name, status={"phase": phase})


def make_raw_pod(name: str, namespace: str = "default", rv: str = "1", phase: str = "Running") -> dict[str, Any]:
    """Return a raw Pod dict as it appears in list bodies and watch events."""
    return {
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": rv},
        "spec": {"containers": [{"name": "app", "image": "nginx:latest"}]},
        "status": {"phase": phase},
    }


def make_event(kind: EventKind, pod: PodSnapshot | None = None, cursor: WatchCursor = "101") -> WatchEvent:
    return WatchEvent(kind=kind, pod=pod, cursor=cursor)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it is true or fail the test after *timeout*."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeSocket:
    """In-memory stand-in for a starlette WebSocket."""

    def __init__(self, fail_accept: bool = False) -> None:
        self.fail_accept = fail_accept
        self.fail_send = False
        self.accepted = False
        self.closed = False
        self.frames: list[str] = []
        self._inbound: asyncio.Queue[str | None] = asyncio.Queue()

    async def accept(self) -> None:
        if self.fail_accept:
            raise RuntimeError("upgrade refused")
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.closed:
            raise RuntimeError("Cannot call 'send' once a close message has been sent.")
        if self.fail_send:
            raise ConnectionResetError("broken pipe")
        # the transport writes UTF-8 text frames
        data.encode("utf-8")
        self.frames.append(data)

    async def receive_text(self) -> str:
        item = await self._inbound.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self._inbound.put_nowait(None)

    # --- test helpers -----------------------------------------------------

    def push(self, frame: str | dict[str, Any]) -> None:
        """Queue an inbound frame from the client."""
        self._inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def disconnect(self) -> None:
        """Simulate the client going away."""
        self._inbound.put_nowait(None)

    @property
    def sent(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.frames]

    def types(self) -> list[str]:
        return [msg["type"] for msg in self.sent]


class FakeSubscription:
    """PodSubscription whose events are pushed by the test."""

    def __init__(self, cursor: WatchCursor) -> None:
        self.cursor = cursor
        self.stopped = False
        self._queue: asyncio.Queue[WatchEvent | Exception | None] = asyncio.Queue()

    def push(self, event: WatchEvent) -> None:
        self._queue.put_nowait(event)

    def end(self) -> None:
        """Simulate the stream closing for good."""
        self._queue.put_nowait(None)

    def fail(self, exc: Exception) -> None:
        """Make the next read raise *exc*."""
        self._queue.put_nowait(exc)

    async def next_event(self) -> WatchEvent | None:
        if self.stopped:
            return None
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def stop(self) -> None:
        self.stopped = True


class FakeCluster:
    """ClusterClient stand-in recording list and watch calls."""

    def __init__(
        self,
        pods: list[PodSnapshot] | None = None,
        cursor: WatchCursor = "100",
        list_error: Exception | None = None,
        watch_error: Exception | None = None,
    ) -> None:
        self.pods = pods if pods is not None else [make_pod("web-1"), make_pod("web-2")]
        self.cursor = cursor
        self.list_error = list_error
        self.watch_error = watch_error
        self.list_calls: list[str] = []
        self.watch_cursors: list[WatchCursor] = []
        self.subscriptions: list[FakeSubscription] = []

    async def list_pods(self, namespace: str = "") -> tuple[list[PodSnapshot], WatchCursor]:
        self.list_calls.append(namespace)
        if self.list_error is not None:
            raise self.list_error
        return list(self.pods), self.cursor

    def watch_pods(self, cursor: WatchCursor, timeout_seconds: int = 300, namespace: str = "") -> FakeSubscription:
        self.watch_cursors.append(cursor)
        if self.watch_error is not None:
            raise self.watch_error
        subscription = FakeSubscription(cursor)
        self.subscriptions.append(subscription)
        return subscription


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def failing_list_cluster() -> FakeCluster:
    return FakeCluster(list_error=ListError("failed to list pods: 503 Service Unavailable"))


@pytest.fixture
def failing_watch_cluster() -> FakeCluster:
    return FakeCluster(watch_error=WatchSetupError("invalid initial cursor ''"))


@pytest.fixture
async def manager(cluster: FakeCluster):
    mgr = ConnectionManager(cluster)
    yield mgr
    await mgr.close()
