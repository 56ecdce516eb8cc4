"""Unit tests for ConnectionManager: accept, replace, send, teardown, reader loop."""

from __future__ import annotations

import asyncio

import pytest

from kubeinvaders.errors import NotConnected, SendFailed
from kubeinvaders.models.cluster import EventKind
from kubeinvaders.models.messages import Message
from kubeinvaders.models.scope import CancellationScope
from kubeinvaders.relay.manager import ConnectionManager
from tests.conftest import FakeCluster, FakeSocket, make_event, make_pod, wait_until

# ---------------------------------------------------------------------------
# Accept
# ---------------------------------------------------------------------------


class TestAccept:
    async def test_accept_sends_connected_then_pod_list(self, manager: ConnectionManager) -> None:
        socket = FakeSocket()
        session = await manager.accept(socket)

        assert session is not None
        assert socket.accepted
        await wait_until(lambda: len(socket.frames) >= 2)
        assert socket.types()[:2] == ["connected", "podList"]
        assert socket.sent[0]["payload"] == {"message": "Connected to the game server"}
        assert manager.connected
        assert manager.generation == 1

    async def test_upgrade_failure_leaves_state_untouched(self, manager: ConnectionManager) -> None:
        first = FakeSocket()
        await manager.accept(first)
        scope_before = manager.current_scope

        result = await manager.accept(FakeSocket(fail_accept=True))

        assert result is None
        assert manager.generation == 1
        assert manager.current_scope is scope_before
        assert not first.closed

    async def test_upgrade_failure_without_session(self, manager: ConnectionManager) -> None:
        assert await manager.accept(FakeSocket(fail_accept=True)) is None
        assert not manager.connected
        assert manager.generation == 0

    async def test_each_session_gets_a_fresh_scope(self, manager: ConnectionManager) -> None:
        first = await manager.accept(FakeSocket())
        second = await manager.accept(FakeSocket())

        assert first is not None and second is not None
        assert first.scope is not second.scope
        assert (first.generation, second.generation) == (1, 2)


# ---------------------------------------------------------------------------
# Replacement
# ---------------------------------------------------------------------------


class TestReplacement:
    async def test_new_connection_closes_old_socket_and_cancels_old_scope(
        self, manager: ConnectionManager
    ) -> None:
        old_socket, new_socket = FakeSocket(), FakeSocket()
        old = await manager.accept(old_socket)
        new = await manager.accept(new_socket)

        assert old is not None and new is not None
        assert old_socket.closed
        assert old.scope.cancelled
        assert not old.connected
        assert not new.scope.cancelled
        assert manager.current_scope is new.scope
        assert not new_socket.closed

    async def test_at_most_one_session_is_connected(self, manager: ConnectionManager) -> None:
        sockets = [FakeSocket() for _ in range(6)]
        sessions = []
        for socket in sockets:
            sessions.append(await manager.accept(socket))
            assert sum(1 for s in sessions if s is not None and s.connected) == 1
            assert sum(1 for s in sockets[: len(sessions)] if not s.closed) == 1

    async def test_old_generation_events_never_reach_any_client(
        self, manager: ConnectionManager, cluster: FakeCluster
    ) -> None:
        old_socket = FakeSocket()
        await manager.accept(old_socket)
        await wait_until(lambda: len(cluster.subscriptions) == 1)
        old_sub = cluster.subscriptions[0]

        new_socket = FakeSocket()
        await manager.accept(new_socket)
        await wait_until(lambda: len(cluster.subscriptions) == 2)
        frames_before = list(new_socket.frames)

        old_sub.push(make_event(EventKind.ADDED, make_pod("stale"), cursor="999"))
        await wait_until(lambda: old_sub.stopped)
        await asyncio.sleep(0.01)

        assert "podAdded" not in old_socket.types()
        assert new_socket.frames == frames_before

    async def test_new_generation_gets_its_own_pod_list(
        self, manager: ConnectionManager, cluster: FakeCluster
    ) -> None:
        await manager.accept(FakeSocket())
        await wait_until(lambda: len(cluster.subscriptions) == 1)
        cluster.cursor = "200"

        new_socket = FakeSocket()
        await manager.accept(new_socket)
        await wait_until(lambda: len(cluster.subscriptions) == 2)

        cluster.subscriptions[-1].push(make_event(EventKind.ADDED, make_pod("fresh"), cursor="201"))
        await wait_until(lambda: "podAdded" in new_socket.types())

        assert new_socket.types() == ["connected", "podList", "podAdded"]
        assert len(cluster.list_calls) == 2
        assert cluster.watch_cursors[-1] == "200"

    async def test_replacement_before_first_list_skips_the_old_generation(
        self, manager: ConnectionManager, cluster: FakeCluster
    ) -> None:
        await manager.accept(FakeSocket())
        new_socket = FakeSocket()
        await manager.accept(new_socket)
        await wait_until(lambda: "podList" in new_socket.types())
        await wait_until(lambda: len(cluster.subscriptions) >= 1)
        await asyncio.sleep(0.01)

        # generation 1 was cancelled before it listed, so only generation 2 watches
        assert new_socket.types() == ["connected", "podList"]
        assert len(cluster.subscriptions) == 1

    async def test_send_bound_to_stale_scope_is_rejected(self, manager: ConnectionManager) -> None:
        old = await manager.accept(FakeSocket())
        new_socket = FakeSocket()
        await manager.accept(new_socket)
        assert old is not None
        await wait_until(lambda: len(new_socket.frames) >= 2)
        frames_before = list(new_socket.frames)

        with pytest.raises(NotConnected):
            await manager.send(Message("podAdded", {"pod": {}}), scope=old.scope)
        assert new_socket.frames == frames_before


# ---------------------------------------------------------------------------
# Send
# ---------------------------------------------------------------------------


class TestSend:
    async def test_send_without_session_raises_not_connected(self, manager: ConnectionManager) -> None:
        with pytest.raises(NotConnected):
            await manager.send(Message("pong", "x"))

    async def test_send_with_foreign_scope_raises_not_connected(self, manager: ConnectionManager) -> None:
        await manager.accept(FakeSocket())
        with pytest.raises(NotConnected):
            await manager.send(Message("pong", "x"), scope=CancellationScope(99))

    async def test_write_failure_tears_session_down(self, manager: ConnectionManager) -> None:
        socket = FakeSocket()
        session = await manager.accept(socket)
        assert session is not None
        await wait_until(lambda: len(socket.frames) >= 2)

        socket.fail_send = True
        with pytest.raises(SendFailed) as exc_info:
            await manager.send(Message("pong", "x"), scope=session.scope)

        assert exc_info.value.message_type == "pong"
        assert not manager.connected
        assert session.scope.cancelled
        assert socket.closed
        with pytest.raises(NotConnected):
            await manager.send(Message("pong", "y"))

    async def test_concurrent_sends_are_not_interleaved(self, manager: ConnectionManager) -> None:
        socket = FakeSocket()
        session = await manager.accept(socket)
        assert session is not None
        await wait_until(lambda: len(socket.frames) >= 2)

        await asyncio.gather(*(manager.send(Message("foo", i), scope=session.scope) for i in range(20)))

        payloads = [m["payload"] for m in socket.sent if m["type"] == "foo"]
        assert sorted(payloads) == list(range(20))


# ---------------------------------------------------------------------------
# Reader loop
# ---------------------------------------------------------------------------


class TestReader:
    async def _connected(self, manager: ConnectionManager) -> FakeSocket:
        socket = FakeSocket()
        await manager.accept(socket)
        await wait_until(lambda: len(socket.frames) >= 2)
        return socket

    async def test_ping_gets_exactly_one_pong(self, manager: ConnectionManager) -> None:
        socket = await self._connected(manager)
        socket.push({"type": "ping", "payload": "x"})
        await wait_until(lambda: "pong" in socket.types())
        await asyncio.sleep(0.01)

        pongs = [m for m in socket.sent if m["type"] == "pong"]
        assert pongs == [{"type": "pong", "payload": "x"}]

    async def test_player_move_gets_move_processed(self, manager: ConnectionManager) -> None:
        socket = await self._connected(manager)
        socket.push({"type": "playerMove", "payload": {"dx": 1}})
        await wait_until(lambda: "moveProcessed" in socket.types())
        await asyncio.sleep(0.01)

        replies = [m for m in socket.sent if m["type"] == "moveProcessed"]
        assert replies == [{"type": "moveProcessed", "payload": {"dx": 1}}]

    async def test_unknown_type_is_echoed(self, manager: ConnectionManager) -> None:
        socket = await self._connected(manager)
        socket.push({"type": "foo", "payload": 42})
        await wait_until(lambda: "foo" in socket.types())

        assert socket.sent[-1] == {"type": "foo", "payload": 42}

    async def test_lone_surrogate_payload_is_echoed_escaped(self, manager: ConnectionManager) -> None:
        socket = await self._connected(manager)
        # half of an emoji, as JSON.stringify emits it for a sliced string
        socket.push('{"type":"foo","payload":"\\ud83d"}')
        await wait_until(lambda: len(socket.frames) >= 3)

        assert manager.connected
        assert not socket.closed
        assert "\\ud83d" in socket.frames[-1]
        assert socket.sent[-1] == {"type": "foo", "payload": "\ud83d"}

    async def test_malformed_frame_tears_session_down(self, manager: ConnectionManager) -> None:
        socket = await self._connected(manager)
        socket.push("{not json")
        socket.push({"type": "ping", "payload": "never answered"})

        await wait_until(lambda: not manager.connected)
        assert socket.closed
        assert "pong" not in socket.types()

    async def test_client_disconnect_tears_session_down(
        self, manager: ConnectionManager, cluster: FakeCluster
    ) -> None:
        socket = await self._connected(manager)
        await wait_until(lambda: len(cluster.subscriptions) == 1)

        socket.disconnect()

        await wait_until(lambda: not manager.connected)
        await wait_until(lambda: cluster.subscriptions[0].stopped)
        assert manager.current_scope is None

    async def test_wait_closed_returns_after_disconnect(self, manager: ConnectionManager) -> None:
        socket = FakeSocket()
        session = await manager.accept(socket)
        assert session is not None

        socket.disconnect()
        await asyncio.wait_for(session.wait_closed(), timeout=1.0)

        assert all(task.done() for task in session.tasks)


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------


class TestTeardown:
    async def test_teardown_is_idempotent(self, manager: ConnectionManager) -> None:
        session = await manager.accept(FakeSocket())
        assert session is not None

        await manager.teardown(session)
        await manager.teardown(session)

        assert not manager.connected
        assert session.socket is None

    async def test_tearing_down_an_old_session_leaves_the_new_one(self, manager: ConnectionManager) -> None:
        old = await manager.accept(FakeSocket())
        new_socket = FakeSocket()
        new = await manager.accept(new_socket)
        assert old is not None and new is not None

        await manager.teardown(old)

        assert manager.connected
        assert manager.current_scope is new.scope
        assert not new.scope.cancelled
        assert not new_socket.closed

    async def test_close_stops_all_session_tasks(self, cluster: FakeCluster) -> None:
        manager = ConnectionManager(cluster)
        session = await manager.accept(FakeSocket())
        assert session is not None
        await wait_until(lambda: len(cluster.subscriptions) == 1)

        await asyncio.wait_for(manager.close(), timeout=1.0)

        assert all(task.done() for task in session.tasks)
        assert cluster.subscriptions[0].stopped
        assert not manager.connected
