"""ConnectionManager: owner of the single live client session.

Exactly one client is served at a time.  A new connection replaces the old
one: the previous socket is closed and its CancellationScope cancelled
before the new Session is published.  All Session mutation and every socket
write happen under one asyncio.Lock, so outbound frames are never
interleaved and a stale generation can never write into a newer session.

Per accepted session two tasks run until the session's scope is cancelled:

    pod-watcher-<n>  -- ClusterWatcher.run(), list-then-watch relay.
    reader-<n>       -- reads client frames, replies via MessageDispatch.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import WebSocketDisconnect

from kubeinvaders.cluster.watcher import ClusterWatcher, PodSource
from kubeinvaders.errors import MalformedMessage, NotConnected, SendFailed, UpgradeError
from kubeinvaders.models.messages import InboundType, Message, MessageType, connected_message
from kubeinvaders.models.scope import CancellationScope, ScopeCancelled
from kubeinvaders.observability.logging import get_logger
from kubeinvaders.observability.metrics import (
    messages_received_total,
    messages_sent_total,
    send_failures_total,
    session_connected,
    sessions_accepted_total,
    sessions_replaced_total,
)
from kubeinvaders.relay.dispatch import MessageDispatch
from kubeinvaders.relay.session import Session, Socket

_log = get_logger("relay.manager")

_SENT_LABELS = frozenset(t.value for t in MessageType)
_RECEIVED_LABELS = frozenset(t.value for t in InboundType)


class ConnectionManager:
    """Single-session WebSocket relay.

    Args:
        cluster:               Pod source handed to each generation's watcher.
        namespace:             Namespace to relay, empty for all.
        watch_timeout_seconds: Server-side timeout of each watch request.
        dispatch:              Inbound message handler.
    """

    def __init__(
        self,
        cluster: PodSource,
        namespace: str = "",
        watch_timeout_seconds: int = 300,
        dispatch: MessageDispatch | None = None,
    ) -> None:
        self._cluster = cluster
        self._namespace = namespace
        self._watch_timeout = watch_timeout_seconds
        self._dispatch = dispatch or MessageDispatch()
        self._lock = asyncio.Lock()
        self._session: Session | None = None
        self._generation = 0

    @property
    def connected(self) -> bool:
        session = self._session
        return session is not None and session.connected

    @property
    def generation(self) -> int:
        """Number of sessions accepted so far."""
        return self._generation

    @property
    def current_scope(self) -> CancellationScope | None:
        session = self._session
        return session.scope if session is not None else None

    # ------------------------------------------------------------------
    # Accept / replace
    # ------------------------------------------------------------------

    async def accept(self, socket: Socket) -> Session | None:
        """Upgrade *socket* and make it the live session.

        Returns the new Session, or None if the upgrade failed (in which
        case session state is untouched).
        """
        try:
            await self._upgrade(socket)
        except UpgradeError as exc:
            _log.warning("websocket_upgrade_failed", error=str(exc))
            return None

        async with self._lock:
            previous = self._session
            if previous is not None:
                _log.info("session_replaced", generation=previous.generation)
                sessions_replaced_total.inc()
                await self._teardown_locked(previous)

            self._generation += 1
            session = Session(socket=socket, scope=CancellationScope(self._generation))
            self._session = session
            session_connected.set(1)

        sessions_accepted_total.inc()
        _log.info("session_accepted", generation=session.generation)

        try:
            await self.send(connected_message(), scope=session.scope)
        except (NotConnected, SendFailed) as exc:
            _log.warning("connected_send_failed", generation=session.generation, error=str(exc))

        watcher = ClusterWatcher(
            self._cluster,
            self.send,
            session.scope,
            namespace=self._namespace,
            watch_timeout_seconds=self._watch_timeout,
        )
        session.tasks.append(asyncio.create_task(watcher.run(), name=f"pod-watcher-{session.generation}"))
        session.tasks.append(asyncio.create_task(self._read_loop(session), name=f"reader-{session.generation}"))
        return session

    async def _upgrade(self, socket: Socket) -> None:
        try:
            await socket.accept()
        except Exception as exc:
            raise UpgradeError(str(exc) or type(exc).__name__) from exc

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def send(self, message: Message, scope: CancellationScope | None = None) -> None:
        """Write *message* to the live session.

        When *scope* is given the write only happens if that scope belongs
        to the live session.

        Raises:
            NotConnected: no live session, or *scope* is not the live one.
            SendFailed:   the write failed; the session has been torn down.
        """
        msg_type = str(message.type)
        async with self._lock:
            session = self._session
            if session is None or not session.connected or session.socket is None:
                raise NotConnected("no client connected")
            if scope is not None and scope is not session.scope:
                raise NotConnected(f"generation {scope.generation} is no longer live")

            try:
                await session.socket.send_text(message.encode())
            except Exception as exc:
                send_failures_total.inc()
                _log.warning("send_failed", generation=session.generation, type=msg_type, error=str(exc))
                await self._teardown_locked(session)
                raise SendFailed(msg_type, exc) from exc

        messages_sent_total.labels(type=msg_type if msg_type in _SENT_LABELS else "echo").inc()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def teardown(self, session: Session) -> None:
        """Tear down *session*.  Idempotent; never touches a newer session."""
        async with self._lock:
            await self._teardown_locked(session)

    async def _teardown_locked(self, session: Session) -> None:
        session.connected = False
        session.scope.cancel()
        socket, session.socket = session.socket, None
        if self._session is session:
            self._session = None
            session_connected.set(0)
        if socket is None:
            return
        _log.info("session_closed", generation=session.generation)
        try:
            await socket.close()
        except Exception as exc:
            # Already closed by the peer.
            _log.debug("socket_close_failed", generation=session.generation, error=str(exc))

    async def close(self) -> None:
        """Tear down the live session and wait for its tasks (shutdown)."""
        session = self._session
        if session is None:
            return
        await self.teardown(session)
        await session.wait_closed()

    # ------------------------------------------------------------------
    # Reader
    # ------------------------------------------------------------------

    async def _read_loop(self, session: Session) -> None:
        scope = session.scope
        socket = session.socket
        log = get_logger("relay.manager", generation=session.generation)
        reason = "cancelled"
        try:
            while socket is not None:
                try:
                    text: Any = await scope.race(socket.receive_text())
                except ScopeCancelled:
                    break
                except WebSocketDisconnect as exc:
                    reason = "client_closed"
                    log.info("client_disconnected", code=exc.code)
                    break
                except Exception as exc:
                    reason = "read_error"
                    log.warning("read_failed", error=str(exc) or type(exc).__name__)
                    break

                try:
                    message = Message.decode(text)
                except MalformedMessage as exc:
                    reason = "malformed_message"
                    log.warning("malformed_message", error=str(exc))
                    break

                messages_received_total.labels(
                    type=message.type if message.type in _RECEIVED_LABELS else "other"
                ).inc()
                reply = self._dispatch.handle(message)
                try:
                    await self.send(reply, scope=scope)
                except (NotConnected, SendFailed) as exc:
                    log.warning("reply_send_failed", type=str(reply.type), error=str(exc))
        finally:
            await self.teardown(session)
            log.info("reader_stopped", reason=reason)
