"""Resumable pod watch subscription.

A PodSubscription turns a sequence of short-lived Kubernetes watch
requests into one logical event stream.  Every request is seeded with the
cursor (resourceVersion) of the last event delivered, so a server-side
timeout or a transient transport failure is invisible to the consumer:
nothing is skipped and nothing is replayed across the reopen.

Termination:
    * ``stop()`` ends the stream (idempotent).
    * ``410 Gone`` (cursor expired) or any other non-retryable 4xx ends the
      stream.  There is no relist here; the consumer sees
      channel closure.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

import aiohttp
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubeinvaders.models.cluster import EventKind, WatchCursor, WatchEvent
from kubeinvaders.models.messages import PodSnapshot
from kubeinvaders.observability.logging import get_logger
from kubeinvaders.observability.metrics import watch_reconnects_total

_log = get_logger("cluster.subscription")

_INITIAL_BACKOFF_SECONDS = 1.0
_MAX_BACKOFF_SECONDS = 30.0
_HTTP_GONE = 410
_HTTP_TOO_MANY_REQUESTS = 429

# (cursor, timeout_seconds) -> async context manager yielding raw watch events,
# i.e. dicts with "type" and "raw_object" keys as produced by kubernetes_asyncio.
StreamOpener = Callable[[WatchCursor, int], AbstractAsyncContextManager[AsyncIterator[dict[str, Any]]]]


class _CursorExpired(Exception):
    """The server no longer holds history for our cursor."""


class PodSubscription:
    """Async stream of WatchEvents that reopens itself from the last cursor.

    Args:
        opener:          Opens one watch request at a cursor.
        cursor:          resourceVersion to start from (from the initial list).
        timeout_seconds: Server-side timeout for each watch request.
        sleep:           Back-off sleep, injectable for tests.
    """

    def __init__(
        self,
        opener: StreamOpener,
        cursor: WatchCursor,
        timeout_seconds: int = 300,
        initial_backoff: float = _INITIAL_BACKOFF_SECONDS,
        max_backoff: float = _MAX_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._opener = opener
        self._cursor = cursor
        self._timeout_seconds = timeout_seconds
        self._initial_backoff = initial_backoff
        self._max_backoff = max_backoff
        self._sleep = sleep
        self._stopped = False
        self._events = self._run()

    @property
    def cursor(self) -> WatchCursor:
        """resourceVersion the next request will resume from."""
        return self._cursor

    @property
    def stopped(self) -> bool:
        return self._stopped

    def __aiter__(self) -> PodSubscription:
        return self

    async def __anext__(self) -> WatchEvent:
        event = await self.next_event()
        if event is None:
            raise StopAsyncIteration
        return event

    async def next_event(self) -> WatchEvent | None:
        """Return the next event, or None once the stream has ended."""
        if self._stopped:
            return None
        try:
            return await self._events.__anext__()
        except StopAsyncIteration:
            self._stopped = True
            return None

    async def stop(self) -> None:
        """Release the underlying watch request.  Idempotent."""
        self._stopped = True
        await self._events.aclose()

    async def _run(self) -> AsyncIterator[WatchEvent]:
        backoff = self._initial_backoff
        while not self._stopped:
            reason = ""
            try:
                async with self._opener(self._cursor, self._timeout_seconds) as stream:
                    async for raw in stream:
                        event = self._translate(raw)
                        if event is None:
                            continue
                        if event.kind is EventKind.ERROR:
                            yield event
                            reason = self._check_error(raw)
                            break
                        self._cursor = event.cursor
                        backoff = self._initial_backoff
                        yield event
                    else:
                        reason = "timeout"
            except _CursorExpired:
                _log.warning("watch_stalled", reason="cursor_expired", cursor=self._cursor)
                return
            except ApiException as exc:
                if exc.status == _HTTP_GONE:
                    _log.warning("watch_stalled", reason="cursor_expired", cursor=self._cursor)
                    return
                if exc.status is not None and 400 <= exc.status < 500 and exc.status != _HTTP_TOO_MANY_REQUESTS:
                    _log.warning("watch_stalled", reason="client_error", status=exc.status, error=str(exc.reason))
                    return
                reason = "api_error"
                _log.warning("watch_request_failed", status=exc.status, error=str(exc.reason))
            except (aiohttp.ClientError, TimeoutError) as exc:
                reason = "transport_error"
                _log.warning("watch_request_failed", error=str(exc) or type(exc).__name__)

            if self._stopped:
                return

            watch_reconnects_total.labels(reason=reason).inc()
            if reason == "timeout":
                # Normal end of a request; reopen straight away.
                _log.debug("watch_stream_expired", cursor=self._cursor)
                continue

            _log.info("watch_reconnecting", reason=reason, cursor=self._cursor, backoff_seconds=backoff)
            await self._sleep(backoff)
            backoff = min(backoff * 2, self._max_backoff)

    def _translate(self, raw: Any) -> WatchEvent | None:
        if not isinstance(raw, dict):
            # kubernetes_asyncio passes non-JSON lines through as plain strings
            _log.debug("watch_line_skipped", line=str(raw)[:200])
            return None
        try:
            kind = EventKind(str(raw.get("type", "")))
        except ValueError:
            _log.debug("watch_event_unknown_type", type=raw.get("type"))
            return None

        raw_obj = raw.get("raw_object") or {}
        if kind is EventKind.ERROR:
            return WatchEvent(kind=kind, pod=None, cursor=self._cursor)

        metadata = raw_obj.get("metadata") or {}
        cursor = str(metadata.get("resourceVersion") or self._cursor)
        pod = None if kind is EventKind.BOOKMARK else PodSnapshot.from_raw(raw_obj)
        return WatchEvent(kind=kind, pod=pod, cursor=cursor)

    def _check_error(self, raw: dict[str, Any]) -> str:
        """Classify an ERROR event; raise _CursorExpired when it is terminal."""
        status = raw.get("raw_object") or {}
        code = status.get("code")
        if code == _HTTP_GONE:
            raise _CursorExpired(str(status.get("message", "")))
        _log.warning("watch_error_event", code=code, message=status.get("message"))
        return "error_event"
