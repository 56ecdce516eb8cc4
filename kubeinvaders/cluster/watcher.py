"""ClusterWatcher: list-then-watch relay for one session generation.

The watcher lists every pod, emits a single ``podList``, then opens a
watch seeded with the list's own cursor and forwards pod creations and
deletions.  Because the watch is opened only after the list has been
emitted, ``podList`` is always the first cluster-derived message a client
sees for a generation.

The watcher is bound to one CancellationScope.  Its scope is checked
before every event is processed, and every blocking wait is raced against
it, so a replaced generation stops without writing into the new session.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Protocol

from kubeinvaders.errors import ListError, NotConnected, SendFailed, WatchSetupError
from kubeinvaders.models.cluster import EventKind, WatchCursor
from kubeinvaders.models.messages import (
    Message,
    PodSnapshot,
    pod_added_message,
    pod_deleted_message,
    pod_list_message,
)
from kubeinvaders.models.scope import CancellationScope, ScopeCancelled
from kubeinvaders.observability.logging import get_logger

if TYPE_CHECKING:
    from kubeinvaders.cluster.subscription import PodSubscription


class PodSource(Protocol):
    """What the watcher needs from a cluster client."""

    async def list_pods(self, namespace: str = "") -> tuple[list[PodSnapshot], WatchCursor]: ...

    def watch_pods(self, cursor: WatchCursor, timeout_seconds: int = 300, namespace: str = "") -> PodSubscription: ...


class SendFn(Protocol):
    def __call__(self, message: Message, scope: CancellationScope | None = None) -> Awaitable[None]: ...


class ClusterWatcher:
    """Drives list-then-watch for exactly one CancellationScope."""

    def __init__(
        self,
        cluster: PodSource,
        send: SendFn,
        scope: CancellationScope,
        namespace: str = "",
        watch_timeout_seconds: int = 300,
    ) -> None:
        self._cluster = cluster
        self._send = send
        self._scope = scope
        self._namespace = namespace
        self._watch_timeout = watch_timeout_seconds
        self._cursor: WatchCursor = ""
        self._log = get_logger("cluster.watcher", generation=scope.generation)

    @property
    def cursor(self) -> WatchCursor:
        """Last cursor recorded from the list or a watch event."""
        return self._cursor

    async def run(self) -> None:
        """List, emit podList, then relay watch events until cancelled or closed."""
        try:
            items, cursor = await self._scope.race(self._cluster.list_pods(self._namespace))
        except ScopeCancelled:
            return
        except ListError as exc:
            self._log.error("pod_list_failed", error=str(exc))
            return

        await self._emit(pod_list_message(items))
        self._cursor = cursor
        self._log.info("pod_list_sent", count=len(items), cursor=cursor)

        try:
            subscription = self._cluster.watch_pods(
                cursor,
                timeout_seconds=self._watch_timeout,
                namespace=self._namespace,
            )
        except WatchSetupError as exc:
            self._log.error("pod_watch_setup_failed", error=str(exc))
            return

        try:
            await self._relay(subscription)
        except Exception as exc:
            self._log.error("watch_stalled", reason="unexpected_error", error=str(exc), exc_info=True)
        finally:
            await subscription.stop()
            self._log.info("watcher_stopped", cursor=self._cursor)

    async def _relay(self, subscription: PodSubscription) -> None:
        while True:
            try:
                event = await self._scope.race(subscription.next_event())
            except ScopeCancelled:
                self._log.info("watcher_cancelled")
                return

            if event is None:
                self._log.warning("pod_watch_closed", cursor=self._cursor)
                return

            # An event may already be buffered when the generation is replaced.
            if self._scope.cancelled:
                self._log.info("watcher_cancelled")
                return

            self._cursor = event.cursor
            self._log.debug("watch_event", kind=event.kind.value)

            if event.kind is EventKind.ADDED and event.pod is not None:
                self._log.info("pod_added", namespace=event.pod.namespace, pod=event.pod.name)
                await self._emit(pod_added_message(event.pod))
            elif event.kind is EventKind.DELETED and event.pod is not None:
                self._log.info("pod_deleted", namespace=event.pod.namespace, pod=event.pod.name)
                await self._emit(pod_deleted_message(event.pod))

    async def _emit(self, message: Message) -> None:
        """Send *message* for this generation; a failed frame does not stop the loop."""
        try:
            await self._send(message, scope=self._scope)
        except (NotConnected, SendFailed) as exc:
            self._log.warning("pod_event_send_failed", type=str(message.type), error=str(exc))
