"""Kubernetes API access: credentials, pod list and pod watch.

ClusterClient is the only component that talks to the API server.  It
returns plain PodSnapshots and cursors so the rest of the relay never sees
kubernetes_asyncio model objects.
"""

from __future__ import annotations

import functools
import os
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Any

import aiohttp
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]
from kubernetes_asyncio import watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubeinvaders.cluster.subscription import PodSubscription
from kubeinvaders.errors import ConfigError, ListError, WatchSetupError
from kubeinvaders.models.cluster import WatchCursor
from kubeinvaders.models.config import ClusterConfig
from kubeinvaders.models.messages import PodSnapshot
from kubeinvaders.observability.logging import get_logger

_log = get_logger("cluster.client")


async def create_api_client(config: ClusterConfig) -> k8s_client.ApiClient:
    """Resolve credentials and build an ApiClient.

    A kubeconfig file at ``config.kubeconfig`` wins; when the file does not
    exist the in-cluster service account is used instead.

    Raises:
        ConfigError: if neither source yields usable credentials.
    """
    configuration = k8s_client.Configuration()
    try:
        if os.path.exists(config.kubeconfig):
            # load_kube_config() is async in kubernetes-asyncio
            await k8s_config.load_kube_config(
                config_file=config.kubeconfig,
                client_configuration=configuration,
            )
            _log.info("k8s client configured from kubeconfig", path=config.kubeconfig)
        else:
            # load_incluster_config() is synchronous in kubernetes-asyncio
            k8s_config.load_incluster_config(client_configuration=configuration)
            _log.info("k8s client configured from in-cluster service account")
    except Exception as exc:
        raise ConfigError(f"failed to resolve cluster credentials: {exc}") from exc
    return k8s_client.ApiClient(configuration)


class ClusterClient:
    """Pod list and watch on top of a kubernetes_asyncio ApiClient.

    Args:
        api_client:           Configured ApiClient (owned; closed by close()).
        list_timeout_seconds: Client-side timeout for the initial list.
    """

    def __init__(self, api_client: k8s_client.ApiClient, list_timeout_seconds: int = 10) -> None:
        self._api_client = api_client
        self._v1 = k8s_client.CoreV1Api(api_client)
        self._list_timeout = list_timeout_seconds

    async def list_pods(self, namespace: str = "") -> tuple[list[PodSnapshot], WatchCursor]:
        """List pods in *namespace* (all namespaces when empty).

        Returns the snapshots and the list's resourceVersion, which is the
        cursor a subsequent watch must start from.

        Raises:
            ListError: on any API or transport failure.
        """
        try:
            if namespace:
                resp = await self._v1.list_namespaced_pod(
                    namespace,
                    _preload_content=False,
                    _request_timeout=self._list_timeout,
                )
            else:
                resp = await self._v1.list_pod_for_all_namespaces(
                    _preload_content=False,
                    _request_timeout=self._list_timeout,
                )
            body = await resp.json()
        except ApiException as exc:
            raise ListError(f"failed to list pods: {exc.status} {exc.reason}") from exc
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            raise ListError(f"failed to list pods: {exc}") from exc

        items = [PodSnapshot.from_raw(item) for item in body.get("items") or []]
        cursor = str((body.get("metadata") or {}).get("resourceVersion") or "")
        _log.debug("pods_listed", namespace=namespace or "*", count=len(items), cursor=cursor)
        return items, cursor

    def watch_pods(
        self,
        cursor: WatchCursor,
        timeout_seconds: int = 300,
        namespace: str = "",
    ) -> PodSubscription:
        """Open a resumable pod watch starting at *cursor*.

        Raises:
            WatchSetupError: if *cursor* cannot seed a watch.  An empty or
                ``"0"`` resourceVersion would make the server replay current
                state instead of resuming, which breaks list/watch continuity.
        """
        if not cursor or cursor == "0":
            raise WatchSetupError(f"invalid initial cursor {cursor!r}")
        opener = functools.partial(self._open_stream, namespace)
        return PodSubscription(opener=opener, cursor=cursor, timeout_seconds=timeout_seconds)

    def _open_stream(
        self,
        namespace: str,
        cursor: WatchCursor,
        timeout_seconds: int,
    ) -> AbstractAsyncContextManager[AsyncIterator[dict[str, Any]]]:
        w = watch.Watch()
        if namespace:
            return w.stream(  # type: ignore[no-any-return]
                self._v1.list_namespaced_pod,
                namespace,
                resource_version=cursor,
                timeout_seconds=timeout_seconds,
                allow_watch_bookmarks=True,
            )
        return w.stream(  # type: ignore[no-any-return]
            self._v1.list_pod_for_all_namespaces,
            resource_version=cursor,
            timeout_seconds=timeout_seconds,
            allow_watch_bookmarks=True,
        )

    async def close(self) -> None:
        """Close the ApiClient connection pool."""
        await self._api_client.close()
