"""Core data structures for kubeinvaders."""

from kubeinvaders.models.cluster import EventKind, WatchCursor, WatchEvent
from kubeinvaders.models.config import ClusterConfig, KubeInvadersConfig, LogConfig, ServerConfig
from kubeinvaders.models.messages import (
    InboundType,
    Message,
    MessageType,
    PodSnapshot,
    connected_message,
    pod_added_message,
    pod_deleted_message,
    pod_list_message,
)
from kubeinvaders.models.scope import CancellationScope, ScopeCancelled

__all__ = [
    "CancellationScope",
    "ClusterConfig",
    "EventKind",
    "InboundType",
    "KubeInvadersConfig",
    "LogConfig",
    "Message",
    "MessageType",
    "PodSnapshot",
    "ScopeCancelled",
    "ServerConfig",
    "WatchCursor",
    "WatchEvent",
    "connected_message",
    "pod_added_message",
    "pod_deleted_message",
    "pod_list_message",
]
