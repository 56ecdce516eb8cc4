"""Configuration data structures."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class ServerConfig:
    """HTTP / WebSocket listener configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    static_dir: str = "../dist"


@dataclass
class ClusterConfig:
    """Kubernetes access configuration."""

    kubeconfig: str = field(default_factory=lambda: os.path.join(os.path.expanduser("~"), ".kube", "config"))
    namespace: str = ""
    list_timeout_seconds: int = 10
    watch_timeout_seconds: int = 300


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeInvadersConfig:
    """Top-level kubeinvaders configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    log: LogConfig = field(default_factory=LogConfig)
