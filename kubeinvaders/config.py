"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubeinvaders.models.config import ClusterConfig, KubeInvadersConfig, LogConfig, ServerConfig


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEINVADERS_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_port(value: int) -> int:
    if not 1 <= value <= 65535:
        raise ValueError(f"Invalid port: {value}. Must be between 1 and 65535")
    return value


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> KubeInvadersConfig:
    """Load configuration from KUBEINVADERS_* environment variables."""
    defaults = ClusterConfig()
    return KubeInvadersConfig(
        server=ServerConfig(
            host=_env("HOST", "0.0.0.0"),
            port=_validate_port(int(_env("PORT", "8080"))),
            static_dir=_env("STATIC_DIR", "../dist"),
        ),
        cluster=ClusterConfig(
            kubeconfig=os.path.expanduser(_env("KUBECONFIG", defaults.kubeconfig)),
            namespace=_env("NAMESPACE", ""),
            list_timeout_seconds=_env_int("LIST_TIMEOUT", 10, min_val=1, max_val=120),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=30, max_val=3600),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )


def apply_overrides(config: KubeInvadersConfig, **overrides: object) -> KubeInvadersConfig:
    """Apply command-line overrides on top of an environment-loaded config.

    ``None`` values are ignored so unset flags keep the environment value.
    """
    if overrides.get("host") is not None:
        config.server.host = str(overrides["host"])
    if overrides.get("port") is not None:
        config.server.port = _validate_port(int(overrides["port"]))  # type: ignore[call-overload]
    if overrides.get("static_dir") is not None:
        config.server.static_dir = str(overrides["static_dir"])
    if overrides.get("kubeconfig") is not None:
        config.cluster.kubeconfig = os.path.expanduser(str(overrides["kubeconfig"]))
    if overrides.get("namespace") is not None:
        config.cluster.namespace = str(overrides["namespace"])
    if overrides.get("log_level") is not None:
        config.log.level = _validate_log_level(str(overrides["log_level"]))
    return config
