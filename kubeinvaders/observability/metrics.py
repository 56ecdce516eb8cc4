"""Prometheus metrics for kubeinvaders.

All metrics live in the default registry and are exposed at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

sessions_accepted_total = Counter(
    "kubeinvaders_sessions_accepted_total",
    "WebSocket sessions accepted.",
)

sessions_replaced_total = Counter(
    "kubeinvaders_sessions_replaced_total",
    "Sessions torn down because a newer client connected.",
)

session_connected = Gauge(
    "kubeinvaders_session_connected",
    "1 while a client session is connected, 0 otherwise.",
)

messages_sent_total = Counter(
    "kubeinvaders_messages_sent_total",
    "Outbound frames written to the client.",
    ["type"],
)

send_failures_total = Counter(
    "kubeinvaders_send_failures_total",
    "Outbound frames that failed to write.",
)

messages_received_total = Counter(
    "kubeinvaders_messages_received_total",
    "Inbound frames decoded from the client.",
    ["type"],
)

watch_reconnects_total = Counter(
    "kubeinvaders_watch_reconnects_total",
    "Pod watch streams reopened from the last cursor.",
    ["reason"],
)
