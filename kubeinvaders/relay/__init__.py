"""WebSocket relay for kubeinvaders.

Exposes:
    ConnectionManager -- single-session owner: accept, send, teardown.
    MessageDispatch   -- inbound message → reply mapping.
    Session           -- state of the live connection.
"""

from kubeinvaders.relay.dispatch import MessageDispatch
from kubeinvaders.relay.manager import ConnectionManager
from kubeinvaders.relay.session import Session

__all__ = ["ConnectionManager", "MessageDispatch", "Session"]
