"""Wire protocol data structures.

Every frame on the socket is a newline-free JSON object of the form
``{"type": <string>, "payload": <any>}``.  Outbound types are a closed set
(MessageType); inbound types are open, unknown ones are echoed back.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from kubeinvaders.errors import MalformedMessage


class MessageType(StrEnum):
    """Message types the server originates or replies with."""

    CONNECTED = "connected"
    POD_LIST = "podList"
    POD_ADDED = "podAdded"
    POD_DELETED = "podDeleted"
    MOVE_PROCESSED = "moveProcessed"
    PONG = "pong"


class InboundType(StrEnum):
    """Inbound message types with dedicated handling."""

    PLAYER_MOVE = "playerMove"
    PING = "ping"


CONNECTED_GREETING = "Connected to the game server"


@dataclass(frozen=True)
class PodSnapshot:
    """A pod as it looked when the list or watch event was captured.

    Immutable: the status mapping is deep-copied out of the raw object so
    later mutation of the source never leaks into an emitted message.
    """

    namespace: str
    name: str
    status: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> PodSnapshot:
        """Build a snapshot from a raw (JSON-decoded) Pod object."""
        metadata = raw.get("metadata") or {}
        return cls(
            namespace=str(metadata.get("namespace", "")),
            name=str(metadata.get("name", "")),
            status=copy.deepcopy(raw.get("status") or {}),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "name": self.name,
            "status": copy.deepcopy(self.status),
        }


@dataclass(frozen=True)
class Message:
    """One protocol frame."""

    type: str
    payload: Any = None

    def to_wire(self) -> dict[str, Any]:
        return {"type": str(self.type), "payload": self.payload}

    def encode(self) -> str:
        """Serialise to a compact, newline-free JSON string."""
        return json.dumps(self.to_wire(), separators=(",", ":"))

    @classmethod
    def from_wire(cls, data: Any) -> Message:
        """Validate a decoded JSON value and wrap it.

        Raises:
            MalformedMessage: if *data* is not an object with a string ``type``.
        """
        if not isinstance(data, dict):
            raise MalformedMessage(f"expected a JSON object, got {type(data).__name__}")
        msg_type = data.get("type")
        if not isinstance(msg_type, str):
            raise MalformedMessage("message 'type' must be a string")
        return cls(type=msg_type, payload=data.get("payload"))

    @classmethod
    def decode(cls, text: str) -> Message:
        """Parse one inbound text frame.

        Raises:
            MalformedMessage: if *text* is not valid JSON or fails validation.
        """
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as exc:
            raise MalformedMessage(f"invalid JSON: {exc}") from exc
        return cls.from_wire(data)


# ---------------------------------------------------------------------------
# Outbound message constructors
# ---------------------------------------------------------------------------


def connected_message(greeting: str = CONNECTED_GREETING) -> Message:
    return Message(MessageType.CONNECTED, {"message": greeting})


def pod_list_message(items: list[PodSnapshot]) -> Message:
    return Message(MessageType.POD_LIST, {"items": [pod.to_wire() for pod in items]})


def pod_added_message(pod: PodSnapshot) -> Message:
    return Message(MessageType.POD_ADDED, {"pod": pod.to_wire()})


def pod_deleted_message(pod: PodSnapshot) -> Message:
    return Message(MessageType.POD_DELETED, {"pod": pod.to_wire()})
