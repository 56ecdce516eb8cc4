"""Inbound message dispatch.

Maps each inbound message to exactly one reply.  Stateless; nothing here
touches cluster or session state.
"""

from __future__ import annotations

from kubeinvaders.models.messages import InboundType, Message, MessageType
from kubeinvaders.observability.logging import get_logger

_log = get_logger("relay.dispatch")


class MessageDispatch:
    """Inbound type → reply mapping.

    ``playerMove`` → ``moveProcessed`` with the same payload,
    ``ping`` → ``pong`` with the same payload, anything else is echoed.
    """

    def handle(self, message: Message) -> Message:
        if message.type == InboundType.PLAYER_MOVE:
            _log.info("player_move", payload=message.payload)
            return Message(MessageType.MOVE_PROCESSED, message.payload)

        if message.type == InboundType.PING:
            return Message(MessageType.PONG, message.payload)

        _log.debug("echo_message", type=message.type, payload=message.payload)
        return message
