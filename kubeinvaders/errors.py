"""Exception hierarchy for kubeinvaders.

Every error raised by a kubeinvaders component derives from
KubeInvadersError so the bootstrap can tell our failures from library ones.
"""

from __future__ import annotations


class KubeInvadersError(Exception):
    """Base class for all kubeinvaders errors."""


class ConfigError(KubeInvadersError):
    """Cluster credentials could not be resolved.  Fatal at startup."""


class UpgradeError(KubeInvadersError):
    """The HTTP request could not be upgraded to a WebSocket."""


class ListError(KubeInvadersError):
    """The initial pod list could not be fetched."""


class WatchSetupError(KubeInvadersError):
    """A watch subscription could not be established."""


class NotConnected(KubeInvadersError):
    """No live session matches the sender."""


class SendFailed(KubeInvadersError):
    """Writing a frame to the socket failed; the session has been torn down."""

    def __init__(self, message_type: str, cause: BaseException) -> None:
        super().__init__(f"failed to send {message_type!r}: {cause}")
        self.message_type = message_type
        self.cause = cause


class MalformedMessage(KubeInvadersError):
    """An inbound frame is not a JSON object with a string ``type``."""
