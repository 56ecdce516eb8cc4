"""Cluster-side data structures: watch events and cursors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from kubeinvaders.models.messages import PodSnapshot

# Opaque resourceVersion string.  Only ever compared for emptiness.
WatchCursor = str


class EventKind(StrEnum):
    """Kubernetes watch event types, as sent in the ``type`` field."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass(frozen=True)
class WatchEvent:
    """One event delivered by a PodSubscription.

    ``pod`` is None for BOOKMARK and ERROR events.  ``cursor`` is the
    resourceVersion the subscription will resume from after this event.
    """

    kind: EventKind
    pod: PodSnapshot | None
    cursor: WatchCursor
