"""Cluster access for kubeinvaders.

Submodules
----------
client       -- ClusterClient: credential resolution, pod list, pod watch.
subscription -- PodSubscription: watch stream that resumes from the last cursor.
watcher      -- ClusterWatcher: list-then-watch relay bound to one session generation.
"""

from kubeinvaders.cluster.client import ClusterClient, create_api_client
from kubeinvaders.cluster.subscription import PodSubscription
from kubeinvaders.cluster.watcher import ClusterWatcher

__all__ = ["ClusterClient", "ClusterWatcher", "PodSubscription", "create_api_client"]
