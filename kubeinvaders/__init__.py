"""kubeinvaders: relays Kubernetes pod lifecycle events to a single game client."""

__version__ = "0.1.0"
