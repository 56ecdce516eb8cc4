"""HTTP surface for kubeinvaders.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by kubeinvaders.app bootstrap).
"""

from kubeinvaders.api.app import create_app

# The bootstrap in kubeinvaders.app imports `build_app` from this package.
build_app = create_app

__all__ = ["build_app", "create_app"]
