"""FastAPI application factory for kubeinvaders.

Usage::

    from kubeinvaders.api.app import create_app

    app = create_app(manager=manager, config=config)

The factory is used by both the production bootstrap (``kubeinvaders.app``)
and the tests.
"""

from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from kubeinvaders.api.routes import router
from kubeinvaders.api.schemas import ErrorResponse
from kubeinvaders.observability.logging import get_logger
from kubeinvaders.relay.manager import ConnectionManager

_log = get_logger("api.app")


def create_app(manager: ConnectionManager, config: Any = None) -> FastAPI:
    """Create and configure the kubeinvaders FastAPI application.

    Args:
        manager: ConnectionManager that owns the ``/ws`` session.
        config:  KubeInvadersConfig.  When ``config.server.static_dir`` names
                 an existing directory the game client is served from ``/``.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubeinvaders import __version__

    app = FastAPI(
        title="kubeinvaders",
        summary="Kubernetes pod lifecycle relay for the kubeinvaders game",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.manager = manager
    app.state.config = config

    app.include_router(router)

    static_dir = getattr(getattr(config, "server", None), "static_dir", "")
    if static_dir and os.path.isdir(static_dir):
        # Mounted last so /ws, /healthz and /metrics take precedence.
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="client")
        _log.info("serving game client", directory=os.path.abspath(static_dir))
    elif static_dir:
        _log.info("game client directory not found; static serving disabled", directory=static_dir)

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
