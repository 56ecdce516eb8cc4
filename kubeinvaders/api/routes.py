"""HTTP and WebSocket routes.

``/ws`` hands the socket to the ConnectionManager and keeps the request
open until that session is torn down (by the client, a write failure, or
a newer client replacing it).
"""

from __future__ import annotations

from fastapi import APIRouter, Request, WebSocket
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kubeinvaders.api.schemas import HealthResponse
from kubeinvaders.observability.logging import get_logger
from kubeinvaders.relay.manager import ConnectionManager

_log = get_logger("api.routes")

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    manager: ConnectionManager = websocket.app.state.manager
    client = websocket.client
    _log.info("websocket_request", client=f"{client.host}:{client.port}" if client else "")
    session = await manager.accept(websocket)
    if session is None:
        return
    await session.wait_closed()


@router.get("/healthz", response_model=HealthResponse)
async def healthz(request: Request) -> HealthResponse:
    from kubeinvaders import __version__

    manager: ConnectionManager = request.app.state.manager
    return HealthResponse(
        version=__version__,
        connected=manager.connected,
        generation=manager.generation,
    )


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
