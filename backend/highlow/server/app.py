"""ASGI application: HTTP probes plus the game WebSocket.

The app owns one SessionManager for its whole lifetime. The lifespan starts
the periodic session sweep and, on shutdown, cancels the sweep and every
pending deferred callback.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from highlow.messaging.router import MessageRouter
from highlow.server.settings import GameServerSettings
from highlow.server.websocket import websocket_endpoint
from highlow.session.manager import SessionManager
from shared.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

logger = structlog.get_logger()


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    """Room, session and connection counts for monitoring."""
    manager: SessionManager = request.app.state.session_manager
    return JSONResponse(
        {
            "status": "ok",
            "rooms": manager.room_count,
            "sessions": manager.session_count,
            "connections": manager.connection_count,
            "max_rooms": request.app.state.settings.max_rooms,
        },
    )


def create_session_manager(settings: GameServerSettings) -> SessionManager:
    """Build a SessionManager whose rules and timers come from ``settings``."""
    return SessionManager(
        game_settings=settings.game_settings(),
        session_ttl_seconds=settings.session_ttl_seconds,
        disconnect_grace_seconds=settings.disconnect_grace_seconds,
        empty_room_grace_seconds=settings.empty_room_grace_seconds,
        sweep_interval_seconds=settings.sweep_interval_seconds,
        newly_dealt_display_seconds=settings.newly_dealt_display_seconds,
        max_rooms=settings.max_rooms,
    )


def create_app(
    settings: GameServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    settings = settings or GameServerSettings()
    manager = session_manager or create_session_manager(settings)
    router = message_router or MessageRouter(manager)

    async def game_socket(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, router)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        manager.start_sweeper()
        logger.info("highlow server started", max_rooms=settings.max_rooms)
        try:
            yield
        finally:
            await manager.shutdown()
            logger.info("highlow server stopped")

    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/status", status, methods=["GET"]),
            WebSocketRoute("/ws", game_socket),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,  # type: ignore[arg-type]
                allow_origins=settings.cors_origins,
                allow_methods=["GET"],
                allow_headers=["Content-Type"],
            ),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_manager = manager
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI factory for ``uvicorn highlow.server.app:get_app --factory``."""
    settings = GameServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
