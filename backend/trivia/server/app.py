from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from shared.db import Database, SqliteRoomStore
from shared.logging import setup_logging
from trivia.catalog.catalog import load_catalog
from trivia.messaging.router import MessageRouter
from trivia.server.rate_limit import ConnectionRateLimiter
from trivia.server.settings import TriviaServerSettings
from trivia.server.websocket import websocket_endpoint
from trivia.session.broadcast import BroadcastChannel
from trivia.session.manager import RoomStateMachine
from trivia.session.registry import SessionRegistry

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from shared.dal.room_store import RoomStore
    from trivia.catalog.catalog import QuestionCatalog


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    state_machine: RoomStateMachine = request.app.state.state_machine
    settings: TriviaServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            **state_machine.describe(),
            "total_questions": request.app.state.total_questions,
            "max_players_limit": settings.max_players_limit,
        },
    )


def create_app(
    settings: TriviaServerSettings | None = None,
    store: RoomStore | None = None,
    catalog: QuestionCatalog | None = None,
    state_machine: RoomStateMachine | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = TriviaServerSettings()

    if catalog is None:
        catalog = load_catalog(settings.catalog_path)

    # When the app opens its own database, it owns the connection lifecycle.
    owned_db: Database | None = None

    if state_machine is None:
        if store is None:
            db = Database(settings.database_path)
            db.connect()
            owned_db = db
            store = SqliteRoomStore(db)
        state_machine = RoomStateMachine(
            store,
            catalog,
            SessionRegistry(),
            BroadcastChannel(),
            starting_bankroll=settings.starting_bankroll,
            max_players_limit=settings.max_players_limit,
            store_timeout_seconds=settings.store_timeout_seconds,
        )

    if message_router is None:
        message_router = MessageRouter(
            state_machine,
            bet_update_limiter=ConnectionRateLimiter(rate=settings.bet_update_rate, burst=settings.bet_update_burst),
        )

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(
            websocket,
            message_router,
            message_rate=settings.message_rate,
            message_burst=settings.message_burst,
        )

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.state_machine = state_machine
    app.state.total_questions = len(catalog)

    logger.info("trivia server ready", total_questions=len(catalog))
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = TriviaServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
