import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from farmlink import __version__
from farmlink.config import settings
from farmlink.core.async_tasks import drain_background_tasks
from farmlink.database import dispose_engine, init_db
from farmlink.models import *  # noqa: F403
from farmlink.services.escrow_service import EscrowLedger, get_escrow_provider
from farmlink.services.notification_service import Notifier, WebSocketNotificationBus

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: create tables
    await init_db()
    logger.info(
        "FarmLink %s started (env=%s, escrow=%s)",
        __version__, settings.environment, app.state.escrow.provider.name,
    )

    yield

    # Shutdown: let in-flight emits finish, then dispose connection pool
    await drain_background_tasks()
    await dispose_engine()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def create_app(
    *,
    escrow: EscrowLedger | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    app = FastAPI(
        title="FarmLink",
        description="Produce marketplace with brokered delivery and escrowed driver jobs",
        version=__version__,
        lifespan=lifespan,
    )

    # Capabilities handed to the services through request dependencies
    bus = WebSocketNotificationBus()
    app.state.ws_bus = bus
    app.state.escrow = escrow or EscrowLedger(get_escrow_provider())
    app.state.notifier = notifier or Notifier(bus)

    # CORS configurable via CORS_ORIGINS env var
    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    # Register REST routers
    from farmlink.api import API_PREFIX, API_ROUTERS

    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    # WebSocket event stream (JWT-authenticated)
    @app.websocket("/ws/events")
    async def event_stream(ws: WebSocket, token: str | None = Query(default=None)) -> None:
        from farmlink.core.auth import decode_token, principal_from_claims

        if not token:
            await ws.close(code=4001, reason="Missing token query parameter")
            return
        try:
            principal = principal_from_claims(decode_token(token))
        except Exception:
            await ws.close(code=4003, reason="Invalid or expired token")
            return

        connected = await bus.connect(ws, principal.id)
        if not connected:
            return
        try:
            while True:
                # Keep connection alive, receive pings
                await ws.receive_text()
        except WebSocketDisconnect:
            bus.disconnect(ws)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "name": "FarmLink",
            "version": __version__,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health",
            "events": "/ws/events",
        }

    return app


app = create_app()
