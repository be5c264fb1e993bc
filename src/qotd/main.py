"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Its collaborators (settings, persistence gateway, event bus) are
built by the caller or defaulted here, then stored on app.state; nothing
is a module-level singleton.

Storage bootstrap is not part of the lifespan: QuoteServer runs it
alongside the listener bind behind the readiness gate, before uvicorn
starts serving. The lifespan only tears things down.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from qotd import __version__
from qotd.api import api_router
from qotd.config import Settings
from qotd.db.gateway import PersistenceGateway
from qotd.errors import QuoteValidationError, StoreError
from qotd.events.bus import EventBus

logger = structlog.get_logger()

GENERIC_ERROR_MESSAGE = "Something went wrong"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Closing the bus ends every realtime forwarder; disposing the
    engine closes the storage client.
    """
    settings: Settings = app.state.settings
    logger.info(
        "qotd.serving",
        version=__version__,
        environment=settings.environment,
        port=settings.http_port,
    )

    yield

    logger.info("qotd.shutdown")
    app.state.bus.close()
    await app.state.gateway.close()


async def handle_validation_error(request: Request, exc: QuoteValidationError):
    # Clients depend on 404 here, not 400.
    return PlainTextResponse(str(exc), status_code=404)


async def handle_store_error(request: Request, exc: StoreError):
    logger.error("quotes.store_failed", error=str(exc), exc_info=exc)
    return PlainTextResponse(GENERIC_ERROR_MESSAGE, status_code=400)


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[PersistenceGateway] = None,
    bus: Optional[EventBus] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="Quote of the Day",
        description="Stores quotes and streams new ones to live subscribers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = gateway or PersistenceGateway.from_settings(settings)
    app.state.bus = bus or EventBus(max_queue_size=settings.realtime_queue_size)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → CORS → handler

    from qotd.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    # ── Error exits ───────────────────────────────────────────
    app.add_exception_handler(QuoteValidationError, handle_validation_error)
    app.add_exception_handler(StoreError, handle_store_error)

    app.include_router(api_router)

    # Mount WebSocket route (real-time quote feed)
    from qotd.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app
