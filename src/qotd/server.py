"""Server runtime — readiness-gated startup, then uvicorn.

Learn: startup runs two independent chains concurrently:

1. storage — bootstrap the schema, then import the seed data
2. listener — bind the HTTP socket

The ReadinessGate joins them. start() returns only when both succeeded and
raises the first failure otherwise (SchemaBootstrapError, SeedImportError or
ListenerBindError), after closing whatever was opened. Only then does
serve() hand the pre-bound socket to uvicorn, so no request is accepted
before storage is ready.

Usage:
    qotd serve --port 8080

Or:
    python -m qotd serve
"""

import asyncio
import socket
from typing import Optional

import structlog
import uvicorn

from qotd import __version__
from qotd.config import Settings
from qotd.db.gateway import PersistenceGateway
from qotd.errors import ListenerBindError
from qotd.events.bus import EventBus
from qotd.logging_config import setup_logging
from qotd.main import create_app
from qotd.readiness import LISTENER, STORAGE, ReadinessGate

logger = structlog.get_logger()

LISTEN_BACKLOG = 2048


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind and listen on host:port. Port 0 picks a free port."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(LISTEN_BACKLOG)
        sock.set_inheritable(True)
    except OSError as e:
        sock.close()
        raise ListenerBindError(f"cannot bind {host}:{port}: {e}") from e
    return sock


class QuoteServer:
    """Owns the process lifecycle: gated startup, serving, shutdown."""

    def __init__(
        self,
        settings: Settings,
        gateway: Optional[PersistenceGateway] = None,
        bus: Optional[EventBus] = None,
    ):
        self.settings = settings
        self.gateway = gateway or PersistenceGateway.from_settings(settings)
        self.bus = bus or EventBus(max_queue_size=settings.realtime_queue_size)
        self.app = create_app(settings, gateway=self.gateway, bus=self.bus)
        self.gate = ReadinessGate((STORAGE, LISTENER))
        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None

    @property
    def port(self) -> Optional[int]:
        """The bound port (useful when configured with port 0)."""
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    async def start(self) -> None:
        """Initialize storage and bind the listener; fail fast on either."""
        logger.info(
            "qotd.starting",
            version=__version__,
            environment=self.settings.environment,
            host=self.settings.host,
            port=self.settings.http_port,
        )
        try:
            await self.gate.join(
                storage=self._initialize_storage(),
                listener=self._bind_listener(),
            )
        except Exception as e:
            logger.error("qotd.startup_failed", error=str(e), error_type=type(e).__name__)
            await self.close()
            raise
        logger.info("qotd.ready", port=self.port)

    async def _initialize_storage(self) -> None:
        await self.gateway.bootstrap_schema()
        await self.gateway.import_seed_data()

    async def _bind_listener(self) -> None:
        self._socket = bind_socket(self.settings.host, self.settings.http_port)
        logger.info("qotd.listener_bound", host=self.settings.host, port=self.port)

    async def serve(self) -> None:
        """Serve until stop() or a shutdown signal. Requires a successful start()."""
        if not self.gate.is_ready or self._socket is None:
            raise RuntimeError("QuoteServer.start() must succeed before serve()")

        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level=self.settings.log_level.lower(),
            lifespan="on",
        )
        self._server = uvicorn.Server(config)
        try:
            await self._server.serve(sockets=[self._socket])
        finally:
            # uvicorn closes the listening socket on shutdown.
            self._socket = None

    @property
    def started(self) -> bool:
        """True once uvicorn is accepting connections."""
        return self._server is not None and self._server.started

    def stop(self) -> None:
        """Ask uvicorn to shut down; the app lifespan closes the storage client."""
        if self._server is not None:
            self._server.should_exit = True

    async def close(self) -> None:
        """Release the socket and storage client of a server that is not serving."""
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        await self.gateway.close()


async def serve(settings: Settings) -> None:
    """Start and serve until shutdown."""
    server = QuoteServer(settings)
    await server.start()
    await server.serve()


def run(settings: Settings) -> None:
    """Blocking entry point used by `qotd serve`."""
    setup_logging(settings.log_level, settings.log_format)
    asyncio.run(serve(settings))
