"""Test fixtures — a fresh SQLite database per test.

Learn: every test gets its own database file under tmp_path, a gateway
with the schema already created, its own EventBus, and an app wired to
both. Nothing is shared between tests, so there is nothing to roll back.

ConnectionCounter hooks the pool's checkout/checkin events so tests can
assert that every storage connection handed out was given back.
"""

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

from qotd.config import Settings
from qotd.db.gateway import PersistenceGateway
from qotd.events.bus import EventBus
from qotd.main import create_app


class ConnectionCounter:
    """Counts connections checked out of and back into an engine's pool."""

    def __init__(self, engine: AsyncEngine):
        self.checkouts = 0
        self.checkins = 0
        event.listen(engine.sync_engine, "checkout", self._on_checkout)
        event.listen(engine.sync_engine, "checkin", self._on_checkin)

    def _on_checkout(self, dbapi_connection, connection_record, connection_proxy):
        self.checkouts += 1

    def _on_checkin(self, dbapi_connection, connection_record):
        self.checkins += 1

    @property
    def outstanding(self) -> int:
        return self.checkouts - self.checkins


async def eventually(predicate, timeout: float = 2.0, interval: float = 0.01):
    """Poll predicate until it is truthy or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'qotd.db'}",
        "seed_script": None,
        "host": "127.0.0.1",
        "http_port": 0,
        "realtime_queue_size": 10,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest_asyncio.fixture()
async def gateway(settings):
    """Gateway with the schema created and no seed rows."""
    gw = PersistenceGateway.from_settings(settings)
    await gw.bootstrap_schema()
    try:
        yield gw
    finally:
        await gw.close()


@pytest.fixture()
def connections(gateway):
    return ConnectionCounter(gateway.engine)


@pytest.fixture()
def bus():
    return EventBus(max_queue_size=10)


@pytest.fixture()
def app(settings, gateway, bus):
    return create_app(settings, gateway=gateway, bus=bus)


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client talking to the app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
