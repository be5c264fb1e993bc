"""FastAPI dependencies — collaborators come from app.state.

create_app() stores the gateway and the event bus on app.state; routes and
the WebSocket handler pull them from there instead of importing globals,
so tests can hand in their own instances.
"""

from fastapi import Depends
from starlette.requests import HTTPConnection

from qotd.db.gateway import PersistenceGateway
from qotd.events.bus import EventBus
from qotd.services.quote_service import QuoteService


def get_gateway(conn: HTTPConnection) -> PersistenceGateway:
    return conn.app.state.gateway


def get_bus(conn: HTTPConnection) -> EventBus:
    return conn.app.state.bus


def get_quote_service(
    gateway: PersistenceGateway = Depends(get_gateway),
    bus: EventBus = Depends(get_bus),
) -> QuoteService:
    return QuoteService(gateway, bus)
