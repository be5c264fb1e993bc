"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running, the store
is reachable, and reports how many realtime subscribers are attached.
"""

from fastapi import APIRouter, Depends

from qotd import __version__
from qotd.api.deps import get_bus, get_gateway
from qotd.db.gateway import PersistenceGateway
from qotd.errors import StoreError
from qotd.events.bus import EventBus
from qotd.events.types import DB_UPDATES

router = APIRouter()


@router.get("/health")
async def health_check(
    gateway: PersistenceGateway = Depends(get_gateway),
    bus: EventBus = Depends(get_bus),
):
    """Check server health and storage connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await gateway.ping()
        checks["storage"] = "ok"
    except StoreError as e:
        checks["storage"] = f"error: {e}"

    status = "healthy" if checks["storage"] == "ok" else "degraded"
    return {"status": status, **checks, "subscribers": bus.subscriber_count(DB_UPDATES)}
