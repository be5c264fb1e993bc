"""Quote service — the write and read paths.

Learn: the write path is one straight await chain: insert, then publish,
then let the route respond. A StoreError raised by the insert skips the
publish and leaves through the app's exception handler, so a response is
produced exactly once and nothing is announced that was not stored.
"""

import structlog

from qotd.db.gateway import PersistenceGateway
from qotd.events.bus import EventBus
from qotd.events.types import DB_UPDATES
from qotd.schemas.quote import QuoteAccepted, QuoteCreate

logger = structlog.get_logger()


class QuoteService:
    """Business logic for accepting and listing quotes."""

    def __init__(self, gateway: PersistenceGateway, bus: EventBus):
        self.gateway = gateway
        self.bus = bus

    async def submit(self, quote: QuoteCreate) -> QuoteAccepted:
        """Store a quote and announce it to live subscribers."""
        await self.gateway.insert_quote(quote.text, quote.author)

        event = QuoteAccepted(author=quote.author, text=quote.text)
        delivered = self.bus.publish(DB_UPDATES, event.model_dump())
        logger.info("quotes.accepted", author=quote.author, subscribers=delivered)
        return event

    async def list_quotes(self) -> list[dict]:
        return await self.gateway.list_quotes()
