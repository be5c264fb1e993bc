"""Quote API routes.

Learn: routes handle HTTP concerns, QuoteService handles the work. Errors
are not caught here: QuoteValidationError and StoreError propagate to the
exception handlers registered in qotd.main, which turn them into the
404 / 400 plain-text responses.
"""

from fastapi import APIRouter, Depends, Request, Response

from qotd.api.deps import get_quote_service
from qotd.schemas.quote import QuoteRow, parse_quote
from qotd.services.quote_service import QuoteService

router = APIRouter()


@router.post("/quotes", response_class=Response)
async def create_quote(request: Request, svc: QuoteService = Depends(get_quote_service)):
    """Store a quote and broadcast it. Body: {"text": str, "author"?: str}."""
    quote = parse_quote(await request.body())
    await svc.submit(quote)
    return Response(status_code=200)


@router.get("/quotes", response_model=list[QuoteRow])
async def list_quotes(svc: QuoteService = Depends(get_quote_service)):
    return await svc.list_quotes()
