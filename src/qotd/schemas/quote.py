"""Pydantic schemas for quotes.

Learn: QuoteCreate validates the POST body, QuoteAccepted is the event
snapshot fanned out to subscribers, QuoteRow is a stored row as read back
(column names as declared in the table).
"""

from pydantic import BaseModel, Field, ValidationError, field_validator

from qotd.db.models import DEFAULT_AUTHOR
from qotd.errors import QuoteValidationError

MISSING_TEXT_MESSAGE = "json in a POST request should have a 'text' field"


class QuoteCreate(BaseModel):
    text: str = Field(..., min_length=1)
    author: str = DEFAULT_AUTHOR

    @field_validator("author", mode="before")
    @classmethod
    def default_missing_author(cls, value):
        return DEFAULT_AUTHOR if value is None else value


class QuoteAccepted(BaseModel):
    """Snapshot of an accepted quote; frame order is author, then text."""
    author: str
    text: str


class QuoteRow(BaseModel):
    TEXT: str
    AUTHOR: str


def parse_quote(body: bytes) -> QuoteCreate:
    """Validate a raw request body, mapping every failure to QuoteValidationError."""
    try:
        return QuoteCreate.model_validate_json(body)
    except ValidationError as e:
        errors = e.errors()
        if any(err["loc"][:1] == ("text",) for err in errors) or not errors:
            raise QuoteValidationError(MISSING_TEXT_MESSAGE) from e
        raise QuoteValidationError(f"invalid quote: {errors[0]['msg']}") from e
