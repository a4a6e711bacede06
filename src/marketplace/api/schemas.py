"""Request bodies and the response envelope for the HTTP adapter.

Prices arrive as JSON numbers or strings and are parsed to ``Decimal``; the
positivity check is left to the domain layer so it reports a domain
``ValidationError`` like every other business-rule violation.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from marketplace.domain.types import ItemCondition, OfferAction


class SellPostCreate(BaseModel):
    title: str
    price: Decimal
    condition: ItemCondition
    negotiable: bool = True
    description: str | None = None
    expires_at: datetime | None = None


class SellPostUpdate(BaseModel):
    """Partial edit of a listing; omitted fields stay unchanged."""

    title: str | None = None
    description: str | None = None
    price: Decimal | None = None
    negotiable: bool | None = None
    condition: ItemCondition | None = None


class OfferCreate(BaseModel):
    offered_price: Decimal
    message: str | None = None


class OfferResponseRequest(BaseModel):
    """Seller's answer to an offer awaiting them."""

    action: OfferAction
    counter_price: Decimal | None = None
    response_message: str | None = None


class CounterResponseRequest(BaseModel):
    """Buyer's answer to the seller's counter-offer."""

    action: OfferAction
    new_price: Decimal | None = None
    message: str | None = None


def envelope(data: Any, message: str, success: bool = True) -> dict[str, Any]:
    """Wrap *data* in the ``{"success", "data", "message"}`` response shape.

    Pydantic models (and lists of them) are dumped in JSON mode so Decimals
    become strings and datetimes ISO 8601.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
    return {"success": success, "data": data, "message": message}
