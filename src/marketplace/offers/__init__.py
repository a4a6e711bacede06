"""Offer engine: submit, respond, counter, withdraw, and expire offers."""

from marketplace.offers.engine import OfferEngine

__all__ = [
    "OfferEngine",
]
