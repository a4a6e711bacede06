"""Listing lifecycle controller."""

from marketplace.listings.lifecycle import DEFAULT_AUTO_REJECT_MESSAGE, ListingLifecycle

__all__ = [
    "DEFAULT_AUTO_REJECT_MESSAGE",
    "ListingLifecycle",
]
