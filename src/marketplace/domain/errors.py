"""Domain-specific exception classes for the marketplace offer service.

Every error carries an HTTP-equivalent ``status_code`` so transport adapters
can translate it without inspecting message text.
"""

from __future__ import annotations

from enum import StrEnum


class MarketplaceError(Exception):
    """Base class for all domain errors in the marketplace."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(MarketplaceError):
    """Raised for malformed input such as a non-positive price."""

    status_code = 400


class InvalidOfferError(ValidationError):
    """Raised when an offer price violates the listing's pricing policy."""


class NotFoundError(MarketplaceError):
    """Raised when a referenced sell post or offer does not exist.

    Attributes:
        entity: Kind of entity that was looked up (``"sell_post"`` / ``"offer"``).
        entity_id: The identifier that was not found.
    """

    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.replace('_', ' ').capitalize()} '{entity_id}' not found")


class ForbiddenError(MarketplaceError):
    """Raised when the acting user is not the party required for an operation."""

    status_code = 403


class ConflictError(MarketplaceError):
    """Raised for legal-but-stale operations; the client should refetch."""

    status_code = 409


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not in the transition table.

    Attributes:
        current_status: The status the entity was in.
        requested_status: The status the caller asked for.
    """

    def __init__(self, current_status: StrEnum, requested_status: StrEnum) -> None:
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Cannot change status from '{current_status}' to '{requested_status}'"
        )
