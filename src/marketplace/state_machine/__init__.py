"""Status model: transition tables and legality predicates."""

from marketplace.state_machine.transitions import (
    ACTIVE_OFFER_STATES,
    OFFER_TRANSITIONS,
    SELL_POST_TRANSITIONS,
    TERMINAL_OFFER_STATES,
    TERMINAL_SELL_POST_STATES,
    can_respond,
    can_transition,
    can_transition_offer,
    ensure_offer_transition,
    ensure_transition,
)

__all__ = [
    "ACTIVE_OFFER_STATES",
    "OFFER_TRANSITIONS",
    "SELL_POST_TRANSITIONS",
    "TERMINAL_OFFER_STATES",
    "TERMINAL_SELL_POST_STATES",
    "can_respond",
    "can_transition",
    "can_transition_offer",
    "ensure_offer_transition",
    "ensure_transition",
]
