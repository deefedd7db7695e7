"""Inbound game actions.

Every `game_action` envelope is parsed into exactly one of the action classes
below; the engine dispatches on the class, never on raw dict fields.
"""
from dataclasses import dataclass

from errors import MalformedAction
from models import ClaimType


@dataclass(frozen=True)
class PlayCard:
    card_index: int
    type = "play-card"


@dataclass(frozen=True)
class Raise:
    type = "raise"


@dataclass(frozen=True)
class AcceptResponse:
    type = "accept-response"


@dataclass(frozen=True)
class FoldResponse:
    type = "fold-response"


@dataclass(frozen=True)
class Fold:
    type = "fold"


@dataclass(frozen=True)
class SubmitClaim:
    claim_type: ClaimType
    type = "submit-claim"


@dataclass(frozen=True)
class InspectClaim:
    type = "inspect-claim"


@dataclass(frozen=True)
class QueueBlindRaise:
    type = "queue-blind-raise"


ACTION_TYPES = {
    cls.type: cls
    for cls in (PlayCard, Raise, AcceptResponse, FoldResponse, Fold,
                SubmitClaim, InspectClaim, QueueBlindRaise)
}


def parse_action(payload) -> object:
    """Turn a raw `{type, ...}` envelope into an action instance."""
    if not isinstance(payload, dict):
        raise MalformedAction("Action must be an object")

    action_type = payload.get("type")
    cls = ACTION_TYPES.get(action_type)
    if cls is None:
        raise MalformedAction(f"Unknown action type: {action_type!r}")

    if cls is PlayCard:
        card_index = payload.get("card_index")
        # bool is an int subclass
        if not isinstance(card_index, int) or isinstance(card_index, bool):
            raise MalformedAction("play-card needs an integer card_index")
        return PlayCard(card_index=card_index)

    if cls is SubmitClaim:
        try:
            claim_type = ClaimType(payload.get("claim_type"))
        except ValueError:
            raise MalformedAction(f"Invalid claim type: {payload.get('claim_type')!r}")
        return SubmitClaim(claim_type=claim_type)

    return cls()
