"""Game models for Toepen."""
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import threading

from config import GAME_CONFIG


# === Enums ===

class Phase(Enum):
    SETUP = "setup"
    LAUNDRY = "laundry"
    PLAYING = "playing"
    RAISE_RESPONSE = "raise_response"
    FORCED_GAMBLE = "forced_gamble"
    BLIND_RAISE_RESPONSE = "blind_raise_response"
    ROUND_END = "round_end"
    GAME_END = "game_end"


RESPONSE_PHASES = (Phase.RAISE_RESPONSE, Phase.FORCED_GAMBLE, Phase.BLIND_RAISE_RESPONSE)


class Response(Enum):
    PENDING = "pending"
    ACCEPT = "accept"
    FOLD = "fold"


class ClaimType(Enum):
    MODEST = "modest"   # vuile was: three face cards and a seven
    FULL = "full"       # witte was: four face cards


# === Card tables ===

SUITS = ["♠", "♥", "♦", "♣"]

# Toepen ordering: J lowest, 10 highest
RANK_STRENGTH = {
    "J": 1,
    "Q": 2,
    "K": 3,
    "A": 4,
    "7": 5,
    "8": 6,
    "9": 7,
    "10": 8,
}

RED_SUITS = {"♥", "♦"}

FACE_RANKS = {"J", "Q", "K"}
MODEST_CLAIM_EXTRA_RANK = "7"

HIDDEN_CARD = {"hidden": True}


# === Models ===

@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    @property
    def id(self) -> str:
        return f"{self.rank}{self.suit}"

    @property
    def strength(self) -> int:
        return RANK_STRENGTH[self.rank]

    @property
    def color(self) -> str:
        return "red" if self.suit in RED_SUITS else "black"

    @property
    def is_face(self) -> bool:
        return self.rank in FACE_RANKS

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rank": self.rank,
            "suit": self.suit,
            "strength": self.strength,
            "color": self.color,
        }

    @classmethod
    def from_id(cls, card_id: str) -> "Card":
        rank, suit = card_id[:-1], card_id[-1]
        if rank not in RANK_STRENGTH or suit not in SUITS:
            raise ValueError(f"Unknown card: {card_id}")
        return cls(rank=rank, suit=suit)


def create_deck() -> list[Card]:
    """Create the 32-card Toepen deck."""
    return [Card(rank=rank, suit=suit) for suit in SUITS for rank in RANK_STRENGTH]


def is_full_claim(hand: list[Card]) -> bool:
    face_cards = [c for c in hand if c.is_face]
    return len(face_cards) == 4


def is_modest_claim(hand: list[Card]) -> bool:
    face_cards = [c for c in hand if c.is_face]
    extras = [c for c in hand if c.rank == MODEST_CLAIM_EXTRA_RANK]
    return len(face_cards) == 3 and len(extras) == 1


CLAIM_PREDICATES = {
    ClaimType.FULL: is_full_claim,
    ClaimType.MODEST: is_modest_claim,
}


@dataclass
class Seat:
    name: str
    sid: Optional[str] = None
    is_bot: bool = False
    connected: bool = True
    score: int = 0
    hand: list[Card] = field(default_factory=list)
    eliminated: bool = False
    hand_revealed: bool = False

    def has_suit(self, suit: str) -> bool:
        return any(c.suit == suit for c in self.hand)

    def reset_for_game(self):
        self.score = 0
        self.hand = []
        self.eliminated = False
        self.hand_revealed = False

    def to_lobby_dict(self, index: int, host_sid: Optional[str]) -> dict:
        return {
            "index": index,
            "name": self.name,
            "is_bot": self.is_bot,
            "is_host": self.sid is not None and self.sid == host_sid,
            "connected": self.connected,
        }


@dataclass
class ResponseSet:
    """Accept/fold decisions collected from every seat asked to respond."""
    kind: Phase
    initiator: Optional[int]
    responses: dict[int, Response] = field(default_factory=dict)

    @classmethod
    def open(cls, kind: Phase, seats: list[int], accepted: list[int],
             initiator: Optional[int] = None) -> "ResponseSet":
        responses = {s: Response.ACCEPT if s in accepted else Response.PENDING for s in seats}
        return cls(kind=kind, initiator=initiator, responses=responses)

    def is_pending(self, seat: int) -> bool:
        return self.responses.get(seat) == Response.PENDING

    def pending_seats(self) -> list[int]:
        return [s for s, r in self.responses.items() if r == Response.PENDING]

    def record(self, seat: int, response: Response):
        self.responses[seat] = response

    def is_complete(self) -> bool:
        return not self.pending_seats()

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "initiator": self.initiator,
            "responses": [{"seat": s, "response": r.value} for s, r in self.responses.items()],
        }


@dataclass
class PendingClaim:
    id: int
    claimant: int
    claim_type: ClaimType
    snapshot: list[Card]

    def is_valid(self) -> bool:
        return CLAIM_PREDICATES[self.claim_type](self.snapshot)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "claimant": self.claimant,
            "claim_type": self.claim_type.value,
        }


@dataclass
class ClaimResult:
    claim_id: int
    claimant: int
    claim_type: ClaimType
    inspector: Optional[int] = None
    valid: Optional[bool] = None
    penalized: Optional[int] = None
    snapshot: list[Card] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "claim_id": self.claim_id,
            "claimant": self.claimant,
            "claim_type": self.claim_type.value,
            "inspector": self.inspector,
            "valid": self.valid,
            "penalized": self.penalized,
            # Only an inspection discloses the claimed cards
            "snapshot": [c.to_dict() for c in self.snapshot] if self.inspector is not None else [],
        }


@dataclass
class RoundResult:
    max_tricks: int
    penalties: dict[int, int] = field(default_factory=dict)
    eliminated: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "max_tricks": self.max_tricks,
            "penalties": [{"seat": s, "points": p} for s, p in self.penalties.items()],
            "eliminated": self.eliminated,
        }


@dataclass
class RoundState:
    number: int
    phase: Phase = Phase.LAUNDRY
    deck: list[Card] = field(default_factory=list)
    current_turn: int = 0
    lead_suit: Optional[str] = None
    current_trick: list[tuple[int, Card]] = field(default_factory=list)  # [(seat, card), ...]
    tricks_completed: int = 0
    stake: int = GAME_CONFIG['initial_stake']
    entry_stake: dict[int, int] = field(default_factory=dict)
    seats_in_round: list[int] = field(default_factory=list)
    tricks_won: dict[int, int] = field(default_factory=dict)
    last_raiser: Optional[int] = None
    responses: Optional[ResponseSet] = None
    pending_claim: Optional[PendingClaim] = None
    last_claim: Optional[ClaimResult] = None
    claimed_this_window: set[int] = field(default_factory=set)
    evaluating: bool = False
    blind_raiser: Optional[int] = None
    blind_raise_done: bool = False
    last_trick: Optional[dict] = None
    last_trick_winner: Optional[int] = None
    result: Optional[RoundResult] = None

    def in_round(self, seat: int) -> bool:
        return seat in self.seats_in_round

    def has_played(self, seat: int) -> bool:
        return any(s == seat for s, _ in self.current_trick)


@dataclass
class Room:
    code: str
    host: Optional[str] = None
    seats: list[Seat] = field(default_factory=list)
    started: bool = False
    round: Optional[RoundState] = None
    round_number: int = 0
    queued_blind_raiser: Optional[int] = None
    winner: Optional[int] = None
    serial: int = 0
    version: int = 0
    next_claim_id: int = 1
    logger: Optional[object] = field(default=None, repr=False, compare=False)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def phase(self) -> Phase:
        if self.round is None:
            return Phase.SETUP
        return self.round.phase

    @property
    def is_full(self) -> bool:
        return len(self.seats) >= GAME_CONFIG['max_seats']

    def active_seats(self) -> list[int]:
        return [i for i, s in enumerate(self.seats) if not s.eliminated]

    def seat_index(self, sid: str) -> Optional[int]:
        for i, seat in enumerate(self.seats):
            if seat.sid == sid:
                return i
        return None

    def host_index(self) -> Optional[int]:
        if self.host is None:
            return None
        return self.seat_index(self.host)

    def lobby_seats(self) -> list[dict]:
        return [s.to_lobby_dict(i, self.host) for i, s in enumerate(self.seats)]

    def is_playing_for_elimination(self, seat: int) -> bool:
        """A seat whose current liability would eliminate it may neither raise nor fold."""
        rnd = self.round
        entry = rnd.entry_stake.get(seat, rnd.stake) if rnd else GAME_CONFIG['initial_stake']
        return self.seats[seat].score + entry >= GAME_CONFIG['elimination_threshold']


# === State filter ===

def _hand_view(room: Room, index: int, viewer: Optional[int]) -> list[dict]:
    seat = room.seats[index]
    if index == viewer or seat.hand_revealed:
        return [c.to_dict() for c in seat.hand]
    return [dict(HIDDEN_CARD) for _ in seat.hand]


def filtered_state(room: Room, viewer: Optional[int]) -> dict:
    """Build the room state as seen from one seat.

    Other seats' hands are replaced by placeholders of the same length unless
    the hand was revealed by a caught bluff. The deck is reduced to a count and
    a pending claim never exposes its snapshot.
    """
    rnd = room.round
    seats = []
    for i, seat in enumerate(room.seats):
        entry = seat.to_lobby_dict(i, room.host)
        entry.update({
            "score": seat.score,
            "eliminated": seat.eliminated,
            "hand_revealed": seat.hand_revealed,
            "hand": _hand_view(room, i, viewer),
            "hand_count": len(seat.hand),
            "tricks_won": rnd.tricks_won.get(i, 0) if rnd else 0,
            "entry_stake": rnd.entry_stake.get(i) if rnd else None,
            "in_round": rnd.in_round(i) if rnd else False,
        })
        seats.append(entry)

    state = {
        "code": room.code,
        "viewer": viewer,
        "started": room.started,
        "phase": room.phase.value,
        "round_number": room.round_number,
        "seats": seats,
        "queued_blind_raise": room.queued_blind_raiser,
        "winner": room.winner,
    }
    if rnd is None:
        return state

    state.update({
        "stake": rnd.stake,
        "current_turn": rnd.current_turn,
        "lead_suit": rnd.lead_suit,
        "current_trick": [{"seat": s, "card": c.to_dict()} for s, c in rnd.current_trick],
        "tricks_completed": rnd.tricks_completed,
        "seats_in_round": list(rnd.seats_in_round),
        "last_raiser": rnd.last_raiser,
        "evaluating": rnd.evaluating,
        "deck_count": len(rnd.deck),
        "responses": rnd.responses.to_dict() if rnd.responses else None,
        "pending_claim": rnd.pending_claim.to_dict() if rnd.pending_claim else None,
        "last_claim": rnd.last_claim.to_dict() if rnd.last_claim else None,
        "blind_raiser": rnd.blind_raiser,
        "last_trick": rnd.last_trick,
        "result": rnd.result.to_dict() if rnd.result else None,
    })
    return state
