"""Computer-controlled seats.

Bots only decide *whether* to raise or fold using the configured
probabilities and otherwise play a random legal card. They act through the
same engine operations as connected players.
"""
from actions import PlayCard, Raise, AcceptResponse, FoldResponse
from config import AI_CONFIG
from models import Room, Phase, RESPONSE_PHASES


def seats_to_move(room: Room) -> list[int]:
    """Bot seats the game is currently waiting on."""
    rnd = room.round
    if rnd is None:
        return []

    if rnd.phase == Phase.PLAYING:
        seat = rnd.current_turn
        if (not rnd.evaluating and rnd.in_round(seat)
                and seat < len(room.seats) and room.seats[seat].is_bot):
            return [seat]
        return []

    if rnd.phase in RESPONSE_PHASES and rnd.responses is not None:
        return [s for s in rnd.responses.pending_seats() if room.seats[s].is_bot]

    return []


def fold_probability(room: Room) -> float:
    rnd = room.round
    if rnd.phase == Phase.BLIND_RAISE_RESPONSE:
        return AI_CONFIG['blind_raise_fold_probability']
    if rnd.stake >= AI_CONFIG['high_stakes_threshold']:
        return AI_CONFIG['fold_probability_high_stakes']
    return AI_CONFIG['fold_probability_base']


def choose_action(engine, room: Room, seat: int, rng):
    """Pick the bot's next action, or None if it has nothing to do."""
    if seat not in seats_to_move(room):
        return None

    rnd = room.round
    if rnd.phase in RESPONSE_PHASES:
        if rng.random() < fold_probability(room):
            return FoldResponse()
        return AcceptResponse()

    if engine.can_raise(room, seat) and rng.random() < AI_CONFIG['raise_probability']:
        return Raise()

    legal = engine.legal_card_indices(room, seat)
    if not legal:
        return None
    return PlayCard(card_index=rng.choice(legal))
