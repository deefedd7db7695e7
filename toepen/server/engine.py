"""Game engine for Toepen - handles all game logic."""
import random
import traceback
from typing import Optional

import bots
from actions import (
    PlayCard, Raise, AcceptResponse, FoldResponse, Fold,
    SubmitClaim, InspectClaim, QueueBlindRaise,
)
from config import GAME_CONFIG, TIMING
from errors import (
    GameError, ProtocolViolation, TurnViolation, PhaseViolation,
    IllegalPlay, MalformedAction,
)
from game_logger import describe_state
from models import (
    Room, Seat, Card, RoundState, ResponseSet, PendingClaim, ClaimResult,
    RoundResult, Phase, Response, ClaimType, RESPONSE_PHASES,
    create_deck, filtered_state,
)


class GameEngine:
    """Enforces the rules of Toepen.

    The engine keeps no room state of its own: every operation takes the room
    it acts on, so any number of rooms can share one engine. Callers must hold
    ``room.lock``; deferred steps take it themselves.

    ``listener(room, event)`` is called after every deferred step (trick
    evaluation, timeouts, new rounds, bot moves) so the transport can
    broadcast the new state. Steps triggered by an inbound action are
    broadcast by the caller.
    """

    def __init__(self, scheduler, listener=None, rng: Optional[random.Random] = None):
        self.scheduler = scheduler
        self.listener = listener
        self.rng = rng or random.Random()
        self._handlers = {
            PlayCard: lambda room, seat, a: self.play_card(room, seat, a.card_index),
            Raise: lambda room, seat, a: self.raise_stakes(room, seat),
            AcceptResponse: lambda room, seat, a: self.respond(room, seat, accept=True),
            FoldResponse: lambda room, seat, a: self.respond(room, seat, accept=False),
            Fold: lambda room, seat, a: self.fold(room, seat),
            SubmitClaim: lambda room, seat, a: self.submit_claim(room, seat, a.claim_type),
            InspectClaim: lambda room, seat, a: self.inspect_claim(room, seat),
            QueueBlindRaise: lambda room, seat, a: self.queue_blind_raise(room, seat),
        }

    def apply(self, room: Room, seat: int, action):
        """Route a parsed action to the operation that handles it."""
        handler = self._handlers.get(type(action))
        if handler is None:
            raise MalformedAction(f"Unsupported action: {action!r}")

        before = describe_state(room)
        result = handler(room, seat, action)
        self._log(room, before, f"{room.seats[seat].name}: {describe_action(action)}")
        return result

    # === Game Setup ===

    def start_game(self, room: Room):
        """Start the game with the current seats."""
        if room.started:
            raise ProtocolViolation("Game already started")
        if len(room.seats) < GAME_CONFIG['min_seats']:
            raise ProtocolViolation(f"Need at least {GAME_CONFIG['min_seats']} players to start")

        room.started = True
        room.round_number = 0
        room.winner = None
        room.queued_blind_raiser = None
        for seat in room.seats:
            seat.reset_for_game()

        self._start_round(room, starting_seat=0)
        self._touch(room)

    def _start_round(self, room: Room, starting_seat: int):
        """Reset stakes, apply a queued blind raise, deal and open the first sub-phase."""
        room.round_number += 1
        rnd = RoundState(number=room.round_number, current_turn=starting_seat)
        room.round = rnd

        active = room.active_seats()
        for seat in room.seats:
            seat.hand_revealed = False
        rnd.entry_stake = {s: GAME_CONFIG['initial_stake'] for s in active}

        queued = room.queued_blind_raiser
        room.queued_blind_raiser = None
        if queued is not None and queued in active:
            rnd.blind_raiser = queued
            rnd.stake = GAME_CONFIG['blind_raise_stake']
            rnd.entry_stake[queued] = rnd.stake
            rnd.last_raiser = queued

        self.deal_round(room)
        self._after_deal(room)

    def deal_round(self, room: Room):
        """Shuffle a fresh deck and deal a hand to every active seat."""
        rnd = room.round
        rnd.current_trick = []
        rnd.lead_suit = None
        rnd.tricks_completed = 0
        rnd.evaluating = False
        rnd.seats_in_round = room.active_seats()
        rnd.tricks_won = {s: 0 for s in rnd.seats_in_round}

        deck = create_deck()
        self.rng.shuffle(deck)

        for seat in room.seats:
            seat.hand = []
        for s in rnd.seats_in_round:
            hand = room.seats[s].hand
            for _ in range(GAME_CONFIG['hand_size']):
                hand.append(deck.pop())

        # Remainder feeds laundry re-deals
        rnd.deck = deck

    def _after_deal(self, room: Room):
        rnd = room.round
        brink = GAME_CONFIG['elimination_threshold'] - 1
        on_the_brink = [s for s in rnd.seats_in_round if room.seats[s].score == brink]
        if on_the_brink:
            self._open_forced_gamble(room, on_the_brink)
        else:
            self._open_laundry_or_continue(room)

    # === Card Play ===

    def play_card(self, room: Room, seat: int, card_index: int) -> Card:
        """Play a card from a seat's hand into the current trick."""
        rnd = self._require_round(room)
        self._validate_phase(room, Phase.PLAYING)
        if rnd.evaluating:
            raise TurnViolation("Trick is being evaluated")
        if not rnd.in_round(seat):
            raise TurnViolation("Seat is not in this round")
        if rnd.current_turn != seat:
            raise TurnViolation("It is not your turn to play")

        player = room.seats[seat]
        if card_index < 0 or card_index >= len(player.hand):
            raise IllegalPlay("Card not in hand")
        card = player.hand[card_index]
        self._validate_card_play(player, card, rnd)

        player.hand.pop(card_index)
        rnd.current_trick.append((seat, card))
        if len(rnd.current_trick) == 1:
            rnd.lead_suit = card.suit

        if self._trick_complete(rnd):
            self._schedule_evaluation(room)
        else:
            rnd.current_turn = self._next_seat(room, seat)

        self._touch(room)
        return card

    def _validate_card_play(self, player: Seat, card: Card, rnd: RoundState):
        """Validate that playing this card is legal."""
        if not rnd.current_trick:
            # Leading - any card is legal
            return

        if player.has_suit(rnd.lead_suit) and card.suit != rnd.lead_suit:
            raise IllegalPlay(f"Must follow suit ({rnd.lead_suit})")

    def legal_card_indices(self, room: Room, seat: int) -> list[int]:
        """Indices of the cards a seat may play right now."""
        rnd = room.round
        if (rnd is None or rnd.phase != Phase.PLAYING or rnd.evaluating
                or rnd.current_turn != seat or not rnd.in_round(seat)):
            return []

        player = room.seats[seat]
        if not rnd.current_trick or not player.has_suit(rnd.lead_suit):
            return list(range(len(player.hand)))
        return [i for i, c in enumerate(player.hand) if c.suit == rnd.lead_suit]

    def _trick_complete(self, rnd: RoundState) -> bool:
        if not rnd.current_trick:
            return False
        return all(rnd.has_played(s) for s in rnd.seats_in_round)

    def _schedule_evaluation(self, room: Room):
        room.round.evaluating = True
        self._schedule(room, TIMING['trick_evaluation_delay'], self._evaluate_step, Phase.PLAYING)

    def _evaluate_step(self, room: Room) -> dict:
        winner, card = self.evaluate_trick(room)
        return {"type": "trick-won", "seat": winner, "card": card.to_dict()}

    @staticmethod
    def trick_winner(trick: list[tuple[int, Card]], lead_suit: str,
                     seats: Optional[list[int]] = None) -> tuple[int, Card]:
        """Highest lead-suit card wins; strengths within a suit never tie.

        Only plays by ``seats`` count: a card left on the table by a seat that
        folded afterwards cannot win. If none of the counted plays is in the
        lead suit, the first counted play sets the suit.
        """
        plays = [(seat, card) for seat, card in trick if seats is None or seat in seats]
        if not plays:
            raise GameError("No cards in trick")
        lead_plays = [play for play in plays if play[1].suit == lead_suit]
        if not lead_plays:
            suit = plays[0][1].suit
            lead_plays = [play for play in plays if play[1].suit == suit]
        return max(lead_plays, key=lambda play: play[1].strength)

    def evaluate_trick(self, room: Room) -> tuple[int, Card]:
        """Resolve the completed trick and either continue play or end the round."""
        rnd = room.round
        winner, winning_card = self.trick_winner(rnd.current_trick, rnd.lead_suit, rnd.seats_in_round)

        rnd.tricks_won[winner] = rnd.tricks_won.get(winner, 0) + 1
        rnd.last_trick = {
            "winner": winner,
            "cards": [{"seat": s, "card": c.to_dict()} for s, c in rnd.current_trick],
        }
        rnd.last_trick_winner = winner
        rnd.current_trick = []
        rnd.lead_suit = None
        rnd.tricks_completed += 1
        rnd.current_turn = winner
        rnd.evaluating = False

        if rnd.tricks_completed >= GAME_CONFIG['tricks_per_round']:
            self._end_round(room)

        return winner, winning_card

    def _next_seat(self, room: Room, seat: int) -> int:
        """Next seat clockwise that is still in the round."""
        rnd = room.round
        count = len(room.seats)
        for step in range(1, count + 1):
            candidate = (seat + step) % count
            if rnd.in_round(candidate):
                return candidate
        raise GameError("No seat left in the round")

    # === Stakes ===

    def _validate_raise(self, room: Room, seat: int):
        rnd = self._require_round(room)
        self._validate_phase(room, Phase.PLAYING)
        if rnd.evaluating:
            raise TurnViolation("Trick is being evaluated")
        if not rnd.in_round(seat):
            raise TurnViolation("Seat is not in this round")
        if rnd.current_turn != seat:
            raise TurnViolation("Not your turn to raise")
        if rnd.last_raiser == seat:
            raise TurnViolation("You made the last raise")
        if rnd.stake >= GAME_CONFIG['max_stake']:
            raise PhaseViolation("Stakes are already at maximum")
        if room.is_playing_for_elimination(seat):
            raise TurnViolation("Playing for elimination: cannot raise")

    def can_raise(self, room: Room, seat: int) -> bool:
        try:
            self._validate_raise(room, seat)
        except GameError:
            return False
        return True

    def raise_stakes(self, room: Room, seat: int) -> int:
        """Raise the stake by one and ask every other seat in the round to accept or fold."""
        self._validate_raise(room, seat)

        rnd = room.round
        rnd.stake += 1
        rnd.last_raiser = seat
        rnd.entry_stake[seat] = rnd.stake
        self._open_responses(room, Phase.RAISE_RESPONSE, accepted=[seat], initiator=seat)

        self._touch(room)
        return rnd.stake

    def respond(self, room: Room, seat: int, accept: bool) -> bool:
        """Accept or fold in a raise, forced gamble or blind raise sub-phase.

        Returns whether the seat ended up accepting; a seat playing for
        elimination is never allowed to fold.
        """
        rnd = self._require_round(room)
        if room.phase not in RESPONSE_PHASES:
            raise PhaseViolation("There is nothing to respond to")
        if not rnd.responses.is_pending(seat):
            raise TurnViolation("No response expected from this seat")

        if not accept and room.is_playing_for_elimination(seat):
            accept = True

        if accept:
            self._accept(room, seat)
        else:
            rnd.responses.record(seat, Response.FOLD)
            self._fold_out(room, seat)

        self._check_responses(room)
        self._touch(room)
        return accept

    def fold(self, room: Room, seat: int) -> int:
        """Leave the round voluntarily, paying the seat's entry stake."""
        rnd = self._require_round(room)
        self._validate_phase(room, Phase.PLAYING)
        if rnd.evaluating:
            raise TurnViolation("Trick is being evaluated")
        if not rnd.in_round(seat):
            raise TurnViolation("Seat is not in this round")
        if rnd.has_played(seat):
            raise TurnViolation("Cannot fold after playing to this trick")
        if room.is_playing_for_elimination(seat):
            raise TurnViolation("Playing for elimination: cannot fold")

        penalty = self._fold_out(room, seat)
        if len(rnd.seats_in_round) <= 1:
            self._end_round(room)
        else:
            if rnd.current_turn == seat:
                rnd.current_turn = self._next_seat(room, seat)
            if self._trick_complete(rnd):
                self._schedule_evaluation(room)

        self._touch(room)
        return penalty

    def _accept(self, room: Room, seat: int):
        rnd = room.round
        rnd.responses.record(seat, Response.ACCEPT)
        rnd.entry_stake[seat] = rnd.stake

    def _fold_out(self, room: Room, seat: int) -> int:
        """Remove a seat from the round; it pays the stake it had entered with."""
        rnd = room.round
        penalty = rnd.entry_stake[seat]
        room.seats[seat].score += penalty
        rnd.seats_in_round.remove(seat)
        return penalty

    def _open_responses(self, room: Room, kind: Phase, accepted: list[int],
                        initiator: Optional[int]):
        rnd = room.round
        rnd.responses = ResponseSet.open(kind, list(rnd.seats_in_round), accepted, initiator)
        self._set_phase(room, kind)
        self._schedule(room, TIMING['response_timeout'], self._response_timeout, kind)
        self._check_responses(room)

    def _check_responses(self, room: Room):
        rnd = room.round
        if rnd.responses.is_complete() or len(rnd.seats_in_round) <= 1:
            self._resolve_responses(room)

    def _response_timeout(self, room: Room) -> dict:
        pending = room.round.responses.pending_seats()
        for seat in pending:
            self._accept(room, seat)
        self._resolve_responses(room)
        return {"type": "response-timeout", "auto_accepted": pending}

    def _resolve_responses(self, room: Room):
        rnd = room.round
        kind = rnd.responses.kind
        rnd.responses = None

        if len(rnd.seats_in_round) <= 1:
            self._end_round(room)
        elif kind == Phase.FORCED_GAMBLE:
            self._open_laundry_or_continue(room)
        else:
            self._resume_play(room)

    def _resume_play(self, room: Room):
        rnd = room.round
        self._set_phase(room, Phase.PLAYING)
        if not rnd.in_round(rnd.current_turn):
            rnd.current_turn = self._next_seat(room, rnd.current_turn)

    # === Forced Gamble (armoede) ===

    def _open_forced_gamble(self, room: Room, on_the_brink: list[int]):
        """One point from elimination: the whole table plays for the forced stake.

        Seats on the brink cannot fold anyway, so they start out accepted.
        """
        rnd = room.round
        rnd.stake = max(rnd.stake, GAME_CONFIG['forced_gamble_stake'])
        for seat in on_the_brink:
            rnd.entry_stake[seat] = rnd.stake
        self._open_responses(room, Phase.FORCED_GAMBLE, accepted=on_the_brink, initiator=None)

    # === Laundry ===

    def _open_laundry_or_continue(self, room: Room):
        rnd = room.round
        if len(rnd.deck) >= GAME_CONFIG['hand_size']:
            rnd.claimed_this_window = set()
            self._set_phase(room, Phase.LAUNDRY)
            self._schedule(room, TIMING['laundry_window'], self._laundry_closed, Phase.LAUNDRY)
        else:
            self._finish_laundry(room)

    def _laundry_closed(self, room: Room) -> dict:
        self._finish_laundry(room)
        return {"type": "laundry-closed"}

    def _finish_laundry(self, room: Room):
        rnd = room.round
        if (rnd.blind_raiser is not None and not rnd.blind_raise_done
                and rnd.in_round(rnd.blind_raiser)):
            rnd.blind_raise_done = True
            self._open_responses(room, Phase.BLIND_RAISE_RESPONSE,
                                 accepted=[rnd.blind_raiser], initiator=rnd.blind_raiser)
        else:
            self._resume_play(room)

    def submit_claim(self, room: Room, seat: int, claim_type: ClaimType) -> PendingClaim:
        """Claim a laundry hand; other seats get an inspection window."""
        rnd = self._require_round(room)
        self._validate_phase(room, Phase.LAUNDRY)
        if rnd.pending_claim is not None:
            raise PhaseViolation("Another claim is awaiting inspection")
        if not rnd.in_round(seat):
            raise TurnViolation("Seat is not in this round")
        if seat in rnd.claimed_this_window:
            raise TurnViolation("You already claimed in this window")
        if len(rnd.deck) < GAME_CONFIG['hand_size']:
            raise PhaseViolation("Not enough cards left for a new hand")

        claim = PendingClaim(
            id=room.next_claim_id,
            claimant=seat,
            claim_type=claim_type,
            snapshot=list(room.seats[seat].hand),
        )
        room.next_claim_id += 1
        rnd.pending_claim = claim
        rnd.claimed_this_window.add(seat)

        # Re-entering the phase retires the running laundry window
        self._set_phase(room, Phase.LAUNDRY)
        self._schedule(room, TIMING['inspection_window'], self._claim_unchallenged, Phase.LAUNDRY)

        self._touch(room)
        return claim

    def inspect_claim(self, room: Room, seat: int) -> ClaimResult:
        """Challenge the pending claim. Whoever was wrong pays."""
        rnd = self._require_round(room)
        if room.phase != Phase.LAUNDRY or rnd.pending_claim is None:
            raise PhaseViolation("No laundry claim to inspect")
        claim = rnd.pending_claim
        if seat == claim.claimant:
            raise TurnViolation("Cannot inspect your own claim")
        if not rnd.in_round(seat):
            raise TurnViolation("Seat is not in this round")

        valid = claim.is_valid()
        penalized = seat if valid else claim.claimant
        room.seats[penalized].score += GAME_CONFIG['claim_penalty']
        if not valid:
            room.seats[claim.claimant].hand_revealed = True

        self._redeal(room, claim.claimant)
        rnd.last_claim = ClaimResult(
            claim_id=claim.id,
            claimant=claim.claimant,
            claim_type=claim.claim_type,
            inspector=seat,
            valid=valid,
            penalized=penalized,
            snapshot=claim.snapshot,
        )
        rnd.pending_claim = None
        self._open_laundry_or_continue(room)

        self._touch(room)
        return rnd.last_claim

    def _claim_unchallenged(self, room: Room) -> dict:
        rnd = room.round
        claim = rnd.pending_claim
        self._redeal(room, claim.claimant)
        rnd.last_claim = ClaimResult(
            claim_id=claim.id,
            claimant=claim.claimant,
            claim_type=claim.claim_type,
        )
        rnd.pending_claim = None
        self._open_laundry_or_continue(room)
        return {"type": "claim-unchallenged", "seat": claim.claimant}

    def _redeal(self, room: Room, seat: int):
        deck = room.round.deck
        room.seats[seat].hand = [deck.pop() for _ in range(GAME_CONFIG['hand_size'])]

    # === Blind Raise ===

    def queue_blind_raise(self, room: Room, seat: int):
        """Pre-commit to a raise that takes effect when the next round starts.

        Only possible between rounds, by a seat that would survive losing the
        blind stake.
        """
        if room.phase != Phase.ROUND_END:
            raise PhaseViolation("A blind raise can only be queued between rounds")
        if room.seats[seat].eliminated:
            raise TurnViolation("Eliminated seats cannot raise")
        if room.queued_blind_raiser is not None:
            raise PhaseViolation("A blind raise is already queued")
        score = room.seats[seat].score
        if score + GAME_CONFIG['blind_raise_stake'] >= GAME_CONFIG['elimination_threshold']:
            raise TurnViolation("Playing for elimination: cannot raise")

        room.queued_blind_raiser = seat
        self._touch(room)

    # === Scoring ===

    def _end_round(self, room: Room) -> RoundResult:
        """Penalize every seat short of the most tricks, then eliminate and move on."""
        rnd = room.round
        max_tricks = max(rnd.tricks_won.get(s, 0) for s in rnd.seats_in_round)

        result = RoundResult(max_tricks=max_tricks)
        for s in rnd.seats_in_round:
            if rnd.tricks_won.get(s, 0) < max_tricks:
                penalty = rnd.entry_stake[s]
                room.seats[s].score += penalty
                result.penalties[s] = penalty

        threshold = GAME_CONFIG['elimination_threshold']
        for i, seat in enumerate(room.seats):
            if not seat.eliminated and seat.score >= threshold:
                seat.eliminated = True
                result.eliminated.append(i)

        rnd.result = result
        rnd.responses = None
        rnd.pending_claim = None
        rnd.evaluating = False

        active = room.active_seats()
        if len(active) <= 1:
            room.winner = active[0] if active else None
            room.queued_blind_raiser = None
            self._set_phase(room, Phase.GAME_END)
        else:
            self._set_phase(room, Phase.ROUND_END)
            self._schedule(room, TIMING['round_end_delay'], self._next_round_step, Phase.ROUND_END)
        return result

    def _round_starter(self, room: Room) -> int:
        """Seat with the most tricks leads next round (last trick winner breaks ties)."""
        rnd = room.round
        leaders = [s for s in rnd.seats_in_round
                   if rnd.tricks_won.get(s, 0) == rnd.result.max_tricks]
        starter = rnd.last_trick_winner if rnd.last_trick_winner in leaders else leaders[0]
        if room.seats[starter].eliminated:
            starter = room.active_seats()[0]
        return starter

    def _next_round_step(self, room: Room) -> dict:
        self._start_round(room, self._round_starter(room))
        return {"type": "round-started", "round": room.round_number}

    # === Deferred steps ===

    def _schedule(self, room: Room, delay: float, step, phase: Phase):
        """Run ``step(room)`` later, unless the room has moved on by then.

        The callback is tagged with the phase and the room serial at schedule
        time and does nothing on mismatch. Opening a claim bumps the serial,
        so an inspection timer also belongs to exactly one claim.
        """
        serial = room.serial

        def fire():
            with room.lock:
                if room.phase != phase or room.serial != serial:
                    return
                before = describe_state(room)
                try:
                    event = step(room)
                except Exception:
                    print(f"[engine] room {room.code}: deferred step failed\n{traceback.format_exc()}")
                    return
                self._log(room, before, f"server: {event['type']}")
                self._touch(room)
                self._notify(room, event)

        self.scheduler.call_later(delay, fire)

    def _touch(self, room: Room):
        """Record a state change and give any bot that now has to act its move."""
        room.version += 1
        version = room.version
        for seat in bots.seats_to_move(room):
            self._schedule_bot(room, seat, version)

    def _schedule_bot(self, room: Room, seat: int, version: int):
        def fire():
            with room.lock:
                if room.version != version:
                    return
                action = bots.choose_action(self, room, seat, self.rng)
                if action is None:
                    return
                try:
                    self.apply(room, seat, action)
                except GameError as e:
                    print(f"[engine] room {room.code}: bot {room.seats[seat].name} rejected: {e}")
                    return
                except Exception:
                    print(f"[engine] room {room.code}: bot move failed\n{traceback.format_exc()}")
                    return
                self._notify(room, {"type": action.type, "seat": seat})

        self.scheduler.call_later(TIMING['bot_decision_delay'], fire)

    def _notify(self, room: Room, event: dict):
        if self.listener is None:
            return
        try:
            self.listener(room, event)
        except Exception:
            print(f"[engine] room {room.code}: listener failed\n{traceback.format_exc()}")

    def _log(self, room: Room, before: str, executed: str):
        if room.logger is None:
            return
        try:
            room.logger.log_step(before, executed)
        except OSError as e:
            print(f"[engine] room {room.code}: could not write game log: {e}")

    # === Helper Methods ===

    def _set_phase(self, room: Room, phase: Phase):
        room.round.phase = phase
        room.serial += 1

    def _require_round(self, room: Room) -> RoundState:
        if room.round is None:
            raise PhaseViolation("Game has not started")
        return room.round

    def _validate_phase(self, room: Room, expected_phase: Phase):
        """Validate the room is in the expected phase."""
        if room.phase != expected_phase:
            raise PhaseViolation(
                f"Expected phase {expected_phase.value}, "
                f"but in {room.phase.value}"
            )

    # === Game State Queries ===

    def get_game_state(self, room: Room, viewer: Optional[int] = None) -> dict:
        """Get the room state from one seat's perspective."""
        state = filtered_state(room, viewer)
        if viewer is not None and room.round is not None:
            state["legal_cards"] = self.legal_card_indices(room, viewer)
            state["can_raise"] = self.can_raise(room, viewer)
            responses = room.round.responses
            state["awaiting_response"] = bool(responses and responses.is_pending(viewer))
        return state


def describe_action(action) -> str:
    if isinstance(action, PlayCard):
        return f"{action.type} {action.card_index}"
    if isinstance(action, SubmitClaim):
        return f"{action.type} {action.claim_type.value}"
    return action.type
