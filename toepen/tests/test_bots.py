"""Tests for computer-controlled seats."""
import pytest

import bots
from actions import PlayCard, Raise, AcceptResponse, FoldResponse
from config import AI_CONFIG
from models import Phase
from conftest import make_room, finish_laundry


class FixedRandom:
    """Stands in for random.Random with a fixed draw."""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value

    def choice(self, seq):
        return seq[0]


@pytest.fixture
def bot_room(engine, scheduler):
    room = make_room('Alice', bots=('Bot 1', 'Bot 2'))
    engine.start_game(room)
    finish_laundry(scheduler)
    return room


class TestChooseAction:

    def test_nothing_to_do_for_human_turn(self, engine, bot_room):
        assert bots.seats_to_move(bot_room) == []
        assert bots.choose_action(engine, bot_room, 1, FixedRandom(0.5)) is None

    def test_responds_to_raise(self, engine, bot_room):
        engine.raise_stakes(bot_room, 0)
        assert bots.seats_to_move(bot_room) == [1, 2]

        assert bots.choose_action(engine, bot_room, 1, FixedRandom(0.1)) == FoldResponse()
        assert bots.choose_action(engine, bot_room, 1, FixedRandom(0.9)) == AcceptResponse()

    def test_high_stakes_fold_more(self, engine, bot_room):
        engine.raise_stakes(bot_room, 0)
        bot_room.round.stake = AI_CONFIG['high_stakes_threshold']
        assert bots.fold_probability(bot_room) == AI_CONFIG['fold_probability_high_stakes']

    def test_plays_legal_card_or_raises(self, engine, bot_room):
        engine.play_card(bot_room, 0, 0)
        assert bots.seats_to_move(bot_room) == [1]

        action = bots.choose_action(engine, bot_room, 1, FixedRandom(0.99))
        assert isinstance(action, PlayCard)
        assert action.card_index in engine.legal_card_indices(bot_room, 1)

        assert bots.choose_action(engine, bot_room, 1, FixedRandom(0.0)) == Raise()


class TestBotsInPlay:

    def test_bots_answer_a_raise(self, engine, scheduler, bot_room, events):
        engine.raise_stakes(bot_room, 0)
        scheduler.advance(10)
        assert bot_room.phase != Phase.RAISE_RESPONSE
        answered = [e for e in events if e["type"] in ("accept-response", "fold-response")]
        assert sorted(e["seat"] for e in answered) == [1, 2]

    def test_bot_only_table_keeps_playing(self, engine, scheduler):
        room = make_room(bots=('Bot 1', 'Bot 2', 'Bot 3'))
        engine.start_game(room)
        scheduler.advance(300)

        assert room.round_number >= 2 or room.phase == Phase.GAME_END
        assert all(s.score >= 0 for s in room.seats)
