"""Pytest fixtures for Toepen tests."""
import sys
import os
import random
import pytest

# Add server directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'server'))

import game_logger
from config import TIMING
from engine import GameEngine
from models import Room, Seat, Card, Phase


class ManualScheduler:
    """Scheduler driven by the test: callbacks run only when the clock is advanced."""

    def __init__(self):
        self.now = 0.0
        self._queue = []   # [(due, seq, fn), ...]
        self._seq = 0

    def call_later(self, delay, fn):
        self._seq += 1
        self._queue.append((self.now + delay, self._seq, fn))

    def advance(self, seconds):
        """Move the clock forward, firing everything that falls due on the way."""
        target = self.now + seconds
        while True:
            due = [item for item in self._queue if item[0] <= target]
            if not due:
                break
            item = min(due, key=lambda i: (i[0], i[1]))
            self._queue.remove(item)
            self.now = item[0]
            item[2]()
        self.now = target

    @property
    def pending(self):
        return len(self._queue)


@pytest.fixture(autouse=True)
def game_logs_dir(tmp_path, monkeypatch):
    """Keep game logs out of the source tree."""
    logs_dir = str(tmp_path / 'logs')
    monkeypatch.setattr(game_logger, 'LOGS_DIR', logs_dir)
    return logs_dir


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def events():
    """Events the engine reported from deferred steps, in order."""
    return []


@pytest.fixture
def engine(scheduler, events):
    return GameEngine(scheduler, listener=lambda room, event: events.append(event),
                      rng=random.Random(1234))


def make_room(*names, bots=()):
    room = Room(code='ABC123', host='sid-0')
    for i, name in enumerate(names):
        room.seats.append(Seat(name=name, sid=f'sid-{i}'))
    for name in bots:
        room.seats.append(Seat(name=name, is_bot=True, connected=False))
    return room


def rig(room, hands):
    """Replace seat hands with known cards, e.g. {0: ['10♠', 'J♥']}."""
    for seat, cards in hands.items():
        room.seats[seat].hand = [Card.from_id(c) for c in cards]


def finish_laundry(scheduler):
    scheduler.advance(TIMING['laundry_window'])


def play_trick(engine, room, scheduler, order):
    """Each seat in `order` plays its first card, then the trick is evaluated."""
    for seat in order:
        engine.play_card(room, seat, 0)
    scheduler.advance(TIMING['trick_evaluation_delay'])


@pytest.fixture
def room3():
    return make_room('Alice', 'Bob', 'Charlie')


@pytest.fixture
def room4():
    return make_room('Alice', 'Bob', 'Charlie', 'Dave')


@pytest.fixture
def playing3(engine, scheduler, room3):
    """Three seats, round 1, laundry window closed, seat 0 to play."""
    engine.start_game(room3)
    finish_laundry(scheduler)
    assert room3.phase == Phase.PLAYING
    return room3


@pytest.fixture
def playing4(engine, scheduler, room4):
    engine.start_game(room4)
    finish_laundry(scheduler)
    assert room4.phase == Phase.PLAYING
    return room4
