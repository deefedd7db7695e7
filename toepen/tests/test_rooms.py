"""Tests for room creation, joining and leaving."""
import os
import random

import pytest

from config import VALIDATION
from errors import ProtocolViolation
from models import Phase
from rooms import RoomRegistry


@pytest.fixture
def registry(engine):
    return RoomRegistry(engine, rng=random.Random(5), game_logs=False)


@pytest.fixture
def lobby(registry):
    """Alice hosts, Bob has joined."""
    room = registry.create_room('sid-alice', 'Alice')
    registry.join_room('sid-bob', room.code, 'Bob')
    return room


class TestCreateAndJoin:

    def test_room_code_format(self, registry):
        room = registry.create_room('sid-alice', 'Alice')
        assert len(room.code) == VALIDATION['room_code_length']
        assert set(room.code) <= set(VALIDATION['room_code_alphabet'])
        assert room.host == 'sid-alice'
        assert registry.get(room.code) is room

    def test_codes_are_unique(self, registry):
        codes = {registry.create_room(f'sid-{i}', f'Player {i}').code for i in range(20)}
        assert len(codes) == 20

    def test_name_is_trimmed(self, registry):
        room = registry.create_room('sid-alice', '  Alice  ')
        assert room.seats[0].name == 'Alice'

    @pytest.mark.parametrize("name", [None, "", "   ", "x" * 21])
    def test_invalid_name(self, registry, name):
        with pytest.raises(ProtocolViolation):
            registry.create_room('sid-alice', name)
        assert registry.rooms == {}

    def test_join_with_lowercase_code(self, registry, lobby):
        registry.join_room('sid-carol', lobby.code.lower(), 'Carol')
        assert [s.name for s in lobby.seats] == ['Alice', 'Bob', 'Carol']

    def test_unknown_room(self, registry):
        with pytest.raises(ProtocolViolation, match="Room not found"):
            registry.join_room('sid-bob', 'ZZZZZZ', 'Bob')

    def test_duplicate_name_ignores_case(self, registry, lobby):
        with pytest.raises(ProtocolViolation, match="already taken"):
            registry.join_room('sid-other', lobby.code, 'alice')

    def test_room_full(self, registry, lobby):
        registry.join_room('sid-carol', lobby.code, 'Carol')
        registry.join_room('sid-dave', lobby.code, 'Dave')
        with pytest.raises(ProtocolViolation, match="full"):
            registry.join_room('sid-erin', lobby.code, 'Erin')
        assert len(lobby.seats) == 4

    def test_cannot_join_started_game(self, registry, lobby):
        registry.start_game('sid-alice')
        with pytest.raises(ProtocolViolation, match="already started"):
            registry.join_room('sid-carol', lobby.code, 'Carol')

    def test_one_room_per_connection(self, registry, lobby):
        with pytest.raises(ProtocolViolation):
            registry.create_room('sid-bob', 'Bobby')

    def test_game_log_attached_when_enabled(self, engine, game_logs_dir):
        registry = RoomRegistry(engine, rng=random.Random(5), game_logs=True)
        room = registry.create_room('sid-alice', 'Alice')
        assert room.logger.path == os.path.join(game_logs_dir, f'room_{room.code}.log')


class TestHostActions:

    def test_add_bots(self, registry, lobby):
        registry.add_bot('sid-alice')
        registry.add_bot('sid-alice')
        assert [s.name for s in lobby.seats[2:]] == ['Bot 1', 'Bot 2']
        assert all(s.is_bot and s.sid is None for s in lobby.seats[2:])

    def test_only_host_adds_bots(self, registry, lobby):
        with pytest.raises(ProtocolViolation):
            registry.add_bot('sid-bob')

    def test_only_host_starts(self, registry, lobby):
        with pytest.raises(ProtocolViolation, match="Not authorized"):
            registry.start_game('sid-bob')
        assert lobby.phase == Phase.SETUP

    def test_host_starts(self, registry, lobby):
        room = registry.start_game('sid-alice')
        assert room is lobby
        assert room.phase == Phase.LAUNDRY

    def test_start_needs_two_seats(self, registry):
        registry.create_room('sid-alice', 'Alice')
        with pytest.raises(ProtocolViolation):
            registry.start_game('sid-alice')


class TestLeave:

    def test_seat_for(self, registry, lobby):
        room, index = registry.seat_for('sid-bob')
        assert room is lobby
        assert index == 1
        with pytest.raises(ProtocolViolation):
            registry.seat_for('sid-nobody')

    def test_leaving_lobby_removes_seat(self, registry, lobby):
        room, new_host = registry.leave('sid-bob')
        assert room is lobby
        assert new_host is None
        assert [s.name for s in lobby.seats] == ['Alice']

    def test_host_leaving_hands_over(self, registry, lobby):
        room, new_host = registry.leave('sid-alice')
        assert new_host == 'sid-bob'
        assert room.host == 'sid-bob'
        assert room.lobby_seats()[0]['is_host'] is True

    def test_leaving_started_game_orphans_seat(self, registry, lobby):
        registry.start_game('sid-alice')
        room, _ = registry.leave('sid-bob')

        seat = room.seats[1]
        assert len(room.seats) == 2
        assert seat.sid is None
        assert not seat.connected
        assert room.round.in_round(1)
        assert seat.score == 0

    def test_last_human_closes_room(self, registry, lobby):
        registry.add_bot('sid-alice')
        registry.leave('sid-bob')
        room, new_host = registry.leave('sid-alice')
        assert room is None
        assert new_host is None
        assert lobby.code not in registry.rooms

    def test_unknown_connection(self, registry):
        assert registry.leave('sid-nobody') == (None, None)
