"""Room registry: every open room, keyed by its code."""
import random
import threading
from typing import Optional

from config import GAME_CONFIG, VALIDATION, LOGGING_CONFIG
from errors import ProtocolViolation
from game_logger import GameLogger
from models import Room, Seat


def normalize_name(name) -> str:
    if not isinstance(name, str):
        raise ProtocolViolation("Name is required")
    name = name.strip()
    if not VALIDATION['name_min_length'] <= len(name) <= VALIDATION['name_max_length']:
        raise ProtocolViolation(
            f"Name must be {VALIDATION['name_min_length']}-{VALIDATION['name_max_length']} characters"
        )
    return name


class RoomRegistry:
    """Creates, finds and tears down rooms and tracks which connection sits where.

    Each room is an independent aggregate; the engine is shared and takes the
    room on every call.
    """

    def __init__(self, engine, rng: Optional[random.Random] = None, game_logs: Optional[bool] = None):
        self.engine = engine
        self.rooms: dict[str, Room] = {}
        self._sid_rooms: dict[str, str] = {}
        self._lock = threading.Lock()
        self._rng = rng or random.SystemRandom()
        self._game_logs = LOGGING_CONFIG['enabled'] if game_logs is None else game_logs

    # === Lookup ===

    def get(self, code) -> Room:
        room = self.rooms.get(str(code or '').strip().upper())
        if room is None:
            raise ProtocolViolation("Room not found")
        return room

    def room_for(self, sid: str) -> Optional[Room]:
        code = self._sid_rooms.get(sid)
        return self.rooms.get(code) if code else None

    def seat_for(self, sid: str) -> tuple[Room, int]:
        room = self.room_for(sid)
        if room is None:
            raise ProtocolViolation("You are not in a room")
        index = room.seat_index(sid)
        if index is None:
            raise ProtocolViolation("You are not seated in this room")
        return room, index

    def generate_code(self) -> str:
        alphabet = VALIDATION['room_code_alphabet']
        length = VALIDATION['room_code_length']
        while True:
            code = ''.join(self._rng.choice(alphabet) for _ in range(length))
            if code not in self.rooms:
                return code

    # === Lobby ===

    def create_room(self, sid: str, name) -> Room:
        name = normalize_name(name)
        with self._lock:
            if sid in self._sid_rooms:
                raise ProtocolViolation("You are already in a room")
            code = self.generate_code()
            room = Room(code=code, host=sid, seats=[Seat(name=name, sid=sid)])
            if self._game_logs:
                room.logger = GameLogger(code)
            self.rooms[code] = room
            self._sid_rooms[sid] = code
        return room

    def join_room(self, sid: str, code, name) -> Room:
        name = normalize_name(name)
        with self._lock:
            room = self.get(code)
            with room.lock:
                if sid in self._sid_rooms:
                    raise ProtocolViolation("You are already in a room")
                if room.started:
                    raise ProtocolViolation("Game already started")
                if room.is_full:
                    raise ProtocolViolation(f"Room is full. Maximum {GAME_CONFIG['max_seats']} players allowed.")
                if any(s.name.lower() == name.lower() for s in room.seats):
                    raise ProtocolViolation("Player name already taken")
                room.seats.append(Seat(name=name, sid=sid))
                self._sid_rooms[sid] = room.code
        return room

    def add_bot(self, sid: str) -> Room:
        room = self.room_for(sid)
        if room is None:
            raise ProtocolViolation("You are not in a room")
        with room.lock:
            if room.host != sid:
                raise ProtocolViolation("Only the host can add bots")
            if room.started:
                raise ProtocolViolation("Game already started")
            if room.is_full:
                raise ProtocolViolation("Room is full")
            taken = {s.name for s in room.seats}
            number = 1
            while f"Bot {number}" in taken:
                number += 1
            room.seats.append(Seat(name=f"Bot {number}", is_bot=True, connected=False))
        return room

    def start_game(self, sid: str) -> Room:
        room = self.room_for(sid)
        if room is None:
            raise ProtocolViolation("Room not found")
        with room.lock:
            if room.host != sid:
                raise ProtocolViolation("Not authorized to start game")
            self.engine.start_game(room)
        return room

    # === Leaving ===

    def leave(self, sid: str) -> tuple[Optional[Room], Optional[str]]:
        """Detach a connection from its room.

        Before the game starts the seat is removed. Once it has started the
        seat stays in play, orphaned: leaving never folds. Returns the room
        (None if it was closed) and the new host's sid when the host changed.
        """
        with self._lock:
            code = self._sid_rooms.pop(sid, None)
            room = self.rooms.get(code) if code else None
            if room is None:
                return None, None

            with room.lock:
                index = room.seat_index(sid)
                if index is not None:
                    if room.started:
                        seat = room.seats[index]
                        seat.sid = None
                        seat.connected = False
                    else:
                        room.seats.pop(index)

                if not any(s.connected and not s.is_bot for s in room.seats):
                    del self.rooms[room.code]
                    return None, None

                new_host = None
                if room.host == sid:
                    successor = next(s for s in room.seats if s.connected and not s.is_bot)
                    room.host = successor.sid
                    new_host = successor.sid
                return room, new_host
