from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO, emit, join_room, leave_room
import traceback

from actions import parse_action
from config import SERVER_CONFIG
from engine import GameEngine
from errors import GameError, MalformedAction
from rooms import RoomRegistry
from scheduler import SocketIOScheduler

app = Flask(__name__)
CORS(app, origins=SERVER_CONFIG['cors_origins'])
socketio = SocketIO(app, cors_allowed_origins=SERVER_CONFIG['cors_origins'], async_mode='threading')


def broadcast_state(room, last_action=None):
    """Send every connected seat its own filtered view of the room."""
    for index, seat in enumerate(room.seats):
        if seat.sid is None or not seat.connected:
            continue
        socketio.emit('state_update', {
            'state': registry.engine.get_game_state(room, viewer=index),
            'last_action': last_action,
        }, to=seat.sid)


def create_registry(scheduler=None, rng=None, game_logs=None):
    engine = GameEngine(scheduler or SocketIOScheduler(socketio), listener=broadcast_state, rng=rng)
    return RoomRegistry(engine, game_logs=game_logs)


registry = create_registry()


def reject(error, sid=None):
    """Report a rejected request to the offending client only."""
    emit('action_rejected', {'reason': str(error), 'kind': getattr(error, 'kind', 'internal_error')},
         to=sid or request.sid)


def _field(data, key):
    if isinstance(data, dict):
        return data.get(key)
    return data


# HTTP API

@app.route('/api/health')
def health():
    return {'status': 'ok', 'rooms': len(registry.rooms)}


@app.route('/api/rooms/<code>')
def room_summary(code):
    """Lets a client check a code before joining."""
    try:
        room = registry.get(code)
    except GameError as e:
        return jsonify({'error': str(e)}), 404
    return jsonify({
        'code': room.code,
        'seats': len(room.seats),
        'started': room.started,
        'full': room.is_full,
    })


# Socket events

@socketio.on('connect')
def on_connect():
    print(f'Player connected: {request.sid}')


@socketio.on('create_room')
def on_create_room(data=None):
    try:
        room = registry.create_room(request.sid, _field(data, 'name'))
    except GameError as e:
        return reject(e)

    join_room(room.code)
    emit('room_created', {'code': room.code, 'seats': room.lobby_seats()})
    print(f'Room {room.code} created by {room.seats[0].name}')


@socketio.on('join_room')
def on_join_room(data=None):
    if not isinstance(data, dict):
        return reject(MalformedAction('join_room needs a code and a name'))
    try:
        room = registry.join_room(request.sid, data.get('code'), data.get('name'))
    except GameError as e:
        return reject(e)

    join_room(room.code)
    emit('room_joined', {'code': room.code, 'seats': room.lobby_seats(), 'is_host': False})
    emit('seat_joined', {'code': room.code, 'seats': room.lobby_seats()}, to=room.code, include_self=False)
    print(f'{room.seats[-1].name} joined room {room.code}')


@socketio.on('add_bot')
def on_add_bot(data=None):
    try:
        room = registry.add_bot(request.sid)
    except GameError as e:
        return reject(e)
    emit('seat_joined', {'code': room.code, 'seats': room.lobby_seats()}, to=room.code)


@socketio.on('start_game')
def on_start_game(data=None):
    try:
        room = registry.start_game(request.sid)
    except GameError as e:
        return reject(e)
    except Exception:
        print(f'Error starting game:\n{traceback.format_exc()}')
        return reject(GameError('Failed to start game'))

    with room.lock:
        broadcast_state(room, {'type': 'game-started'})
    print(f'Game started in room {room.code}')


@socketio.on('game_action')
def on_game_action(data=None):
    try:
        room, seat = registry.seat_for(request.sid)
    except GameError as e:
        return reject(e)

    try:
        action = parse_action(data)
    except MalformedAction as e:
        print(f'Ignoring malformed action from {request.sid} in room {room.code}: {e}')
        return

    with room.lock:
        try:
            registry.engine.apply(room, seat, action)
        except GameError as e:
            return reject(e)
        except Exception:
            print(f'Error processing action in room {room.code}:\n{traceback.format_exc()}')
            return reject(GameError('Failed to process action'))
        broadcast_state(room, {'type': action.type, 'seat': seat})


def _leave(sid):
    code = None
    old = registry.room_for(sid)
    if old is not None:
        code = old.code
    room, new_host = registry.leave(sid)
    if code is None:
        return
    if room is None:
        print(f'Room {code} deleted (empty)')
        return

    with room.lock:
        socketio.emit('seat_left', {'seats': room.lobby_seats(), 'new_host': new_host}, to=room.code)
        if room.started:
            broadcast_state(room, {'type': 'seat-disconnected'})


@socketio.on('leave_room')
def on_leave_room(data=None):
    room = registry.room_for(request.sid)
    if room is not None:
        leave_room(room.code)
    _leave(request.sid)


@socketio.on('disconnect')
def on_disconnect(*args):
    print(f'Player disconnected: {request.sid}')
    _leave(request.sid)
