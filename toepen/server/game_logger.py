"""Game logger: two lines per step in logs/room_<code>.log

Format
------
  round <n> | <phase> | stake <s> | turn <name>   (state before the step)
  <seat name>: <executed action>
"""
import os

from config import LOGGING_CONFIG

LOGS_DIR = LOGGING_CONFIG['logs_dir']


class GameLogger:
    def __init__(self, room_code: str):
        os.makedirs(LOGS_DIR, exist_ok=True)
        self._path = os.path.join(LOGS_DIR, f'room_{room_code}.log')

    @property
    def path(self) -> str:
        return self._path

    def log_step(self, state: str, executed: str):
        with open(self._path, 'a', encoding='utf-8') as f:
            f.write(state + '\n')
            f.write(executed + '\n')


def describe_state(room) -> str:
    rnd = room.round
    if rnd is None:
        return f'lobby | {len(room.seats)} seats'
    turn = room.seats[rnd.current_turn].name if rnd.current_turn < len(room.seats) else '-'
    return f'round {rnd.number} | {rnd.phase.value} | stake {rnd.stake} | turn {turn}'
