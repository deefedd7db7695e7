"""Game, timing and server configuration."""
import os


def _env_float(name, default):
    return float(os.getenv(name, str(default)))


GAME_CONFIG = {
    'min_seats': 2,
    'max_seats': 4,
    'hand_size': 4,
    'tricks_per_round': 4,
    'elimination_threshold': int(os.getenv('TOEPEN_ELIMINATION_POINTS', '10')),
    'initial_stake': 1,
    'max_stake': 8,
    'blind_raise_stake': 3,
    'forced_gamble_stake': 2,
    'claim_penalty': 1,
}

# All delays in seconds
TIMING = {
    'trick_evaluation_delay': _env_float('TOEPEN_TRICK_DELAY', 2.0),
    'round_end_delay': _env_float('TOEPEN_ROUND_END_DELAY', 2.0),
    'response_timeout': _env_float('TOEPEN_RESPONSE_TIMEOUT', 30.0),
    'laundry_window': _env_float('TOEPEN_LAUNDRY_WINDOW', 10.0),
    'inspection_window': _env_float('TOEPEN_INSPECTION_WINDOW', 5.0),
    'bot_decision_delay': _env_float('TOEPEN_BOT_DELAY', 1.5),
}

AI_CONFIG = {
    'raise_probability': 0.12,
    'fold_probability_base': 0.25,
    'fold_probability_high_stakes': 0.4,
    'blind_raise_fold_probability': 0.3,
    'high_stakes_threshold': 4,
}

VALIDATION = {
    'room_code_length': 6,
    'room_code_alphabet': 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789',
    'name_min_length': 1,
    'name_max_length': 20,
}

SERVER_CONFIG = {
    'host': os.getenv('FLASK_HOST', '0.0.0.0'),
    'port': int(os.getenv('FLASK_PORT', '3000')),
    'debug': os.getenv('FLASK_DEBUG', '0') == '1',
    'cors_origins': os.getenv('TOEPEN_CORS_ORIGINS', '*'),
}

LOGGING_CONFIG = {
    'logs_dir': os.getenv(
        'TOEPEN_LOGS_DIR',
        os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'logs'),
    ),
    'enabled': os.getenv('TOEPEN_GAME_LOGS', '1') == '1',
}
