"""Single entry point - starts the game server.

Usage:
    python3 run.py

Environment variables (all optional):
    FLASK_PORT         port for the web/socket server   (default 3000)
    FLASK_HOST         bind address                     (default 0.0.0.0)
    FLASK_DEBUG        1 = enable Flask debug mode      (default 0)
    TOEPEN_LOGS_DIR    directory for per-room game logs
    TOEPEN_GAME_LOGS   0 = do not write game logs
"""

import os

os.chdir(os.path.dirname(os.path.abspath(__file__)))

from app import app, socketio
from config import SERVER_CONFIG

print(f"Toepen server running on port {SERVER_CONFIG['port']}")
socketio.run(
    app,
    host=SERVER_CONFIG['host'],
    port=SERVER_CONFIG['port'],
    debug=SERVER_CONFIG['debug'],
    allow_unsafe_werkzeug=True,
)
