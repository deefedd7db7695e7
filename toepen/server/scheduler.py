"""Deferred callbacks.

The engine never blocks: pacing delays, response windows and laundry windows
are all `call_later` callbacks. Callbacks are never cancelled; the engine tags
each one with the state it expects and drops it on firing if the room has
moved on.
"""
import traceback


class Scheduler:
    """Interface used by the engine."""

    def call_later(self, delay: float, fn):
        raise NotImplementedError


class SocketIOScheduler(Scheduler):
    """Runs callbacks as Flask-SocketIO background tasks."""

    def __init__(self, socketio):
        self.socketio = socketio

    def call_later(self, delay: float, fn):
        def run():
            self.socketio.sleep(delay)
            try:
                fn()
            except Exception:
                print(f"[scheduler] deferred callback failed:\n{traceback.format_exc()}")

        self.socketio.start_background_task(run)
