"""Errors raised when an action is rejected."""


class GameError(Exception):
    """Base exception for game errors."""
    kind = "game_error"


class ProtocolViolation(GameError):
    """Room-level request that cannot be honoured (unknown room, full room, not host...)."""
    kind = "protocol_violation"


class TurnViolation(GameError):
    """Raised when a seat acts out of turn."""
    kind = "turn_violation"


class PhaseViolation(TurnViolation):
    """Raised when an action is attempted in the wrong phase."""
    kind = "phase_violation"


class IllegalPlay(GameError):
    """Raised when a card cannot be played."""
    kind = "illegal_play"


class MalformedAction(GameError):
    """Raised when an inbound action cannot be parsed."""
    kind = "malformed_action"
