"""Typed domain exceptions for high-low rule violations.

Rule violations raised by the state machine are subclasses of GameRuleError.
Each carries a stable GameErrorCode so the session layer can report the
rejection to the caller without inspecting the message text. Rejections are
always raised before any state is mutated.

Invariant violations (GameInvariantError) are a separate hierarchy: they mean
the server's own bookkeeping is wrong, not that a client misbehaved.
"""

from highlow.logic.enums import GameErrorCode


class GameRuleError(Exception):
    """Base exception for rejected game intents.

    Raised by domain logic (game.py) when an intent is not allowed in the
    current state. Caught by the SessionManager and converted to an error
    message sent to the caller only.
    """

    code: GameErrorCode

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotHostError(GameRuleError):
    """Only the host may perform this action."""

    code = GameErrorCode.NOT_HOST


class NotYourTurnError(GameRuleError):
    """The actor does not hold the current turn."""

    code = GameErrorCode.NOT_YOUR_TURN


class PileNotActiveError(GameRuleError):
    """The selected pile is dead."""

    code = GameErrorCode.PILE_NOT_ACTIVE


class InvalidPileError(GameRuleError):
    """Pile index is out of range."""

    code = GameErrorCode.INVALID_PILE


class NoPileSelectedError(GameRuleError):
    """A prediction was made before selecting a pile."""

    code = GameErrorCode.NO_PILE_SELECTED


class GameNotPlayingError(GameRuleError):
    """The action requires a game in progress."""

    code = GameErrorCode.GAME_NOT_PLAYING


class GameAlreadyPlayingError(GameRuleError):
    """The game is already in progress."""

    code = GameErrorCode.GAME_ALREADY_PLAYING


class RoomFinishedError(GameRuleError):
    """The room's game has finished and no longer admits players."""

    code = GameErrorCode.ROOM_FINISHED


class RoomNotFoundError(GameRuleError):
    """No room exists for the given code."""

    code = GameErrorCode.ROOM_NOT_FOUND


class NotInRoomError(GameRuleError):
    """The actor is not a participant of the room."""

    code = GameErrorCode.NOT_IN_ROOM


class NoPlayersError(GameRuleError):
    """A game cannot start without players."""

    code = GameErrorCode.NO_PLAYERS


class GameInvariantError(Exception):
    """Raised when game bookkeeping is inconsistent.

    Indicates a server bug rather than a client error. The operation is
    rejected before mutating state and the error is logged with a traceback.
    """

    def __init__(self, *, room_code: str, reason: str) -> None:
        self.room_code = room_code
        self.reason = reason
        super().__init__(f"invariant violated in room {room_code}: {reason}")


class DeckExhaustedError(GameInvariantError):
    """A draw was attempted from an empty deck."""
