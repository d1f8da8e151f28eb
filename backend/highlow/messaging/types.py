from enum import StrEnum
from typing import Annotated, Any, Literal, Self

from pydantic import AfterValidator, BaseModel, Field, TypeAdapter, field_validator

from highlow.logic.cards import Card
from highlow.logic.enums import FinishReason, GameErrorCode, Prediction
from highlow.logic.types import GameView, PredictionOutcome, WinnerInfo
from highlow.session.codes import CODE_ALPHABET, is_valid_code

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

MAX_USERNAME_LENGTH = 32


class ClientMessageType(StrEnum):
    CREATE_GAME = "create_game"
    JOIN_GAME = "join_game"
    RECONNECT = "reconnect"
    LEAVE_GAME = "leave_game"
    START_GAME = "start_game"
    SELECT_PILE = "select_pile"
    MAKE_PREDICTION = "make_prediction"
    END_GAME = "end_game"


class SessionMessageType(StrEnum):
    GAME_CREATED = "game_created"
    GAME_JOINED = "game_joined"
    RECONNECT_FAILED = "reconnect_failed"
    GAME_STATE = "game_state"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    PLAYER_DISCONNECTED = "player_disconnected"
    PLAYER_RECONNECTED = "player_reconnected"
    PLAYER_REMOVED = "player_removed"
    GAME_STARTED = "game_started"
    PILE_SELECTED = "pile_selected"
    PREDICTION_RESULT = "prediction_result"
    GAME_OVER = "game_over"
    GAME_ENDED = "game_ended"
    ERROR = "session_error"


class SessionErrorCode(StrEnum):
    # game rule rejections, one-to-one with GameErrorCode
    NOT_HOST = GameErrorCode.NOT_HOST.value
    NOT_YOUR_TURN = GameErrorCode.NOT_YOUR_TURN.value
    PILE_NOT_ACTIVE = GameErrorCode.PILE_NOT_ACTIVE.value
    INVALID_PILE = GameErrorCode.INVALID_PILE.value
    NO_PILE_SELECTED = GameErrorCode.NO_PILE_SELECTED.value
    GAME_NOT_PLAYING = GameErrorCode.GAME_NOT_PLAYING.value
    GAME_ALREADY_PLAYING = GameErrorCode.GAME_ALREADY_PLAYING.value
    ROOM_FINISHED = GameErrorCode.ROOM_FINISHED.value
    ROOM_NOT_FOUND = GameErrorCode.ROOM_NOT_FOUND.value
    NOT_IN_ROOM = GameErrorCode.NOT_IN_ROOM.value
    NO_PLAYERS = GameErrorCode.NO_PLAYERS.value
    # session and transport errors
    ALREADY_IN_ROOM = "already_in_room"
    SERVER_FULL = "server_full"
    INVALID_MESSAGE = "invalid_message"
    INTERNAL_ERROR = "internal_error"


class ReconnectFailureReason(StrEnum):
    UNKNOWN_SESSION = "unknown_session"
    ROOM_GONE = "room_gone"
    ROOM_FINISHED = "room_finished"


def _check_code(v: str) -> str:
    if not is_valid_code(v):
        raise ValueError(f"must be 3 characters from {CODE_ALPHABET}")
    return v


_Code = Annotated[str, AfterValidator(_check_code)]


class _ClientIntent(BaseModel):
    """Base for inbound intents: codes are accepted in any case and padded with spaces."""

    @field_validator("room_code", "session_token", mode="before", check_fields=False)
    @classmethod
    def _normalize_code(cls, v: Any) -> Any:  # noqa: ANN401
        if isinstance(v, str):
            return v.strip().upper()
        return v


class _NamedIntent(_ClientIntent):
    username: str = Field(min_length=1, max_length=MAX_USERNAME_LENGTH)

    @field_validator("username")
    @classmethod
    def _validate_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("username must not be blank")
        if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
            raise ValueError("username must not contain control characters")
        return v


class CreateGameMessage(_NamedIntent):
    type: Literal[ClientMessageType.CREATE_GAME] = ClientMessageType.CREATE_GAME


class JoinGameMessage(_NamedIntent):
    type: Literal[ClientMessageType.JOIN_GAME] = ClientMessageType.JOIN_GAME
    room_code: _Code


class ReconnectMessage(_NamedIntent):
    """Reconnect with a session token; ``room_code`` enables the username fallback lookup."""

    type: Literal[ClientMessageType.RECONNECT] = ClientMessageType.RECONNECT
    session_token: _Code
    room_code: _Code | None = None


class _RoomIntent(_ClientIntent):
    room_code: _Code


class LeaveGameMessage(_RoomIntent):
    type: Literal[ClientMessageType.LEAVE_GAME] = ClientMessageType.LEAVE_GAME


class StartGameMessage(_RoomIntent):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class SelectPileMessage(_RoomIntent):
    type: Literal[ClientMessageType.SELECT_PILE] = ClientMessageType.SELECT_PILE
    pile_index: int = Field(ge=0)


class MakePredictionMessage(_RoomIntent):
    type: Literal[ClientMessageType.MAKE_PREDICTION] = ClientMessageType.MAKE_PREDICTION
    prediction: Prediction


class EndGameMessage(_RoomIntent):
    type: Literal[ClientMessageType.END_GAME] = ClientMessageType.END_GAME


ClientMessage = (
    CreateGameMessage
    | JoinGameMessage
    | ReconnectMessage
    | LeaveGameMessage
    | StartGameMessage
    | SelectPileMessage
    | MakePredictionMessage
    | EndGameMessage
)


class GameCreatedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_CREATED] = SessionMessageType.GAME_CREATED
    room_code: str
    session_token: str
    username: str


class GameJoinedMessage(BaseModel):
    """Join acknowledgement sent only to the joining (or reconnecting) connection."""

    type: Literal[SessionMessageType.GAME_JOINED] = SessionMessageType.GAME_JOINED
    room_code: str
    session_token: str
    username: str
    reconnected: bool = False


class ReconnectFailedMessage(BaseModel):
    type: Literal[SessionMessageType.RECONNECT_FAILED] = SessionMessageType.RECONNECT_FAILED
    reason: ReconnectFailureReason
    message: str


class GameStateMessage(GameView):
    """Full game snapshot."""

    type: Literal[SessionMessageType.GAME_STATE] = SessionMessageType.GAME_STATE


class PlayerJoinedMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_JOINED] = SessionMessageType.PLAYER_JOINED
    username: str


class PlayerLeftMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_LEFT] = SessionMessageType.PLAYER_LEFT
    username: str


class PlayerDisconnectedMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_DISCONNECTED] = SessionMessageType.PLAYER_DISCONNECTED
    username: str


class PlayerReconnectedMessage(BaseModel):
    """Broadcast to other players when a player reconnects."""

    type: Literal[SessionMessageType.PLAYER_RECONNECTED] = SessionMessageType.PLAYER_RECONNECTED
    username: str


class PlayerRemovedMessage(BaseModel):
    """Broadcast when a disconnected player's grace period runs out."""

    type: Literal[SessionMessageType.PLAYER_REMOVED] = SessionMessageType.PLAYER_REMOVED
    username: str


class GameStartedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_STARTED] = SessionMessageType.GAME_STARTED


class PileSelectedMessage(BaseModel):
    type: Literal[SessionMessageType.PILE_SELECTED] = SessionMessageType.PILE_SELECTED
    pile_index: int
    username: str


class PredictionResultMessage(BaseModel):
    type: Literal[SessionMessageType.PREDICTION_RESULT] = SessionMessageType.PREDICTION_RESULT
    prediction: Prediction
    drawn_card: Card
    correct: bool
    pile_index: int
    remaining_cards: int

    @classmethod
    def from_outcome(cls, outcome: PredictionOutcome) -> Self:
        return cls(**outcome.model_dump())


class GameOverMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_OVER] = SessionMessageType.GAME_OVER
    reason: FinishReason
    winner: WinnerInfo | None = None


class GameEndedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_ENDED] = SessionMessageType.GAME_ENDED


class ErrorMessage(BaseModel):
    type: Literal[SessionMessageType.ERROR] = SessionMessageType.ERROR
    code: SessionErrorCode
    message: str


_ClientMessage = Annotated[ClientMessage, Field(discriminator="type")]

_client_message_adapter = TypeAdapter(_ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage, discriminated by ``type``."""
    return _client_message_adapter.validate_python(data)
