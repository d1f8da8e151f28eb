"""
Pydantic models for game logic data structures.

Contains the public views of a game session that cross component boundaries
(snapshots sent to clients) and the outcome of a resolved prediction.
Views never carry the deck order or any player's session token.
"""

from pydantic import BaseModel, ConfigDict

from highlow.logic.cards import Card
from highlow.logic.enums import FinishReason, GameStatus, Prediction


class PileView(BaseModel):
    """Public view of a single pile."""

    cards: list[Card]
    active: bool
    is_newly_dealt: bool = False
    last_prediction_correct: bool | None = None


class PlayerView(BaseModel):
    """Public view of a player; the durable session token is not exposed."""

    id: str
    username: str
    is_host: bool
    correct_predictions: int
    total_predictions: int
    disconnected: bool


class WinnerInfo(BaseModel):
    """The best-performing player of a finished game."""

    username: str
    correct_predictions: int
    total_predictions: int


class GameView(BaseModel):
    """Full snapshot of a game session as seen by every participant."""

    room_code: str
    status: GameStatus
    players: list[PlayerView]
    piles: list[PileView]
    current_player_index: int
    current_pile_index: int | None = None
    remaining_cards: int
    winner: WinnerInfo | None = None
    finish_reason: FinishReason | None = None


class PredictionOutcome(BaseModel):
    """Result of one resolved prediction, broadcast before the updated snapshot."""

    model_config = ConfigDict(frozen=True)

    prediction: Prediction
    drawn_card: Card
    correct: bool
    pile_index: int
    remaining_cards: int
