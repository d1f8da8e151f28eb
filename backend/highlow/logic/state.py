"""
Game state models for high-low.

A GameSession is the aggregate root for one room: it exclusively owns its
players, piles and deck. State is mutated only by the transition functions in
``highlow.logic.game`` while the room lock is held.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from highlow.logic.cards import Card
from highlow.logic.enums import FinishReason, GameStatus
from highlow.logic.settings import GameSettings
from highlow.logic.types import GameView, PileView, PlayerView, WinnerInfo


@dataclass
class Pile:
    """
    One play stack. ``cards[0]`` is the dealt card, ``cards[-1]`` the current top.
    """

    cards: list[Card] = field(default_factory=list)
    active: bool = True

    # presentational flags, cleared on a timer after each draw
    is_newly_dealt: bool = False
    last_prediction_correct: bool | None = None

    @property
    def top(self) -> Card:
        return self.cards[-1]

    def clear_draw_flags(self) -> None:
        self.is_newly_dealt = False
        self.last_prediction_correct = None


@dataclass
class Player:
    """
    A participant of a room.

    ``id`` is the transient connection id and changes on reconnect;
    ``session_id`` is the durable token and never changes while the player
    stays in the room.
    """

    id: str
    session_id: str
    username: str
    is_host: bool = False
    correct_predictions: int = 0
    total_predictions: int = 0
    disconnected: bool = False
    disconnected_at: float | None = None  # time.time() timestamp, None if connected

    def reset_stats(self) -> None:
        self.correct_predictions = 0
        self.total_predictions = 0


@dataclass
class GameSession:
    """
    Aggregate root for one room.

    ``remaining_cards`` mirrors ``len(deck)`` and is checked against it on
    every draw.
    """

    id: str  # room code
    settings: GameSettings = field(default_factory=GameSettings)
    players: list[Player] = field(default_factory=list)
    status: GameStatus = GameStatus.WAITING
    deck: list[Card] = field(default_factory=list)
    piles: list[Pile] = field(default_factory=list)
    current_player_index: int = 0
    current_pile_index: int | None = None
    remaining_cards: int = -1
    created_at: float = field(default_factory=time.time)

    # set when the game reaches FINISHED, kept even if the winner later leaves
    winner: WinnerInfo | None = None
    finish_reason: FinishReason | None = None

    def __post_init__(self) -> None:
        if self.remaining_cards < 0:
            self.remaining_cards = self.settings.initial_remaining_cards

    @property
    def is_empty(self) -> bool:
        return not self.players

    @property
    def current_player(self) -> Player | None:
        if 0 <= self.current_player_index < len(self.players):
            return self.players[self.current_player_index]
        return None

    @property
    def host(self) -> Player | None:
        return next((p for p in self.players if p.is_host), None)

    def find_player(self, connection_id: str) -> Player | None:
        return next((p for p in self.players if p.id == connection_id), None)

    def find_player_by_session(self, session_id: str) -> Player | None:
        return next((p for p in self.players if p.session_id == session_id), None)

    def index_of(self, player: Player) -> int:
        return next(i for i, p in enumerate(self.players) if p is player)

    def all_disconnected(self) -> bool:
        return all(p.disconnected for p in self.players)


def get_player_view(player: Player) -> PlayerView:
    return PlayerView(
        id=player.id,
        username=player.username,
        is_host=player.is_host,
        correct_predictions=player.correct_predictions,
        total_predictions=player.total_predictions,
        disconnected=player.disconnected,
    )


def get_pile_view(pile: Pile) -> PileView:
    return PileView(
        cards=list(pile.cards),
        active=pile.active,
        is_newly_dealt=pile.is_newly_dealt,
        last_prediction_correct=pile.last_prediction_correct,
    )


def get_game_view(session: GameSession) -> GameView:
    """Build the public snapshot of a session (no deck order, no session tokens)."""
    return GameView(
        room_code=session.id,
        status=session.status,
        players=[get_player_view(p) for p in session.players],
        piles=[get_pile_view(p) for p in session.piles],
        current_player_index=session.current_player_index,
        current_pile_index=session.current_pile_index,
        remaining_cards=session.remaining_cards,
        winner=session.winner,
        finish_reason=session.finish_reason,
    )
