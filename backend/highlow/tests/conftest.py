from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from highlow.logic.cards import Card, Rank, Suit, create_deck
from highlow.logic.enums import GameStatus
from highlow.logic.settings import GameSettings
from highlow.logic.state import GameSession, Pile, Player
from highlow.messaging.router import MessageRouter
from highlow.server.app import create_app
from highlow.server.settings import GameServerSettings
from highlow.session.manager import SessionManager
from highlow.tests.mocks import MockConnection

if TYPE_CHECKING:
    from collections.abc import Sequence


# ============================================================================
# Test State Builder Helpers
# ============================================================================


def card(rank: str, suit: Suit = Suit.HEARTS) -> Card:
    """Shorthand card constructor: card("10"), card("K", Suit.SPADES)."""
    return Card(rank=Rank(rank), suit=suit)


def create_player(
    index: int = 0,
    username: str | None = None,
    *,
    is_host: bool = False,
    disconnected: bool = False,
    correct_predictions: int = 0,
    total_predictions: int = 0,
) -> Player:
    """Create a Player with sensible defaults for testing."""
    return Player(
        id=f"conn-{index}",
        session_id=f"S{index:02d}",
        username=username if username is not None else f"Player{index}",
        is_host=is_host,
        correct_predictions=correct_predictions,
        total_predictions=total_predictions,
        disconnected=disconnected,
        disconnected_at=1000.0 if disconnected else None,
    )


def create_session(
    num_players: int = 2,
    *,
    players: Sequence[Player] | None = None,
    status: GameStatus = GameStatus.WAITING,
    current_player_index: int = 0,
    settings: GameSettings | None = None,
) -> GameSession:
    """Create a GameSession whose first player is host."""
    if players is None:
        players = [create_player(i, is_host=(i == 0)) for i in range(num_players)]
    session = GameSession(id="ABC", settings=settings or GameSettings(), created_at=1000.0)
    session.players = list(players)
    session.status = status
    session.current_player_index = current_player_index
    return session


def rig_deck(session: GameSession, pile_cards: Sequence[Card], draws: Sequence[Card] = ()) -> None:
    """Lay out piles and deck so the next draws come out in ``draws`` order.

    The remaining cards of a full deck fill the rest of the deck, so the
    52-card total is preserved.
    """
    used = set(pile_cards) | set(draws)
    assert len(used) == len(pile_cards) + len(draws), "rigged cards must be unique"
    rest = [c for c in create_deck() if c not in used]
    session.piles = [Pile(cards=[c]) for c in pile_cards]
    session.deck = rest + list(reversed(draws))
    session.remaining_cards = len(session.deck)


NINE_SEVENS_AND_EIGHTS = [
    card("7", Suit.HEARTS),
    card("7", Suit.DIAMONDS),
    card("7", Suit.CLUBS),
    card("7", Suit.SPADES),
    card("8", Suit.HEARTS),
    card("8", Suit.DIAMONDS),
    card("8", Suit.CLUBS),
    card("8", Suit.SPADES),
    card("9", Suit.HEARTS),
]


def create_playing_session(num_players: int = 2, draws: Sequence[Card] = ()) -> GameSession:
    """A PLAYING session with nine mid-rank piles and a rigged deck."""
    session = create_session(num_players, status=GameStatus.PLAYING)
    rig_deck(session, NINE_SEVENS_AND_EIGHTS, draws)
    return session


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
async def session_manager():
    manager = SessionManager()
    yield manager
    await manager.shutdown()


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()


@pytest.fixture
def app(session_manager, message_router):
    return create_app(
        settings=GameServerSettings(),
        session_manager=session_manager,
        message_router=message_router,
    )
