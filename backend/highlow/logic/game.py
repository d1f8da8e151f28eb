"""
High-low game state machine.

Every transition validates the actor and the session state first and raises a
GameRuleError before touching anything, so a rejected intent never leaves a
partially-updated session behind. Callers hold the room lock for the whole
call.

Turn order is the join order of ``session.players``. Turn advancement skips
disconnected players; when every player is disconnected the index is left
where it is and the room is idle until somebody comes back.
"""

from __future__ import annotations

import random
from fractions import Fraction
from typing import TYPE_CHECKING

import structlog

from highlow.logic.cards import compare, new_shuffled_deck
from highlow.logic.enums import FinishReason, GameStatus
from highlow.logic.exceptions import (
    DeckExhaustedError,
    GameAlreadyPlayingError,
    GameInvariantError,
    GameNotPlayingError,
    InvalidPileError,
    NoPileSelectedError,
    NoPlayersError,
    NotHostError,
    NotInRoomError,
    NotYourTurnError,
    PileNotActiveError,
    RoomFinishedError,
)
from highlow.logic.state import Pile, Player
from highlow.logic.types import PredictionOutcome, WinnerInfo

if TYPE_CHECKING:
    from highlow.logic.enums import Prediction
    from highlow.logic.state import GameSession

logger = structlog.get_logger()

_first_player_random = random.SystemRandom()


def _require_player(session: GameSession, actor_id: str) -> Player:
    player = session.find_player(actor_id)
    if player is None:
        raise NotInRoomError(f"not a participant of room {session.id}")
    return player


def _require_host(session: GameSession, actor_id: str) -> Player:
    player = _require_player(session, actor_id)
    if not player.is_host:
        raise NotHostError("only the host can do that")
    return player


def _require_current_player(session: GameSession, actor_id: str) -> Player:
    player = _require_player(session, actor_id)
    if session.status != GameStatus.PLAYING:
        raise GameNotPlayingError("game is not in progress")
    if session.current_player is not player:
        raise NotYourTurnError("not your turn")
    return player


def join_player(session: GameSession, connection_id: str, session_id: str, username: str) -> Player:
    """Append a new player at the end of turn order.

    Joining a waiting or playing room is allowed; a finished room is closed.
    The first player of an empty room becomes host.
    """
    if session.status == GameStatus.FINISHED:
        raise RoomFinishedError(f"room {session.id} has finished")
    player = Player(
        id=connection_id,
        session_id=session_id,
        username=username,
        is_host=session.is_empty,
    )
    session.players.append(player)
    if len(session.players) == 1:
        session.current_player_index = 0
    elif session.status == GameStatus.PLAYING:
        ensure_turn_on_connected(session)
    return player


def start_game(session: GameSession, actor_id: str, rng: random.Random | None = None) -> None:
    """Shuffle a fresh deck, deal one card to each pile and hand the turn out.

    Allowed from WAITING and FINISHED (restart), rejected while PLAYING.
    """
    _require_host(session, actor_id)
    if session.status == GameStatus.PLAYING:
        raise GameAlreadyPlayingError("game is already in progress")
    if session.is_empty:
        raise NoPlayersError("cannot start without players")

    deck = new_shuffled_deck(rng)
    piles = [Pile(cards=[deck.pop()]) for _ in range(session.settings.num_piles)]

    session.deck = deck
    session.piles = piles
    session.remaining_cards = len(deck)
    session.current_pile_index = None
    session.winner = None
    session.finish_reason = None
    for player in session.players:
        player.reset_stats()

    if session.settings.random_first_player:
        session.current_player_index = (rng or _first_player_random).randrange(len(session.players))
    else:
        session.current_player_index = 0
    session.status = GameStatus.PLAYING
    ensure_turn_on_connected(session)

    logger.info(
        "game started",
        room_code=session.id,
        player_count=len(session.players),
        remaining_cards=session.remaining_cards,
    )


def select_pile(session: GameSession, actor_id: str, pile_index: int) -> None:
    """Choose the pile the next prediction resolves against. Re-selection is allowed."""
    _require_current_player(session, actor_id)
    if not 0 <= pile_index < len(session.piles):
        raise InvalidPileError(f"pile index {pile_index} out of range")
    if not session.piles[pile_index].active:
        raise PileNotActiveError(f"pile {pile_index} is no longer active")
    session.current_pile_index = pile_index


def _check_deck(session: GameSession) -> None:
    if not session.deck:
        raise DeckExhaustedError(
            room_code=session.id,
            reason=f"deck is empty while remaining_cards={session.remaining_cards}",
        )
    if len(session.deck) != session.remaining_cards:
        raise GameInvariantError(
            room_code=session.id,
            reason=f"deck holds {len(session.deck)} cards but remaining_cards={session.remaining_cards}",
        )


def make_prediction(session: GameSession, actor_id: str, prediction: Prediction) -> PredictionOutcome:
    """
    Resolve a prediction against the selected pile.

    Draws from the end of the deck, places the card on the pile, updates the
    player's stats, kills the pile on a wrong guess, advances the turn and
    checks whether the game is over. The selected pile stays selected for the
    next player unless it just died.
    """
    player = _require_current_player(session, actor_id)
    pile_index = session.current_pile_index
    if pile_index is None:
        raise NoPileSelectedError("select a pile first")
    pile = session.piles[pile_index]
    if not pile.active:
        raise PileNotActiveError(f"pile {pile_index} is no longer active")
    _check_deck(session)

    drawn = session.deck.pop()
    correct = compare(pile.top, drawn, prediction)
    pile.cards.append(drawn)
    session.remaining_cards -= 1

    player.total_predictions += 1
    if correct:
        player.correct_predictions += 1

    pile.is_newly_dealt = True
    pile.last_prediction_correct = correct
    if not correct:
        pile.active = False
        session.current_pile_index = None

    advance_turn(session)
    _check_termination(session)

    return PredictionOutcome(
        prediction=prediction,
        drawn_card=drawn,
        correct=correct,
        pile_index=pile_index,
        remaining_cards=session.remaining_cards,
    )


def _check_termination(session: GameSession) -> None:
    all_dead = all(not pile.active for pile in session.piles)
    if not all_dead and session.remaining_cards > 0:
        return
    session.status = GameStatus.FINISHED
    session.finish_reason = FinishReason.ALL_PILES_DEAD if all_dead else FinishReason.DECK_EXHAUSTED
    session.current_pile_index = None
    winner = compute_winner(session.players)
    session.winner = (
        WinnerInfo(
            username=winner.username,
            correct_predictions=winner.correct_predictions,
            total_predictions=winner.total_predictions,
        )
        if winner is not None
        else None
    )
    logger.info(
        "game finished",
        room_code=session.id,
        finish_reason=session.finish_reason,
        winner=winner.username if winner else None,
    )


def compute_winner(players: list[Player]) -> Player | None:
    """Return the player with the best correct/total ratio.

    Players without predictions are not eligible. Ties go to the player
    earliest in turn order.
    """
    best: Player | None = None
    best_ratio = Fraction(-1)
    for player in players:
        if player.total_predictions == 0:
            continue
        ratio = Fraction(player.correct_predictions, player.total_predictions)
        if ratio > best_ratio:
            best, best_ratio = player, ratio
    return best


def end_game(session: GameSession, actor_id: str) -> None:
    """Host reset back to WAITING. Player stats survive until the next start."""
    _require_host(session, actor_id)
    session.status = GameStatus.WAITING
    session.deck = []
    session.piles = []
    session.current_pile_index = None
    session.remaining_cards = session.settings.initial_remaining_cards
    session.winner = None
    session.finish_reason = None
    logger.info("game reset", room_code=session.id)


def advance_turn(session: GameSession) -> bool:
    """Move the turn to the next connected player in circular order.

    Scans a full circuit starting after the current player (ending on the
    current player itself). Returns False and leaves the index unchanged when
    every player is disconnected.
    """
    count = len(session.players)
    if count == 0:
        return False
    for step in range(1, count + 1):
        candidate = (session.current_player_index + step) % count
        if not session.players[candidate].disconnected:
            session.current_player_index = candidate
            return True
    logger.info("all players disconnected, room idle", room_code=session.id)
    return False


def ensure_turn_on_connected(session: GameSession) -> bool:
    """Advance the turn if it currently sits on a disconnected player."""
    current = session.current_player
    if current is not None and not current.disconnected:
        return True
    return advance_turn(session)


def remove_player(session: GameSession, player: Player) -> None:
    """Splice a player out of turn order.

    Host passes to the first remaining player. A removed index before the
    current one shifts the index down; removing the current player hands the
    turn to the next connected player, which now occupies the removed slot.
    """
    index = session.index_of(player)
    del session.players[index]

    count = len(session.players)
    if count == 0:
        session.current_player_index = 0
        return

    if player.is_host:
        session.players[0].is_host = True

    if index < session.current_player_index:
        session.current_player_index -= 1
    elif index == session.current_player_index:
        start = index % count
        session.current_player_index = start
        for step in range(count):
            candidate = (start + step) % count
            if not session.players[candidate].disconnected:
                session.current_player_index = candidate
                break


def mark_disconnected(session: GameSession, player: Player, now: float) -> None:
    """Flag a player as disconnected, keeping slot, stats and host status.

    A disconnecting current player passes the turn on immediately.
    """
    was_current = session.current_player is player
    player.disconnected = True
    player.disconnected_at = now
    if was_current and session.status == GameStatus.PLAYING:
        advance_turn(session)


def mark_reconnected(session: GameSession, player: Player, connection_id: str) -> None:
    """Rebind a player to a new connection and clear the disconnect flag."""
    player.id = connection_id
    player.disconnected = False
    player.disconnected_at = None
    if session.status == GameStatus.PLAYING:
        ensure_turn_on_connected(session)
