"""
String enum definitions for high-low game concepts.
"""

from enum import StrEnum


class GameStatus(StrEnum):
    """Lifecycle status of a game session."""

    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class Prediction(StrEnum):
    """A player's guess about the next card relative to the pile's top card."""

    HIGHER = "higher"
    LOWER = "lower"
    SAME = "same"


class FinishReason(StrEnum):
    """Why a game reached the finished state."""

    DECK_EXHAUSTED = "deck_exhausted"  # every card placed, the table wins
    ALL_PILES_DEAD = "all_piles_dead"  # every pile died, the table loses


class GameErrorCode(StrEnum):
    """Error codes sent to clients for rejected game intents."""

    NOT_HOST = "not_host"
    NOT_YOUR_TURN = "not_your_turn"
    PILE_NOT_ACTIVE = "pile_not_active"
    INVALID_PILE = "invalid_pile"
    NO_PILE_SELECTED = "no_pile_selected"
    GAME_NOT_PLAYING = "game_not_playing"
    GAME_ALREADY_PLAYING = "game_already_playing"
    ROOM_FINISHED = "room_finished"
    ROOM_NOT_FOUND = "room_not_found"
    NOT_IN_ROOM = "not_in_room"
    NO_PLAYERS = "no_players"
