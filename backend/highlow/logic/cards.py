"""
Card model, deck construction and prediction comparison for the high-low game.

Ranks are strictly ordered low to high in declaration order (2 .. 10, J, Q, K, A).
Suits carry no ordering and never affect a comparison.

Shuffling uses the Fisher-Yates algorithm driven by a cryptographically secure
source by default. Callers that need reproducible decks (tests, replays) pass
their own ``random.Random`` instance.
"""

import random
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from highlow.logic.enums import Prediction


class Rank(StrEnum):
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"
    ACE = "A"

    @property
    def order(self) -> int:
        """Position of the rank in the low-to-high sequence (0 for 2, 12 for A)."""
        return _RANK_ORDER[self]


class Suit(StrEnum):
    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"


_RANK_ORDER: dict[Rank, int] = {rank: index for index, rank in enumerate(Rank)}

NUM_RANKS = len(Rank)  # 13
NUM_SUITS = len(Suit)  # 4
DECK_SIZE = NUM_RANKS * NUM_SUITS  # 52

_secure_random = random.SystemRandom()


class Card(BaseModel):
    """Immutable playing card value."""

    model_config = ConfigDict(frozen=True)

    rank: Rank
    suit: Suit

    def __str__(self) -> str:
        return f"{self.rank.value} of {self.suit.value}"


def create_deck() -> list[Card]:
    """Return the 52 unique cards in canonical (suit-major, rank-ascending) order."""
    return [Card(rank=rank, suit=suit) for suit in Suit for rank in Rank]


def shuffle_cards(cards: list[Card], rng: random.Random | None = None) -> list[Card]:
    """
    Return a uniformly shuffled copy of ``cards`` (Fisher-Yates).

    For i from the last index down to 1, swap element i with a uniformly random
    element in [0, i]. ``randint`` is inclusive on both ends and unbiased, so
    every permutation is equally likely.
    """
    rng = rng or _secure_random
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def new_shuffled_deck(rng: random.Random | None = None) -> list[Card]:
    """Build a fresh 52-card deck and shuffle it."""
    return shuffle_cards(create_deck(), rng)


def compare(top_card: Card, new_card: Card, prediction: Prediction) -> bool:
    """Return True if ``prediction`` holds for ``new_card`` drawn onto ``top_card``."""
    top = top_card.rank.order
    new = new_card.rank.order
    if prediction == Prediction.HIGHER:
        return new > top
    if prediction == Prediction.LOWER:
        return new < top
    return new == top
