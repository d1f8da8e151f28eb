"""Centralized game settings for high-low - configurable gameplay rules."""

from pydantic import BaseModel, ConfigDict, Field

from highlow.logic.cards import DECK_SIZE

NUM_PILES = 9


class GameSettings(BaseModel):
    """
    Configuration for high-low game rules.

    Defaults describe the standard game: nine piles dealt from a single deck,
    the first player in join order starts.
    """

    model_config = ConfigDict(frozen=True)

    num_piles: int = Field(default=NUM_PILES, ge=1, le=DECK_SIZE)
    random_first_player: bool = False

    @property
    def initial_remaining_cards(self) -> int:
        """Cards left in the deck right after dealing one card per pile."""
        return DECK_SIZE - self.num_piles


INITIAL_REMAINING_CARDS = DECK_SIZE - NUM_PILES  # 43
