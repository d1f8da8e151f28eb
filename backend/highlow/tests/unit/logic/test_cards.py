import random
from collections import Counter

import pytest

from highlow.logic.cards import (
    DECK_SIZE,
    Card,
    Rank,
    Suit,
    compare,
    create_deck,
    new_shuffled_deck,
    shuffle_cards,
)
from highlow.logic.enums import Prediction
from highlow.tests.conftest import card


class TestDeck:
    def test_create_deck_has_52_unique_cards(self):
        deck = create_deck()

        assert len(deck) == DECK_SIZE == 52
        assert len(set(deck)) == 52

    def test_every_rank_suit_pair_present(self):
        deck = set(create_deck())

        for rank in Rank:
            for suit in Suit:
                assert Card(rank=rank, suit=suit) in deck

    def test_shuffle_is_a_permutation(self):
        rng = random.Random(7)
        for _ in range(200):
            deck = new_shuffled_deck(rng)
            assert len(deck) == 52
            assert set(deck) == set(create_deck())

    def test_shuffle_does_not_mutate_input(self):
        cards = create_deck()
        original = list(cards)

        shuffle_cards(cards, random.Random(1))

        assert cards == original

    def test_seeded_shuffle_is_reproducible(self):
        assert new_shuffled_deck(random.Random(42)) == new_shuffled_deck(random.Random(42))

    def test_default_rng_shuffles(self):
        # two secure shuffles of 52 cards colliding is astronomically unlikely
        assert new_shuffled_deck() != new_shuffled_deck()

    def test_position_distribution_is_roughly_uniform(self):
        rng = random.Random(2024)
        trials = 10_000
        top = Counter(new_shuffled_deck(rng)[-1] for _ in range(trials))

        expected = trials / 52
        assert len(top) == 52
        # each card should land on top within +-35% of the uniform expectation
        for count in top.values():
            assert 0.65 * expected < count < 1.35 * expected

    def test_fisher_yates_swaps_with_inclusive_upper_bound(self):
        calls: list[tuple[int, int]] = []

        class RecordingRandom(random.Random):
            def randint(self, a, b):
                calls.append((a, b))
                return b

        shuffle_cards([card("2"), card("3"), card("4")], RecordingRandom())

        assert calls == [(0, 2), (0, 1)]


class TestRank:
    def test_ranks_ordered_low_to_high(self):
        symbols = [r.value for r in sorted(Rank, key=lambda r: r.order)]

        assert symbols == ["2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A"]

    def test_ace_is_high(self):
        assert Rank.ACE.order > Rank.KING.order > Rank.TWO.order


class TestCompare:
    def test_higher(self):
        assert compare(card("5"), card("9"), Prediction.HIGHER)
        assert not compare(card("9"), card("5"), Prediction.HIGHER)

    def test_lower(self):
        assert compare(card("K"), card("10"), Prediction.LOWER)
        assert not compare(card("2"), card("A"), Prediction.LOWER)

    def test_same_ignores_suit(self):
        assert compare(card("Q", Suit.HEARTS), card("Q", Suit.SPADES), Prediction.SAME)

    def test_equal_rank_is_neither_higher_nor_lower(self):
        top, new = card("J", Suit.CLUBS), card("J", Suit.DIAMONDS)

        assert not compare(top, new, Prediction.HIGHER)
        assert not compare(top, new, Prediction.LOWER)

    @pytest.mark.parametrize("top_rank", list(Rank))
    def test_exactly_one_prediction_holds(self, top_rank):
        top = Card(rank=top_rank, suit=Suit.HEARTS)
        for new_rank in Rank:
            new = Card(rank=new_rank, suit=Suit.SPADES)
            holding = [p for p in Prediction if compare(top, new, p)]
            assert len(holding) == 1
            if new_rank == top_rank:
                assert holding == [Prediction.SAME]
