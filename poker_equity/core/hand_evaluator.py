"""Texas Hold'em hand evaluation engine.

Every hand of 5 to 7 cards is reduced to a single integer strength:
a larger strength is a strictly better poker hand and equal strengths
are an exact tie, kickers included.

Encoding (shared bit-for-bit with the lane kernels in
``poker_equity.engine.kernels``)::

    strength = HandRanking * 1_000_000 + tie_break

    STRAIGHT_FLUSH   high card (5 for the wheel)
    FOUR_OF_A_KIND   quad * 100 + kicker
    FULL_HOUSE       trips * 100 + pair
    FLUSH            five ranks packed 4 bits each, highest first
    STRAIGHT         high card (5 for the wheel)
    THREE_OF_A_KIND  trips * 10_000 + kicker1 * 100 + kicker2
    TWO_PAIR         high_pair * 10_000 + low_pair * 100 + kicker
    ONE_PAIR         pair, kicker1, kicker2, kicker3 packed 4 bits each
    HIGH_CARD        five ranks packed 4 bits each, highest first

Every tie-break is below 1_000_000, so categories never overlap.
"""

from __future__ import annotations

from collections.abc import Sequence
from itertools import combinations

from poker_equity.utils.card import Card
from poker_equity.utils.constants import BAND_WIDTH, HandRanking

_WHEEL = [14, 5, 4, 3, 2]


def _pack(ranks: Sequence[int]) -> int:
    """Pack ranks most-significant-first, 4 bits per rank."""
    value = 0
    for r in ranks:
        value = (value << 4) | r
    return value


def _strength_five(codes: Sequence[int]) -> int:
    """Encode exactly five card codes."""
    ranks = sorted(((c >> 2) + 2 for c in codes), reverse=True)
    suit = codes[0] & 3
    is_flush = all((c & 3) == suit for c in codes)

    distinct = len(set(ranks)) == 5
    straight_high = 0
    if distinct:
        if ranks[0] - ranks[4] == 4:
            straight_high = ranks[0]
        elif ranks == _WHEEL:
            straight_high = 5

    if is_flush and straight_high:
        return HandRanking.STRAIGHT_FLUSH * BAND_WIDTH + straight_high

    if distinct:
        if is_flush:
            return HandRanking.FLUSH * BAND_WIDTH + _pack(ranks)
        if straight_high:
            return HandRanking.STRAIGHT * BAND_WIDTH + straight_high
        return HandRanking.HIGH_CARD * BAND_WIDTH + _pack(ranks)

    counts: dict[int, int] = {}
    for r in ranks:
        counts[r] = counts.get(r, 0) + 1
    # Largest group first, then higher rank
    groups = sorted(counts.items(), key=lambda kv: (kv[1], kv[0]), reverse=True)
    top_rank, top_count = groups[0]
    kickers = [r for r in ranks if counts[r] == 1]

    if top_count == 4:
        return HandRanking.FOUR_OF_A_KIND * BAND_WIDTH + top_rank * 100 + kickers[0]

    if top_count == 3:
        if groups[1][1] == 2:
            return HandRanking.FULL_HOUSE * BAND_WIDTH + top_rank * 100 + groups[1][0]
        return (
            HandRanking.THREE_OF_A_KIND * BAND_WIDTH
            + top_rank * 10_000 + kickers[0] * 100 + kickers[1]
        )

    if groups[1][1] == 2:
        # groups is sorted so groups[0] holds the higher pair
        return (
            HandRanking.TWO_PAIR * BAND_WIDTH
            + top_rank * 10_000 + groups[1][0] * 100 + kickers[0]
        )

    return HandRanking.ONE_PAIR * BAND_WIDTH + _pack([top_rank, *kickers])


def evaluate_codes(codes: Sequence[int]) -> int:
    """Evaluate 5 to 7 card codes (see ``Card.code``).

    Used directly by the simulation workers, which hold cards as codes.

    Raises:
        ValueError: If fewer than 5 cards are provided.
    """
    if len(codes) < 5:
        raise ValueError(f"Need at least 5 cards, got {len(codes)}")
    if len(codes) == 5:
        return _strength_five(codes)
    return max(_strength_five(combo) for combo in combinations(codes, 5))


class HandEvaluator:
    """Evaluates poker hands and determines the best 5-card combination."""

    @staticmethod
    def evaluate(cards: Sequence[Card]) -> int:
        """Evaluate the best 5-card hand from a list of cards.

        Args:
            cards: 5 to 7 cards (hole cards + community cards).

        Returns:
            Encoded hand strength; higher is better, equal is a tie.

        Raises:
            ValueError: If fewer than 5 cards are provided.
        """
        return evaluate_codes([c.code for c in cards])

    @staticmethod
    def evaluate_five(cards: Sequence[Card]) -> int:
        """Evaluate exactly 5 cards."""
        if len(cards) != 5:
            raise ValueError(f"Need exactly 5 cards, got {len(cards)}")
        return _strength_five([c.code for c in cards])

    @staticmethod
    def category(strength: int) -> HandRanking:
        """Return the hand category of an encoded strength."""
        return HandRanking(strength // BAND_WIDTH)

    @staticmethod
    def describe(strength: int) -> str:
        """Human-readable category name, e.g. 'Full house'."""
        name = HandEvaluator.category(strength).name
        return name.replace("_", " ").capitalize()
