"""Opponent range model for preflop heads-up filtering.

All 169 canonical starting hands are ranked by preflop all-in equity
against random hands (Sklansky-Chubukov style, adapted for 6-max cash
games). A RangeType keeps the top fraction of that ranking; opponents
whose sampled hole cards fall outside it are rejected by the simulator.

Hand notation:
  - "AA"  → pocket pair
  - "AKs" → suited
  - "AKo" → offsuit
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum

from poker_equity.utils.card import Card
from poker_equity.utils.constants import (
    CANONICAL_HANDS,
    DECK_SIZE,
    RANK_VALUES,
    Rank,
    Street,
)


class RangeType(Enum):
    VERY_TIGHT = 0.10  # 3bet/4bet range
    TIGHT = 0.20  # open-raise from early position
    STANDARD = 0.35  # open-raise from MP/CO
    WIDE = 0.50  # open-raise from BTN
    VERY_WIDE = 0.70  # limp/call range
    RANDOM = 1.0  # any two cards

    @property
    def percentile(self) -> float:
        return self.value

    @property
    def threshold(self) -> int:
        """Hands ranked strictly below this index are in range."""
        return int(CANONICAL_HANDS * self.percentile)

    @property
    def is_filtering(self) -> bool:
        return self is not RangeType.RANDOM


class HandType(StrEnum):
    PAIR = "pair"
    SUITED = "suited"
    OFFSUIT = "offsuit"


@dataclass(frozen=True)
class CanonicalHand:
    """A starting hand with exact suits abstracted away (e.g. AKs, JJ, T9o)."""

    rank1: Rank  # the higher rank
    rank2: Rank
    hand_type: HandType

    @classmethod
    def from_str(cls, s: str) -> CanonicalHand:
        """Parse notation like 'AKs', 'JJ', 'T9o'.

        Raises:
            ValueError: If notation is invalid.
        """
        if len(s) not in (2, 3):
            raise ValueError(f"Invalid hand notation: '{s}'")

        r1 = Rank(s[0])
        r2 = Rank(s[1])

        if r1 == r2:
            if len(s) != 2:
                raise ValueError(f"Pairs take no suit indicator: '{s}'")
            return cls(rank1=r1, rank2=r2, hand_type=HandType.PAIR)

        if RANK_VALUES[r1] < RANK_VALUES[r2]:
            r1, r2 = r2, r1

        if len(s) != 3 or s[2] not in ("s", "o"):
            raise ValueError(f"Non-pair hands need an 's' or 'o' suffix: '{s}'")
        hand_type = HandType.SUITED if s[2] == "s" else HandType.OFFSUIT
        return cls(rank1=r1, rank2=r2, hand_type=hand_type)

    @property
    def combo_count(self) -> int:
        if self.hand_type == HandType.PAIR:
            return 6
        if self.hand_type == HandType.SUITED:
            return 4
        return 12

    def __str__(self) -> str:
        r = f"{self.rank1.value}{self.rank2.value}"
        if self.hand_type == HandType.PAIR:
            return r
        if self.hand_type == HandType.SUITED:
            return r + "s"
        return r + "o"


# Strongest first: index 0 = AA, index 168 = 72o.
HAND_RANKINGS: tuple[str, ...] = (
    # Premium
    "AA", "KK", "QQ", "AKs", "JJ",
    # Strong
    "AQs", "TT", "AKo", "AJs", "KQs", "99", "ATs", "AQo",
    # Good
    "KJs", "88", "QJs", "KTs", "AJo", "A9s", "KQo", "A8s", "QTs", "77",
    "ATo", "JTs", "A7s",
    # Playable
    "KJo", "A5s", "A6s", "66", "A4s", "K9s", "QJo", "A3s", "Q9s", "J9s",
    "KTo", "A2s", "55", "T9s", "K8s", "QTo", "K7s", "JTo", "44", "Q8s",
    # Marginal
    "K6s", "J8s", "98s", "33", "T8s", "K5s", "A9o", "K4s", "Q7s", "K3s",
    "97s", "J7s", "Q6s", "22", "K2s", "87s", "A8o", "Q5s", "T7s", "Q4s",
    "J9o", "76s", "A7o", "Q3s", "96s", "J6s", "A5o", "Q2s", "T9o", "65s",
    "A6o",
    # Weak
    "86s", "J5s", "A4o", "K9o", "75s", "J4s", "T6s", "54s", "Q9o", "A3o",
    "J3s", "95s", "K8o", "64s", "J2s", "T5s", "98o", "A2o", "K7o", "85s",
    "T4s", "53s", "Q8o", "74s", "T3s", "K6o", "T2s", "87o", "43s", "Q7o",
    "97o", "J8o", "K5o", "94s",
    # Trash
    "63s", "84s", "K4o", "T8o", "92s", "76o", "K3o", "52s", "Q6o", "65o",
    "93s", "42s", "K2o", "73s", "J7o", "Q5o", "86o", "82s", "96o", "Q4o",
    "54o", "32s", "J6o", "75o", "83s", "Q3o", "T7o", "J5o", "Q2o", "64o",
    "72s", "62s", "J4o", "85o", "T6o", "53o", "J3o", "95o", "43o", "J2o",
    "74o", "T5o", "92o", "63o", "84o", "T4o", "42o", "T3o", "52o", "73o",
    "T2o", "62o", "94o", "82o", "93o", "32o", "83o", "72o",
)

_RANK_BY_LABEL: dict[str, int] = {label: i for i, label in enumerate(HAND_RANKINGS)}


def canonicalize(card1: Card, card2: Card) -> CanonicalHand:
    """Order-independent canonical label for two hole cards."""
    if card1.value < card2.value:
        card1, card2 = card2, card1
    if card1.rank == card2.rank:
        hand_type = HandType.PAIR
    elif card1.suit == card2.suit:
        hand_type = HandType.SUITED
    else:
        hand_type = HandType.OFFSUIT
    return CanonicalHand(rank1=card1.rank, rank2=card2.rank, hand_type=hand_type)


def hand_rank(hand: CanonicalHand) -> int:
    """Strength index of a canonical hand: 0 (AA) to 168 (72o)."""
    return _RANK_BY_LABEL[str(hand)]


def is_in_range(card1: Card, card2: Card, range_type: RangeType) -> bool:
    """True iff the hole cards rank inside the top percentile of range_type."""
    return hand_rank(canonicalize(card1, card2)) < range_type.threshold


def hands_in_range(range_type: RangeType) -> list[CanonicalHand]:
    """Canonical hands admitted by range_type, strongest first."""
    return [CanonicalHand.from_str(h) for h in HAND_RANKINGS[: range_type.threshold]]


def starting_hand_table() -> list[int]:
    """Rank of every ordered pair of card codes, flattened as ``c1 * 52 + c2``.

    Entries for identical codes are never read and hold the weakest rank.
    The simulation workers use this table in their hot loop instead of
    building CanonicalHand objects.
    """
    table = [CANONICAL_HANDS - 1] * (DECK_SIZE * DECK_SIZE)
    for c1 in range(DECK_SIZE):
        card1 = Card.from_code(c1)
        for c2 in range(DECK_SIZE):
            if c1 != c2:
                table[c1 * DECK_SIZE + c2] = hand_rank(
                    canonicalize(card1, Card.from_code(c2))
                )
    return table


def infer_range(
    pot_relative_bet: float,
    street: Street,
    is_aggressive: bool,
) -> RangeType:
    """Map an observed bet to the opponent's likely range.

    Deterministic threshold cascade; every comparison is strict.

    Args:
        pot_relative_bet: Bet (or amount to call) divided by the pot.
        street: Street on which the action happened.
        is_aggressive: True for a bet/raise, False for a limp/call.
            Only consulted preflop.

    Returns:
        The inferred RangeType.
    """
    if street == Street.PREFLOP:
        if is_aggressive:
            if pot_relative_bet > 0.5:
                return RangeType.VERY_TIGHT  # 3bet+
            if pot_relative_bet > 0.25:
                return RangeType.TIGHT  # open raise
            return RangeType.STANDARD
        if pot_relative_bet > 0.1:
            return RangeType.WIDE  # call of a raise
        return RangeType.VERY_WIDE  # limp

    # Postflop betting ranges, not opening ranges
    if pot_relative_bet > 0.8:
        return RangeType.TIGHT
    if pot_relative_bet > 0.5:
        return RangeType.STANDARD
    if pot_relative_bet > 0.25:
        return RangeType.WIDE
    return RangeType.VERY_WIDE


def range_from_bet(to_call: float, pot_size: float, street: Street) -> RangeType:
    """Range hint from the amount facing the hero.

    No bet to call means no opponent action to read, so no filtering.
    """
    if to_call <= 0:
        return RangeType.RANDOM
    return infer_range(to_call / max(pot_size, 1.0), street, is_aggressive=True)
