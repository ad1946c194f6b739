"""Card and Deck classes for the equity engine."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from functools import total_ordering

from poker_equity.utils.constants import (
    DECK_SIZE,
    RANK_VALUES,
    SUIT_INDEX,
    Rank,
    Suit,
)

_RANK_BY_VALUE: dict[int, Rank] = {v: r for r, v in RANK_VALUES.items()}
_SUIT_BY_INDEX: dict[int, Suit] = {i: s for s, i in SUIT_INDEX.items()}


@total_ordering
@dataclass(frozen=True)
class Card:
    """Represents a single playing card.

    Cards order by rank, then by suit index, matching ``code``.
    """

    rank: Rank
    suit: Suit

    @classmethod
    def from_str(cls, s: str) -> Card:
        """Create a Card from a 2-character string like 'Ah' or 'Td'.

        Raises:
            ValueError: If the string is not exactly 2 characters or
                       contains invalid rank/suit characters.
        """
        if len(s) != 2:
            raise ValueError(f"Card string must be 2 characters, got '{s}'")
        try:
            rank = Rank(s[0].upper())
        except ValueError:
            raise ValueError(f"Invalid rank character: '{s[0]}'")
        try:
            suit = Suit(s[1].lower())
        except ValueError:
            raise ValueError(f"Invalid suit character: '{s[1]}'")
        return cls(rank=rank, suit=suit)

    @classmethod
    def from_code(cls, code: int) -> Card:
        """Inverse of :attr:`code`."""
        if not 0 <= code < DECK_SIZE:
            raise ValueError(f"Card code must be in [0, {DECK_SIZE}), got {code}")
        return cls(rank=_RANK_BY_VALUE[code // 4 + 2], suit=_SUIT_BY_INDEX[code % 4])

    @property
    def value(self) -> int:
        """Numeric value of the card's rank (2-14)."""
        return RANK_VALUES[self.rank]

    @property
    def code(self) -> int:
        """Compact integer form: (rank - 2) * 4 + suit index, in [0, 52)."""
        return (self.value - 2) * 4 + SUIT_INDEX[self.suit]

    def __str__(self) -> str:
        return f"{self.rank.value}{self.suit.value}"

    def __repr__(self) -> str:
        return f"Card('{self}')"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.code < other.code

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.rank == other.rank and self.suit == other.suit

    def __hash__(self) -> int:
        return hash((self.rank, self.suit))


def parse_cards(s: str) -> list[Card]:
    """Parse space-separated card strings like 'Ah Kh Qh'."""
    return [Card.from_str(c) for c in s.split()]


def cards_to_mask(cards: Iterable[Card]) -> int:
    """Return the 52-bit mask with bit ``card.code`` set for every card."""
    mask = 0
    for card in cards:
        mask |= 1 << card.code
    return mask


class Deck:
    """The standard 52-card deck in a fixed order.

    The deck is never shuffled in place; simulators copy the cards they
    need with :meth:`without` and shuffle their own buffers.
    """

    def __init__(self) -> None:
        self._cards: tuple[Card, ...] = tuple(
            Card.from_code(code) for code in range(DECK_SIZE)
        )

    @property
    def cards(self) -> tuple[Card, ...]:
        return self._cards

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self):
        return iter(self._cards)

    def without(self, excluded: Iterable[Card]) -> list[Card]:
        """Return the cards not in ``excluded``, in deck order."""
        blocked = set(excluded)
        return [c for c in self._cards if c not in blocked]
