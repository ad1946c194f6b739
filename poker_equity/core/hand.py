"""A player's known cards: two hole cards plus the community cards."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from poker_equity.utils.card import Card, parse_cards
from poker_equity.utils.constants import HOLE_CARDS, STREET_BY_BOARD_SIZE, Street


@dataclass(frozen=True)
class Hand:
    """Hole cards and the community cards dealt so far."""

    hole_cards: tuple[Card, ...]
    community_cards: tuple[Card, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples so the hand stays hashable.
        object.__setattr__(self, "hole_cards", tuple(self.hole_cards))
        object.__setattr__(self, "community_cards", tuple(self.community_cards))

    @classmethod
    def from_str(cls, hole: str, board: str = "") -> Hand:
        """Build a hand from strings like ``Hand.from_str("Ah As", "Kd 7c 2s")``."""
        return cls(tuple(parse_cards(hole)), tuple(parse_cards(board)))

    @property
    def all_cards(self) -> tuple[Card, ...]:
        return self.hole_cards + self.community_cards

    @property
    def is_valid(self) -> bool:
        """Two distinct hole cards and a board of 0, 3, 4 or 5 cards."""
        cards = self.all_cards
        return (
            len(self.hole_cards) == HOLE_CARDS
            and len(self.community_cards) in STREET_BY_BOARD_SIZE
            and len(set(cards)) == len(cards)
        )

    @property
    def street(self) -> Street:
        """Betting round implied by the community-card count."""
        return STREET_BY_BOARD_SIZE.get(len(self.community_cards), Street.PREFLOP)

    @property
    def cards_to_come(self) -> int:
        """Community cards still to be dealt."""
        return 5 - len(self.community_cards)

    def validate(self) -> None:
        """Raise ValueError describing why the hand is not valid."""
        if len(self.hole_cards) != HOLE_CARDS:
            raise ValueError(
                f"Need exactly {HOLE_CARDS} hole cards, got {len(self.hole_cards)}"
            )
        if len(self.community_cards) not in STREET_BY_BOARD_SIZE:
            raise ValueError(
                "Community cards must number 0, 3, 4 or 5, "
                f"got {len(self.community_cards)}"
            )
        duplicates = _duplicates(self.all_cards)
        if duplicates:
            raise ValueError(f"Duplicate cards in hand: {duplicates}")

    def __str__(self) -> str:
        hole = " ".join(str(c) for c in self.hole_cards)
        if not self.community_cards:
            return hole
        return f"{hole} | {' '.join(str(c) for c in self.community_cards)}"


def _duplicates(cards: Iterable[Card]) -> list[str]:
    seen: set[Card] = set()
    dupes: list[str] = []
    for card in cards:
        if card in seen:
            dupes.append(str(card))
        seen.add(card)
    return dupes
