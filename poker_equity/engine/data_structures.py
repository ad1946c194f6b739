"""Core data structures for the equity engine.

SimulationQuery: Immutable description of one equity request.
SimulationResult: Win/tie/sample counters, summed across workers and lanes.
EquityEstimate: Final equity plus diagnostics about how it was produced.
SimulatorProtocol / ParallelBackendProtocol: Backend interfaces.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Protocol, runtime_checkable

from poker_equity.core.hand import Hand
from poker_equity.strategy.opponent_range import RangeType
from poker_equity.utils.card import Card, Deck
from poker_equity.utils.constants import HOLE_CARDS, MAX_OPPONENTS


class Backend(StrEnum):
    CPU = "cpu"
    HARDWARE = "hardware"
    NONE = "none"


@dataclass(frozen=True)
class SimulationQuery:
    """One equity request.

    Frozen and built only from hashable, picklable values so it can be
    handed to any number of workers without copying or locking.

    Attributes:
        hand: Hero's hole cards and the community cards dealt so far.
        opponents: Number of opponents still in the hand (1-8).
        dead_cards: Cards known to be out of play.
        iterations: Requested iteration budget.
        range_type: Opponent range to filter against (RANDOM = none).
        confidence_threshold: Stop once the standard error drops below
            this value. 0 disables early stopping.
        time_budget: Wall-clock budget in seconds.
        seed: Fixed random seed for reproducible runs (None = random).
    """

    hand: Hand
    opponents: int = 1
    dead_cards: frozenset[Card] = field(default_factory=frozenset)
    iterations: int = 50_000
    range_type: RangeType = RangeType.RANDOM
    confidence_threshold: float = 0.0
    time_budget: float = 10.0
    seed: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "dead_cards", frozenset(self.dead_cards))
        self.hand.validate()
        if not 1 <= self.opponents <= MAX_OPPONENTS:
            raise ValueError(
                f"Opponents must be between 1 and {MAX_OPPONENTS}, got {self.opponents}"
            )
        overlap = self.dead_cards & set(self.hand.all_cards)
        if overlap:
            raise ValueError(
                f"Dead cards overlap known cards: {sorted(str(c) for c in overlap)}"
            )
        if self.iterations <= 0:
            raise ValueError(f"Iterations must be positive, got {self.iterations}")
        if self.confidence_threshold < 0:
            raise ValueError(
                f"Confidence threshold must be >= 0, got {self.confidence_threshold}"
            )
        if self.time_budget <= 0:
            raise ValueError(f"Time budget must be positive, got {self.time_budget}")

    @property
    def known_cards(self) -> frozenset[Card]:
        """Hole, community and dead cards: everything removed from the deck."""
        return frozenset(self.hand.all_cards) | self.dead_cards

    @property
    def cards_needed(self) -> int:
        """Cards dealt per iteration: the rest of the board plus opponents' hands."""
        return self.hand.cards_to_come + HOLE_CARDS * self.opponents

    def available_cards(self) -> list[Card]:
        """The deck minus every known card, in deck order."""
        return Deck().without(self.known_cards)

    @property
    def has_enough_cards(self) -> bool:
        return len(self.available_cards()) >= self.cards_needed

    def with_changes(self, **changes) -> SimulationQuery:
        """Copy of this query with some fields replaced (re-validated)."""
        return replace(self, **changes)


@dataclass(frozen=True)
class SimulationResult:
    """Aggregated counters from one or more simulation slices.

    ``total`` counts valid samples only; ``iterations`` also counts
    iterations discarded because every opponent fell outside the range.
    Addition is commutative and associative, so slices can be merged in
    any order.
    """

    wins: int = 0
    ties: int = 0
    total: int = 0
    iterations: int = 0

    def __add__(self, other: SimulationResult) -> SimulationResult:
        if not isinstance(other, SimulationResult):
            return NotImplemented
        return SimulationResult(
            wins=self.wins + other.wins,
            ties=self.ties + other.ties,
            total=self.total + other.total,
            iterations=self.iterations + other.iterations,
        )

    @classmethod
    def merge(cls, results: Iterable[SimulationResult]) -> SimulationResult:
        merged = cls()
        for r in results:
            merged = merged + r
        return merged

    @property
    def losses(self) -> int:
        return self.total - self.wins - self.ties

    @property
    def equity(self) -> float:
        """wins/total + 0.5 * ties/total, clamped to [0, 1]; 0 when empty."""
        if self.total == 0:
            return 0.0
        equity = self.wins / self.total + 0.5 * self.ties / self.total
        return min(1.0, max(0.0, equity))

    @property
    def standard_error(self) -> float:
        """sqrt(p(1-p)/n) of the running equity; infinite when empty."""
        if self.total == 0:
            return math.inf
        p = self.equity
        return math.sqrt(p * (1.0 - p) / self.total)


@dataclass(frozen=True)
class EquityEstimate:
    """Equity in [0, 1] and diagnostics about how it was produced.

    ``samples == 0`` means no estimate could be made (for example, too
    many dead cards); callers must treat that as unavailable, not as a
    certain loss.
    """

    equity: float
    backend: Backend
    samples: int = 0
    iterations: int = 0
    standard_error: float = math.inf
    elapsed_ms: float = 0.0
    converged: bool = False
    batches: int = 0
    workers: int = 0
    range_type: RangeType = RangeType.RANDOM
    wins: int = 0
    ties: int = 0

    @classmethod
    def from_result(
        cls,
        result: SimulationResult,
        backend: Backend,
        *,
        elapsed_ms: float = 0.0,
        converged: bool = False,
        batches: int = 0,
        workers: int = 0,
        range_type: RangeType = RangeType.RANDOM,
    ) -> EquityEstimate:
        return cls(
            equity=result.equity,
            backend=backend,
            samples=result.total,
            iterations=result.iterations,
            standard_error=result.standard_error,
            elapsed_ms=elapsed_ms,
            converged=converged,
            batches=batches,
            workers=workers,
            range_type=range_type,
            wins=result.wins,
            ties=result.ties,
        )

    @property
    def is_available(self) -> bool:
        return self.samples > 0

    @property
    def equity_pct(self) -> float:
        return self.equity * 100

    def __str__(self) -> str:
        if not self.is_available:
            return f"Equity: unavailable (backend: {self.backend}, 0 samples)"
        return (
            f"Equity: {self.equity_pct:.1f}% "
            f"(backend: {self.backend}, samples: {self.samples}, "
            f"se: {self.standard_error:.5f}, {self.elapsed_ms:.0f}ms)"
        )


@runtime_checkable
class SimulatorProtocol(Protocol):
    """Interface of a simulator that can always answer a query."""

    async def simulate(self, query: SimulationQuery) -> EquityEstimate:
        """Run the simulation and return the estimate."""
        ...


@runtime_checkable
class ParallelBackendProtocol(Protocol):
    """Interface of an optional accelerated backend.

    ``simulate_parallel`` returns None whenever the backend cannot answer
    (not ready, failed, timed out); callers fall back to another simulator.
    """

    def prepare(self) -> Future:
        """Start preparing in the background; returns the readiness future."""
        ...

    def is_ready(self) -> bool:
        ...

    async def simulate_parallel(self, query: SimulationQuery) -> EquityEstimate | None:
        ...
