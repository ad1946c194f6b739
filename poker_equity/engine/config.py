"""Engine configuration and calculation-depth presets."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path

from poker_equity.core.hand import Hand
from poker_equity.engine.data_structures import SimulationQuery
from poker_equity.strategy.opponent_range import RangeType
from poker_equity.utils.card import Card

logger = logging.getLogger("poker_equity.engine.config")

DEFAULT_CONFIG_PATH = Path.home() / ".poker_equity" / "engine_config.json"


def _default_workers() -> int:
    # One worker per core, capped at six.
    return max(1, min(6, os.cpu_count() or 2))


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for the simulators and the router."""

    max_workers: int = _default_workers()
    batch_size: int = 50_000
    min_samples: int = 50_000  # No convergence check before this many samples
    parallel_threshold: int = 10_000  # Below this, run single-threaded
    cpu_time_budget: float = 10.0  # Seconds
    hardware_timeout: float = 5.0  # Seconds
    hardware_max_iterations: int = 2_000_000
    lane_iterations: int = 1_000
    plausibility_floor: float = 0.001
    quick_iterations: int = 50_000
    enable_hardware: bool = True

    def __post_init__(self) -> None:
        for name in (
            "max_workers", "batch_size", "parallel_threshold",
            "hardware_max_iterations", "lane_iterations", "quick_iterations",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.min_samples < 0:
            raise ValueError(f"min_samples must be >= 0, got {self.min_samples}")
        if self.cpu_time_budget <= 0 or self.hardware_timeout <= 0:
            raise ValueError("Time budgets must be positive")


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """Load engine configuration from a JSON file.

    Default path: ~/.poker_equity/engine_config.json

    A missing file yields the defaults. An unreadable or invalid file is
    logged and also yields the defaults, so a bad config never stops the
    engine from answering.

    Expected JSON format (every key optional):
        {
            "max_workers": 4,
            "batch_size": 50000,
            "cpu_time_budget": 10.0,
            "hardware_timeout": 5.0,
            "enable_hardware": true
        }
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return EngineConfig()

    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to read engine config at %s: %s", path, e)
        return EngineConfig()

    if not isinstance(data, dict):
        logger.warning("Engine config at %s is not a JSON object", path)
        return EngineConfig()

    known = {f.name for f in fields(EngineConfig)}
    for key in sorted(set(data) - known):
        logger.warning("Ignoring unknown engine config key: %s", key)

    try:
        return EngineConfig(**{k: v for k, v in data.items() if k in known})
    except (TypeError, ValueError) as e:
        logger.warning("Invalid engine config at %s: %s", path, e)
        return EngineConfig()


class CalculationDepth(Enum):
    """User-facing accuracy presets: (iterations, standard-error target)."""

    FAST = (1_000_000, 0.0005)
    ACCURATE = (10_000_000, 0.00016)
    DEEP = (50_000_000, 0.00007)
    MAXIMUM = (100_000_000, 0.00005)

    @property
    def iterations(self) -> int:
        return self.value[0]

    @property
    def confidence_threshold(self) -> float:
        return self.value[1]

    def query(
        self,
        hand: Hand,
        opponents: int,
        dead_cards: frozenset[Card] = frozenset(),
        range_type: RangeType = RangeType.RANDOM,
        time_budget: float = 10.0,
    ) -> SimulationQuery:
        """Build a SimulationQuery at this depth."""
        return SimulationQuery(
            hand=hand,
            opponents=opponents,
            dead_cards=dead_cards,
            iterations=self.iterations,
            range_type=range_type,
            confidence_threshold=self.confidence_threshold,
            time_budget=time_budget,
        )
