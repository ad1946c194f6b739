"""Monte Carlo equity engine for Texas Hold'em decisions.

Estimates a hero's probability of winning (plus half of ties) against
one to eight opponents. Queries run on data-parallel Numba lanes when
that backend is ready, and on a CPU process pool otherwise or whenever
opponent hands must be range-filtered.

Key public API:
    EquityRouter        -- Entry point; picks a backend and falls back
    SimulationQuery     -- One equity request (cards, opponents, budget)
    EquityEstimate      -- Equity plus diagnostics (backend, samples, SE)
    CalculationDepth    -- Accuracy presets that build queries
    EngineConfig        -- Tunables, loadable from JSON
"""

from poker_equity.engine.data_structures import (
    Backend,
    EquityEstimate,
    SimulationQuery,
    SimulationResult,
)
from poker_equity.engine.config import CalculationDepth, EngineConfig, load_engine_config
from poker_equity.engine.cpu_simulator import CpuSimulator
from poker_equity.engine.hardware_simulator import BackendState, HardwareSimulator
from poker_equity.engine.router import EquityRouter

__all__ = [
    "Backend",
    "BackendState",
    "CalculationDepth",
    "CpuSimulator",
    "EngineConfig",
    "EquityEstimate",
    "EquityRouter",
    "HardwareSimulator",
    "SimulationQuery",
    "SimulationResult",
    "load_engine_config",
]
