"""EquityRouter: top-level entry point of the equity engine.

Decides whether opponent hands are range-filtered, routes the query to
the hardware lanes or the CPU simulator, and falls back to the CPU
whenever the hardware path cannot give a usable answer. Callers always
get an estimate back (unless they cancel); how it was produced is in
the estimate's diagnostics.
"""

from __future__ import annotations

import logging
import time

from poker_equity.core.hand import Hand
from poker_equity.engine.config import EngineConfig
from poker_equity.engine.cpu_simulator import CpuSimulator
from poker_equity.engine.data_structures import (
    EquityEstimate,
    ParallelBackendProtocol,
    SimulationQuery,
    SimulatorProtocol,
)
from poker_equity.engine.hardware_simulator import HardwareSimulator
from poker_equity.strategy.opponent_range import RangeType
from poker_equity.utils.card import Card
from poker_equity.utils.constants import Street

logger = logging.getLogger("poker_equity.engine.router")


class EquityRouter:
    """Routes equity queries between the hardware and CPU simulators.

    Both backends are injectable so tests and callers can swap them.

    Usage:
        with EquityRouter() as router:
            router.start()
            estimate = await router.calculate_equity(query)
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        cpu: SimulatorProtocol | None = None,
        hardware: ParallelBackendProtocol | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._cpu = cpu if cpu is not None else CpuSimulator(self._config)
        if hardware is None and self._config.enable_hardware:
            hardware = HardwareSimulator(self._config)
        self._hardware = hardware

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def hardware_ready(self) -> bool:
        return self._hardware is not None and self._hardware.is_ready()

    def start(self) -> None:
        """Begin preparing the hardware backend; returns immediately."""
        if self._hardware is not None:
            self._hardware.prepare()

    def close(self) -> None:
        for backend in (self._cpu, self._hardware):
            close = getattr(backend, "close", None)
            if close is not None:
                close()

    def __enter__(self) -> EquityRouter:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def uses_range_filtering(query: SimulationQuery) -> bool:
        """Filter only preflop heads-up spots with a non-random range."""
        return (
            query.hand.street == Street.PREFLOP
            and query.opponents == 1
            and query.range_type.is_filtering
        )

    async def calculate_equity(self, query: SimulationQuery) -> EquityEstimate:
        """Estimate the hero's equity for ``query``.

        Resilience: an unexpected exception from the hardware backend is
        logged and answered by the CPU simulator instead.

        Returns:
            EquityEstimate from whichever backend served the request.
        """
        t_start = time.perf_counter()

        if self.uses_range_filtering(query):
            logger.debug("Range filtering (%s): routing to CPU", query.range_type.name)
            estimate = await self._cpu.simulate(query)
        else:
            if query.range_type.is_filtering:
                logger.debug(
                    "Dropping %s range: %s with %d opponents is sampled at random",
                    query.range_type.name, query.hand.street, query.opponents,
                )
                query = query.with_changes(range_type=RangeType.RANDOM)
            estimate = await self._try_hardware(query)
            if estimate is None:
                estimate = await self._cpu.simulate(query)

        logger.info(
            "Equity %.1f%% (backend=%s, samples=%d, se=%.5f, converged=%s, %.1fms)",
            estimate.equity_pct,
            estimate.backend,
            estimate.samples,
            estimate.standard_error,
            estimate.converged,
            (time.perf_counter() - t_start) * 1000,
        )
        return estimate

    async def calculate_quick(
        self,
        hand: Hand,
        opponents: int,
        dead_cards: frozenset[Card] = frozenset(),
        range_type: RangeType = RangeType.RANDOM,
    ) -> EquityEstimate:
        """Fixed-size estimate for UI feedback; no early stopping."""
        query = SimulationQuery(
            hand=hand,
            opponents=opponents,
            dead_cards=dead_cards,
            iterations=self._config.quick_iterations,
            range_type=range_type,
        )
        return await self.calculate_equity(query)

    async def _try_hardware(self, query: SimulationQuery) -> EquityEstimate | None:
        """Hardware answer, or None when the CPU has to take over."""
        if self._hardware is None:
            return None
        if not self._hardware.is_ready():
            logger.debug("Hardware backend not ready, using CPU")
            return None

        capped = query.with_changes(
            iterations=min(query.iterations, self._config.hardware_max_iterations),
        )
        try:
            estimate = await self._hardware.simulate_parallel(capped)
        except Exception:
            logger.exception("Hardware backend failed, falling back to CPU")
            return None

        if estimate is None:
            return None
        if not self._is_plausible(estimate):
            logger.warning(
                "Discarding implausible hardware result (equity=%.4f, samples=%d)",
                estimate.equity, estimate.samples,
            )
            return None
        return estimate

    def _is_plausible(self, estimate: EquityEstimate) -> bool:
        return (
            estimate.samples > 0
            and estimate.equity > self._config.plausibility_floor
        )
