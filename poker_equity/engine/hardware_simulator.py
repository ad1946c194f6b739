"""Massively parallel equity simulator backed by the Numba lane kernels.

The backend is an explicitly constructed service with a readiness
lifecycle: ``prepare()`` starts kernel compilation in the background and
returns at once, ``is_ready()`` never blocks, and ``simulate_parallel()``
answers None whenever it cannot produce a result so the caller can fall
back to the CPU simulator.

Every lane runs a fixed number of iterations with uniformly random
opponents; range filtering is not supported on this path.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import StrEnum

import numpy as np

from poker_equity.engine.config import EngineConfig
from poker_equity.engine.data_structures import (
    Backend,
    EquityEstimate,
    SimulationQuery,
    SimulationResult,
)
from poker_equity.utils.card import cards_to_mask

logger = logging.getLogger("poker_equity.engine.hardware")

_LCG_MODULUS = 2147483647


class BackendState(StrEnum):
    UNINITIALIZED = "uninitialized"
    COMPILING = "compiling"
    READY = "ready"
    FAILED = "failed"


class HardwareSimulator:
    """Data-parallel Monte Carlo simulator.

    Dispatches run one at a time on a dedicated thread, so a dispatch
    abandoned after a timeout finishes before the next one starts.

    Usage:
        simulator = HardwareSimulator(EngineConfig())
        simulator.prepare()  # returns immediately
        ...
        estimate = await simulator.simulate_parallel(query)  # None -> fall back
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or EngineConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="lane-dispatch",
        )
        self._lock = threading.Lock()
        self._state = BackendState.UNINITIALIZED
        self._warmup: Future | None = None
        self._kernels = None

    @property
    def state(self) -> BackendState:
        return self._state

    def is_ready(self) -> bool:
        """Non-blocking readiness check."""
        return self._state is BackendState.READY

    def prepare(self) -> Future:
        """Start kernel compilation in the background. Idempotent.

        Returns:
            The warm-up future; the same one on every call.
        """
        with self._lock:
            if self._warmup is None:
                self._state = BackendState.COMPILING
                self._warmup = self._executor.submit(self._compile)
            return self._warmup

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until preparation finishes; for scripts and tests only."""
        warmup = self.prepare()
        try:
            warmup.result(timeout=timeout)
        except TimeoutError:
            return False
        return self.is_ready()

    def _compile(self) -> None:
        """Import and compile the kernels; runs on the dispatch thread."""
        t0 = time.perf_counter()
        try:
            from poker_equity.engine import kernels

            kernels.warm_up()
        except Exception:
            self._state = BackendState.FAILED
            logger.exception("Hardware backend failed to initialize")
            return
        self._kernels = kernels
        self._state = BackendState.READY
        logger.info(
            "Hardware backend ready (compiled in %.1fms)",
            (time.perf_counter() - t0) * 1000,
        )

    def close(self) -> None:
        """Stop accepting dispatches; an in-flight dispatch is not awaited."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def lane_count(self, iterations: int) -> int:
        return max(1, iterations // self._config.lane_iterations)

    async def simulate_parallel(self, query: SimulationQuery) -> EquityEstimate | None:
        """Run ``query`` across parallel lanes.

        Returns:
            EquityEstimate with backend=hardware, or None when the backend
            is not ready or the dispatch exceeds the hardware timeout.

        Raises:
            ValueError: If the query asks for range filtering.
        """
        if query.range_type.is_filtering:
            raise ValueError("Hardware lanes cannot filter opponent ranges")

        if not self.is_ready():
            logger.debug("Hardware backend not ready (state=%s)", self._state)
            return None

        t_start = time.perf_counter()
        if not query.has_enough_cards:
            logger.warning(
                "Insufficient deck: %d cards needed per iteration", query.cards_needed,
            )
            return EquityEstimate.from_result(SimulationResult(), Backend.HARDWARE)

        lanes = self.lane_count(query.iterations)
        seeds = np.random.default_rng(query.seed).integers(
            1, _LCG_MODULUS, size=lanes, dtype=np.int64,
        )
        hole = np.array([c.code for c in query.hand.hole_cards], dtype=np.int64)
        board = np.zeros(5, dtype=np.int64)
        for i, card in enumerate(query.hand.community_cards):
            board[i] = card.code
        used_mask = cards_to_mask(query.known_cards)

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            self._executor, self._dispatch,
            hole, board, len(query.hand.community_cards), used_mask,
            query.opponents, seeds,
        )
        timeout = self._config.hardware_timeout
        try:
            wins, ties, total = await asyncio.wait_for(
                asyncio.shield(future), timeout=timeout,
            )
        except asyncio.CancelledError:
            future.add_done_callback(_discard)
            raise
        except asyncio.TimeoutError:
            # The lanes keep running; whatever they produce is dropped.
            future.add_done_callback(_discard)
            logger.warning(
                "Hardware dispatch timed out after %.1fs (%d lanes); result discarded",
                timeout, lanes,
            )
            return None

        result = SimulationResult(
            wins=wins, ties=ties, total=total,
            iterations=lanes * self._config.lane_iterations,
        )
        return EquityEstimate.from_result(
            result,
            Backend.HARDWARE,
            elapsed_ms=(time.perf_counter() - t_start) * 1000,
            converged=result.total > 0,
            batches=1,
            workers=lanes,
        )

    def _dispatch(
        self,
        hole: np.ndarray,
        board: np.ndarray,
        n_board: int,
        used_mask: int,
        opponents: int,
        seeds: np.ndarray,
    ) -> tuple[int, int, int]:
        """Run every lane and reduce the per-lane slots on the host."""
        out = np.zeros((seeds.shape[0], 3), dtype=np.int64)
        self._kernels.run_lanes(
            hole, board, n_board, used_mask, opponents,
            self._config.lane_iterations, seeds, out,
        )
        wins, ties, total = out.sum(axis=0)
        return int(wins), int(ties), int(total)


def _discard(future: asyncio.Future) -> None:
    # Retrieve the outcome so an abandoned failure is not reported as unhandled.
    if not future.cancelled() and future.exception() is not None:
        logger.debug("Abandoned hardware dispatch failed: %s", future.exception())
