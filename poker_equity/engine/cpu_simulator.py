"""Monte Carlo equity simulator running on CPU worker processes.

Each iteration deals the rest of the board and every opponent's hole
cards from a partially shuffled copy of the available deck, evaluates
all 7-card hands and records a win, tie or loss for the hero.

Work runs in fixed-size batches split across a process pool. After
each batch the running standard error is compared to the query's
confidence threshold, so easy spots stop early and hard ones keep
going until the iteration budget or the wall-clock budget runs out.
Requests below the parallel break-even point run in a single worker
thread instead.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from functools import lru_cache

from poker_equity.core.hand_evaluator import evaluate_codes
from poker_equity.engine.config import EngineConfig
from poker_equity.engine.data_structures import (
    Backend,
    EquityEstimate,
    SimulationQuery,
    SimulationResult,
)
from poker_equity.strategy.opponent_range import starting_hand_table
from poker_equity.utils.constants import BOARD_SIZE, CANONICAL_HANDS, DECK_SIZE

logger = logging.getLogger("poker_equity.engine.cpu")

_MAX_SEED = 2**31 - 1

# Iterations between wall-clock checks inside a worker slice
_DEADLINE_CHECK_EVERY = 32


@lru_cache(maxsize=1)
def _hand_rank_table() -> tuple[int, ...]:
    # Built once per worker process on first use.
    return tuple(starting_hand_table())


def accepted_opponents(
    deck: list[int],
    start: int,
    opponents: int,
    range_threshold: int,
) -> list[tuple[int, int]]:
    """Deal each opponent two cards from ``deck[start:]``.

    An opponent whose hand ranks outside the range is dropped for this
    iteration; its cards stay dealt and nobody is re-dealt.
    """
    hands: list[tuple[int, int]] = []
    table = _hand_rank_table() if range_threshold < CANONICAL_HANDS else None
    pos = start
    for _ in range(opponents):
        c1, c2 = deck[pos], deck[pos + 1]
        pos += 2
        if table is not None and table[c1 * DECK_SIZE + c2] >= range_threshold:
            continue
        hands.append((c1, c2))
    return hands


def simulate_slice(
    hole: tuple[int, ...],
    board: tuple[int, ...],
    pool: tuple[int, ...],
    opponents: int,
    range_threshold: int,
    iterations: int,
    seed: int,
    deadline: float | None = None,
) -> tuple[int, int, int, int]:
    """Worker function: run up to ``iterations`` Monte Carlo iterations.

    All arguments are plain ints and tuples of card codes so they pickle
    cheaply into worker processes. Every buffer used here is local to the
    call.

    ``deadline`` is an absolute ``time.time()`` value shared across
    processes; the slice stops at the first check past it.

    Returns:
        (wins, ties, valid_samples, iterations_run) tuple.
    """
    rng = random.Random(seed)
    randrange = rng.randrange
    deck = list(pool)
    n = len(deck)
    to_come = BOARD_SIZE - len(board)
    needed = to_come + 2 * opponents
    if n < needed:
        return 0, 0, 0, 0

    hole_list = list(hole)
    board_list = list(board)
    wins = 0
    ties = 0
    total = 0
    done = 0

    while done < iterations:
        if (
            deadline is not None
            and done % _DEADLINE_CHECK_EVERY == 0
            and done > 0
            and time.time() >= deadline
        ):
            break
        done += 1

        # Partial Fisher-Yates: only the first `needed` slots are drawn.
        for i in range(needed):
            j = randrange(i, n)
            deck[i], deck[j] = deck[j], deck[i]

        runout = board_list + deck[:to_come]
        hands = accepted_opponents(deck, to_come, opponents, range_threshold)
        if not hands:
            # Every opponent fell outside the range: no showdown to count.
            continue

        hero = evaluate_codes(hole_list + runout)
        best = max(evaluate_codes([c1, c2, *runout]) for c1, c2 in hands)

        total += 1
        if hero > best:
            wins += 1
        elif hero == best:
            ties += 1

    return wins, ties, total, done


def partition(iterations: int, workers: int) -> list[int]:
    """Split iterations as evenly as possible; empty slices are dropped."""
    chunk_size = iterations // workers
    remainder = iterations % workers
    chunks = [chunk_size + (1 if i < remainder else 0) for i in range(workers)]
    return [c for c in chunks if c > 0]


class CpuSimulator:
    """Adaptive, batch-wise Monte Carlo simulator on a process pool.

    Batches are sized in iterations, not valid samples. With range filtering
    some iterations are discarded, so a batch adds fewer samples than its
    size and the iteration budget bounds the work rather than the sample count.

    Usage:
        simulator = CpuSimulator(EngineConfig())
        estimate = await simulator.simulate(query)
        simulator.close()
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        executor: Executor | None = None,
    ) -> None:
        """Initialize the simulator.

        Args:
            config: Engine configuration (defaults if None).
            executor: Pre-built executor for the parallel path. When None a
                ProcessPoolExecutor is created on first use and owned by
                this simulator.
        """
        self._config = config or EngineConfig()
        self._executor = executor
        self._owns_executor = executor is None

    @property
    def workers(self) -> int:
        return self._config.max_workers

    def _get_executor(self) -> Executor:
        if self._executor is None:
            logger.debug("Starting CPU worker pool with %d processes", self.workers)
            self._executor = ProcessPoolExecutor(max_workers=self.workers)
        return self._executor

    def close(self) -> None:
        """Shut down an owned worker pool without waiting for running slices."""
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def __enter__(self) -> CpuSimulator:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    async def simulate(self, query: SimulationQuery) -> EquityEstimate:
        """Estimate the hero's equity for ``query``.

        Cancellation is observed between batches: a cancelled call stops
        issuing batches and raises CancelledError without a result. The
        wall-clock budget is enforced inside every slice, so an exhausted
        budget returns the samples gathered so far.

        Returns:
            EquityEstimate with backend=cpu. Zero samples when the deck
            cannot supply a single iteration.
        """
        t_start = time.perf_counter()
        hole = tuple(c.code for c in query.hand.hole_cards)
        board = tuple(c.code for c in query.hand.community_cards)
        pool = tuple(c.code for c in query.available_cards())
        threshold = query.range_type.threshold

        if len(pool) < query.cards_needed:
            logger.warning(
                "Insufficient deck: %d cards available, %d needed per iteration",
                len(pool), query.cards_needed,
            )
            return EquityEstimate.from_result(
                SimulationResult(), Backend.CPU, range_type=query.range_type,
            )

        seeds = random.Random(query.seed)
        budget = min(query.time_budget, self._config.cpu_time_budget)
        # Slices run in other processes; time.time() is comparable across them.
        deadline = time.time() + budget
        loop = asyncio.get_running_loop()

        if query.iterations < self._config.parallel_threshold:
            # Below break-even: process start-up would cost more than it saves.
            counts = await loop.run_in_executor(
                None, simulate_slice,
                hole, board, pool, query.opponents, threshold,
                query.iterations, seeds.randrange(1, _MAX_SEED), deadline,
            )
            result = SimulationResult(*counts)
            timed_out = result.iterations < query.iterations
            if timed_out:
                self._log_budget_exhausted(query, result, budget)
            return self._estimate(query, result, t_start, batches=1, workers=1,
                                  timed_out=timed_out)

        result = SimulationResult()
        remaining = query.iterations
        batches = 0
        timed_out = False
        executor = self._get_executor()

        while remaining > 0:
            batch = min(self._config.batch_size, remaining)
            futures = [
                loop.run_in_executor(
                    executor, simulate_slice,
                    hole, board, pool, query.opponents, threshold,
                    n, seeds.randrange(1, _MAX_SEED), deadline,
                )
                for n in partition(batch, self.workers)
            ]
            try:
                slices = await asyncio.gather(*futures)
            except asyncio.CancelledError:
                logger.debug("CPU simulation cancelled after %d batches", batches)
                raise

            batch_result = SimulationResult.merge(
                SimulationResult(*counts) for counts in slices
            )
            result = result + batch_result
            remaining -= batch
            batches += 1
            logger.debug(
                "Batch %d: %d samples, equity=%.4f, se=%.5f",
                batches, result.total, result.equity, result.standard_error,
            )

            if self._has_converged(query, result):
                break
            if batch_result.iterations < batch or (
                remaining > 0 and time.time() >= deadline
            ):
                timed_out = True
                self._log_budget_exhausted(query, result, budget)
                break

        return self._estimate(query, result, t_start, batches=batches,
                              workers=self.workers, timed_out=timed_out)

    @staticmethod
    def _log_budget_exhausted(
        query: SimulationQuery, result: SimulationResult, budget: float,
    ) -> None:
        logger.warning(
            "CPU budget of %.1fs exhausted after %d samples (se=%.5f, target %.5f)",
            budget, result.total, result.standard_error, query.confidence_threshold,
        )

    def _has_converged(self, query: SimulationQuery, result: SimulationResult) -> bool:
        """SE stop rule; never fires before the minimum sample floor."""
        if query.confidence_threshold <= 0:
            return False
        if result.total < self._config.min_samples:
            return False
        return result.standard_error < query.confidence_threshold

    def _estimate(
        self,
        query: SimulationQuery,
        result: SimulationResult,
        t_start: float,
        *,
        batches: int,
        workers: int,
        timed_out: bool,
    ) -> EquityEstimate:
        if query.confidence_threshold > 0:
            converged = self._has_converged(query, result)
        else:
            converged = result.total > 0 and not timed_out
        return EquityEstimate.from_result(
            result,
            Backend.CPU,
            elapsed_ms=(time.perf_counter() - t_start) * 1000,
            converged=converged,
            batches=batches,
            workers=workers,
            range_type=query.range_type,
        )
