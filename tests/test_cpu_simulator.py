"""Tests for the CPU Monte Carlo simulator.

The adaptive-batch tests inject a ThreadPoolExecutor so they exercise
the batch loop without paying process start-up costs.
"""

import asyncio
import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from poker_equity.core.hand import Hand
from poker_equity.engine.config import EngineConfig
from poker_equity.engine.cpu_simulator import (
    CpuSimulator,
    accepted_opponents,
    partition,
    simulate_slice,
)
from poker_equity.engine.data_structures import Backend, SimulationQuery
from poker_equity.strategy.opponent_range import (
    RangeType,
    canonicalize,
    hand_rank,
)
from poker_equity.utils.card import Card, Deck, parse_cards

_LOGGER = "poker_equity.engine.cpu"


def _codes(s: str) -> list[int]:
    return [c.code for c in parse_cards(s)]


def _small_config(**overrides) -> EngineConfig:
    values = dict(
        max_workers=2, batch_size=1_000, min_samples=1_000, parallel_threshold=1,
    )
    values.update(overrides)
    return EngineConfig(**values)


@pytest.fixture
def threads():
    executor = ThreadPoolExecutor(max_workers=2)
    yield executor
    executor.shutdown(wait=True, cancel_futures=True)


class TestPartition:
    def test_even_split(self) -> None:
        assert partition(10, 2) == [5, 5]

    def test_remainder_goes_first(self) -> None:
        assert partition(11, 3) == [4, 4, 3]

    def test_drops_empty_slices(self) -> None:
        assert partition(2, 6) == [1, 1]


class TestAcceptedOpponents:
    def test_random_accepts_everyone(self) -> None:
        deck = _codes("7h 2c As Ah")
        hands = accepted_opponents(deck, 0, 2, RangeType.RANDOM.threshold)
        assert len(hands) == 2

    def test_rejects_out_of_range_without_redeal(self) -> None:
        deck = _codes("7h 2c As Ah 8d 3s")
        hands = accepted_opponents(deck, 0, 2, RangeType.TIGHT.threshold)
        assert hands == [tuple(_codes("As Ah"))]

    def test_all_rejected(self) -> None:
        deck = _codes("7h 2c 8d 3s")
        assert accepted_opponents(deck, 0, 2, RangeType.VERY_TIGHT.threshold) == []

    def test_accepted_hands_are_in_range(self) -> None:
        rng = random.Random(5)
        codes = list(range(52))
        threshold = RangeType.STANDARD.threshold
        for _ in range(500):
            rng.shuffle(codes)
            for c1, c2 in accepted_opponents(codes, 0, 4, threshold):
                rank = hand_rank(canonicalize(Card.from_code(c1), Card.from_code(c2)))
                assert rank < threshold


class TestSimulateSlice:
    def test_counts_are_consistent(self) -> None:
        wins, ties, total, iterations = simulate_slice(
            tuple(_codes("Ah As")), (), tuple(c.code for c in Deck().without(parse_cards("Ah As"))),
            2, RangeType.RANDOM.threshold, 500, seed=7,
        )
        assert iterations == 500
        assert total == 500
        assert 0 <= wins + ties <= total

    def test_same_seed_same_counts(self) -> None:
        args = (
            tuple(_codes("Kh Qh")), tuple(_codes("Jh Th 2c")),
            tuple(c.code for c in Deck().without(parse_cards("Kh Qh Jh Th 2c"))),
            3, RangeType.RANDOM.threshold, 400,
        )
        assert simulate_slice(*args, seed=42) == simulate_slice(*args, seed=42)

    def test_river_is_deterministic_heads_up(self) -> None:
        # Royal flush on the board for the hero: every showdown is at least a tie.
        wins, ties, total, _ = simulate_slice(
            tuple(_codes("Ah Kh")), tuple(_codes("Qh Jh Th 2c 3d")),
            tuple(c.code for c in Deck().without(parse_cards("Ah Kh Qh Jh Th 2c 3d"))),
            1, RangeType.RANDOM.threshold, 200, seed=1,
        )
        assert wins == total == 200
        assert ties == 0

    def test_filtered_iterations_may_be_discarded(self) -> None:
        wins, ties, total, iterations = simulate_slice(
            tuple(_codes("Ah As")), (),
            tuple(c.code for c in Deck().without(parse_cards("Ah As"))),
            1, RangeType.VERY_TIGHT.threshold, 1_000, seed=3,
        )
        assert iterations == 1_000
        # Very tight keeps roughly 5% of random hands
        assert 0 < total < 200

    def test_not_enough_cards(self) -> None:
        assert simulate_slice((0, 1), (), (2, 3, 4), 1, 169, 100, seed=1) == (0, 0, 0, 0)

    def test_stops_at_passed_deadline(self) -> None:
        wins, ties, total, iterations = simulate_slice(
            tuple(_codes("Ah As")), (),
            tuple(c.code for c in Deck().without(parse_cards("Ah As"))),
            8, RangeType.RANDOM.threshold, 5_000, seed=7,
            deadline=time.time() - 1.0,
        )
        assert 0 < iterations < 5_000
        assert total == iterations

    def test_future_deadline_runs_everything(self) -> None:
        _, _, total, iterations = simulate_slice(
            tuple(_codes("Kh Qh")), (),
            tuple(c.code for c in Deck().without(parse_cards("Kh Qh"))),
            2, RangeType.RANDOM.threshold, 300, seed=11,
            deadline=time.time() + 60.0,
        )
        assert iterations == total == 300


class TestCpuSimulator:
    def test_small_request_runs_single_threaded(self) -> None:
        config = EngineConfig(parallel_threshold=10_000)
        query = SimulationQuery(hand=Hand.from_str("Ah As"), iterations=2_000, seed=9)
        with CpuSimulator(config) as simulator:
            estimate = asyncio.run(simulator.simulate(query))
        assert estimate.backend == Backend.CPU
        assert estimate.batches == 1
        assert estimate.workers == 1
        assert estimate.samples == 2_000
        assert 0.78 < estimate.equity < 0.92

    def test_small_request_honours_time_budget(self, caplog) -> None:
        # Just under the parallel threshold, with far more work than fits.
        query = SimulationQuery(hand=Hand.from_str("Ah As"), opponents=8,
                                iterations=9_999, time_budget=0.2, seed=3)
        t0 = time.perf_counter()
        with caplog.at_level(logging.WARNING, logger=_LOGGER):
            with CpuSimulator(EngineConfig()) as simulator:
                estimate = asyncio.run(simulator.simulate(query))
        assert time.perf_counter() - t0 < 0.2 + 1.0
        assert estimate.workers == 1
        assert 0 < estimate.iterations < 9_999
        assert not estimate.converged
        assert "budget" in caplog.text

    def test_converged_requires_min_samples(self) -> None:
        # The loose threshold is met long before the default sample floor.
        config = EngineConfig(parallel_threshold=10_000)
        query = SimulationQuery(hand=Hand.from_str("Ah As"), iterations=2_000,
                                confidence_threshold=0.5, seed=9)
        with CpuSimulator(config) as simulator:
            estimate = asyncio.run(simulator.simulate(query))
        assert estimate.samples == 2_000
        assert estimate.standard_error < 0.5
        assert not estimate.converged

    def test_seeded_runs_reproduce(self, threads) -> None:
        query = SimulationQuery(
            hand=Hand.from_str("9s 9d", "Ah 7c 2d"), opponents=2,
            iterations=3_000, seed=1234,
        )
        simulator = CpuSimulator(_small_config(), executor=threads)
        first = asyncio.run(simulator.simulate(query))
        second = asyncio.run(simulator.simulate(query))
        assert (first.wins, first.ties, first.samples) == (
            second.wins, second.ties, second.samples,
        )
        assert first.batches == 3

    def test_counts_and_bounds(self, threads) -> None:
        query = SimulationQuery(hand=Hand.from_str("Jc Tc"), opponents=3,
                                iterations=2_000, seed=5)
        estimate = asyncio.run(
            CpuSimulator(_small_config(), executor=threads).simulate(query)
        )
        losses = estimate.samples - estimate.wins - estimate.ties
        assert losses >= 0
        assert 0.0 <= estimate.equity <= 1.0
        assert estimate.converged

    def test_range_filtering_keeps_range_on_estimate(self, threads) -> None:
        query = SimulationQuery(hand=Hand.from_str("Qs Qd"), iterations=2_000,
                                range_type=RangeType.TIGHT, seed=2)
        estimate = asyncio.run(
            CpuSimulator(_small_config(), executor=threads).simulate(query)
        )
        assert estimate.range_type == RangeType.TIGHT
        assert estimate.samples < estimate.iterations

    def test_batches_are_sized_in_iterations(self, threads) -> None:
        query = SimulationQuery(hand=Hand.from_str("Qs Qd"), iterations=3_000,
                                range_type=RangeType.TIGHT,
                                confidence_threshold=0.0001, seed=2)
        estimate = asyncio.run(
            CpuSimulator(_small_config(), executor=threads).simulate(query)
        )
        assert estimate.batches == 3
        assert estimate.iterations == 3_000
        assert estimate.samples < 3_000

    def test_looser_threshold_stops_no_later(self, threads) -> None:
        simulator = CpuSimulator(_small_config(), executor=threads)
        base = SimulationQuery(hand=Hand.from_str("Ah As", "Kd 7c 2s"),
                               iterations=6_000, seed=8)
        loose = asyncio.run(simulator.simulate(base.with_changes(confidence_threshold=0.05)))
        tight = asyncio.run(simulator.simulate(base.with_changes(confidence_threshold=0.0001)))
        assert loose.batches <= tight.batches
        assert loose.batches == 1
        assert loose.converged
        assert tight.batches == 6
        assert not tight.converged

    def test_no_convergence_check_before_min_samples(self, threads) -> None:
        config = _small_config(min_samples=3_000)
        query = SimulationQuery(hand=Hand.from_str("Ah As", "Kd 7c 2s"),
                                iterations=10_000, confidence_threshold=0.5, seed=8)
        estimate = asyncio.run(CpuSimulator(config, executor=threads).simulate(query))
        assert estimate.batches == 3

    def test_wall_clock_budget(self, threads, caplog) -> None:
        config = _small_config(cpu_time_budget=0.001)
        query = SimulationQuery(hand=Hand.from_str("Ah Kh"), iterations=50_000, seed=4)
        with caplog.at_level(logging.WARNING, logger=_LOGGER):
            estimate = asyncio.run(CpuSimulator(config, executor=threads).simulate(query))
        assert estimate.batches == 1
        assert estimate.is_available
        assert not estimate.converged
        assert "budget" in caplog.text

    def test_budget_interrupts_running_batch(self, threads) -> None:
        # One batch holds the whole request; the budget has to cut it short.
        config = _small_config(batch_size=1_000_000, min_samples=50_000)
        query = SimulationQuery(hand=Hand.from_str("Ah As"), opponents=5,
                                iterations=1_000_000, time_budget=0.5, seed=12)
        t0 = time.perf_counter()
        estimate = asyncio.run(CpuSimulator(config, executor=threads).simulate(query))
        assert time.perf_counter() - t0 < 0.5 + 1.5
        assert estimate.batches == 1
        assert 0 < estimate.iterations < 1_000_000
        assert not estimate.converged

    def test_insufficient_deck(self, caplog) -> None:
        hand = Hand.from_str("Ah As", "Kd 7c 2s 9h 3d")
        dead = frozenset(SimulationQuery(hand=hand).available_cards()[:30])
        query = SimulationQuery(hand=hand, opponents=8, dead_cards=dead)
        with caplog.at_level(logging.WARNING, logger=_LOGGER):
            estimate = asyncio.run(CpuSimulator().simulate(query))
        assert estimate.samples == 0
        assert not estimate.is_available
        assert "Insufficient deck" in caplog.text

    def test_cancellation_propagates(self, threads) -> None:
        simulator = CpuSimulator(_small_config(), executor=threads)
        query = SimulationQuery(hand=Hand.from_str("8c 8d"), opponents=4,
                                iterations=1_000_000, seed=6)

        async def run() -> None:
            task = asyncio.create_task(simulator.simulate(query))
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(run())

    def test_owned_pool_is_closed(self) -> None:
        simulator = CpuSimulator(EngineConfig(max_workers=1))
        simulator.close()
        simulator.close()
