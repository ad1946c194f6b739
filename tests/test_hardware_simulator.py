"""Tests for the Numba lane kernels and the hardware simulator service."""

import asyncio
import logging
import random
import time
from unittest.mock import patch

import numpy as np
import pytest

from poker_equity.core.hand import Hand
from poker_equity.core.hand_evaluator import HandEvaluator
from poker_equity.engine import kernels
from poker_equity.engine.config import EngineConfig
from poker_equity.engine.data_structures import (
    Backend,
    ParallelBackendProtocol,
    SimulationQuery,
)
from poker_equity.engine.hardware_simulator import BackendState, HardwareSimulator
from poker_equity.strategy.opponent_range import RangeType
from poker_equity.utils.card import Card, Deck, cards_to_mask, parse_cards

_LOGGER = "poker_equity.engine.hardware"


def _kernel_eval(cards: list[Card]) -> int:
    return int(kernels.evaluate_codes_kernel(np.array([c.code for c in cards], dtype=np.int64)))


class _StubLanes(HardwareSimulator):
    """Skips compilation; every dispatch sleeps then wins every lane."""

    def __init__(self, config: EngineConfig, delay: float = 0.0) -> None:
        super().__init__(config)
        self.delay = delay
        self.dispatches = 0

    def _compile(self) -> None:
        self._state = BackendState.READY

    def _dispatch(self, hole, board, n_board, used_mask, opponents, seeds):
        self.dispatches += 1
        time.sleep(self.delay)
        n = len(seeds) * self._config.lane_iterations
        return n, 0, n


@pytest.fixture(scope="module")
def lanes():
    simulator = HardwareSimulator(EngineConfig(hardware_timeout=120.0))
    assert simulator.wait_until_ready(timeout=600)
    yield simulator
    simulator.close()


class TestKernelEvaluator:
    def test_golden_hands(self, golden_hands) -> None:
        for cards, expected in golden_hands:
            assert _kernel_eval(parse_cards(cards)) == expected, cards

    def test_agrees_with_host_evaluator(self) -> None:
        rng = random.Random(17)
        deck = list(Deck())
        for n in (5, 6, 7):
            for _ in range(300):
                cards = rng.sample(deck, n)
                assert _kernel_eval(cards) == HandEvaluator.evaluate(cards)

    def test_rejects_short_input(self) -> None:
        assert kernels.evaluate_codes_kernel(np.arange(4, dtype=np.int64)) == -1


class TestLcg:
    def test_park_miller_sequence(self) -> None:
        assert kernels.lcg_next(1) == 48271
        assert kernels.lcg_next(48271) == 182605794

    def test_stays_in_range(self) -> None:
        state = 2147483646
        for _ in range(1000):
            state = kernels.lcg_next(state)
            assert 1 <= state < kernels.LCG_MODULUS


class TestRunLanes:
    def _run(self, hand: Hand, opponents: int, lanes: int, iterations: int, seed: int):
        hole = np.array([c.code for c in hand.hole_cards], dtype=np.int64)
        board = np.zeros(5, dtype=np.int64)
        for i, card in enumerate(hand.community_cards):
            board[i] = card.code
        seeds = np.random.default_rng(seed).integers(
            1, kernels.LCG_MODULUS, size=lanes, dtype=np.int64,
        )
        out = np.zeros((lanes, 3), dtype=np.int64)
        kernels.run_lanes(hole, board, len(hand.community_cards),
                          cards_to_mask(hand.all_cards), opponents, iterations, seeds, out)
        return out

    def test_every_lane_writes_its_slot(self) -> None:
        out = self._run(Hand.from_str("Ah As"), 2, lanes=8, iterations=100, seed=1)
        assert (out[:, 2] == 100).all()
        assert (out[:, 0] + out[:, 1] <= out[:, 2]).all()

    def test_deterministic_for_fixed_seeds(self) -> None:
        first = self._run(Hand.from_str("Kd Qd", "Jd 4s 2c"), 3, 16, 200, seed=9)
        second = self._run(Hand.from_str("Kd Qd", "Jd 4s 2c"), 3, 16, 200, seed=9)
        assert (first == second).all()

    def test_locked_river(self) -> None:
        out = self._run(Hand.from_str("Ah Kh", "Qh Jh Th 2c 3d"), 1, 4, 50, seed=2)
        assert (out[:, 0] == 50).all()


class TestReadiness:
    def test_implements_protocol(self) -> None:
        assert isinstance(HardwareSimulator(), ParallelBackendProtocol)

    def test_not_ready_returns_none_without_blocking(self) -> None:
        simulator = HardwareSimulator()
        query = SimulationQuery(hand=Hand.from_str("Ah As"))
        assert simulator.state == BackendState.UNINITIALIZED
        assert not simulator.is_ready()
        assert asyncio.run(simulator.simulate_parallel(query)) is None
        simulator.close()

    def test_prepare_is_idempotent(self) -> None:
        simulator = _StubLanes(EngineConfig())
        first = simulator.prepare()
        assert simulator.prepare() is first
        assert simulator.wait_until_ready(timeout=5)
        assert simulator.state == BackendState.READY
        simulator.close()

    def test_wait_until_ready_starts_preparation(self) -> None:
        simulator = _StubLanes(EngineConfig())
        assert simulator.state == BackendState.UNINITIALIZED
        assert simulator.wait_until_ready(timeout=5)
        assert simulator.prepare().done()
        simulator.close()

    def test_failed_initialization(self, caplog) -> None:
        simulator = HardwareSimulator()
        with patch("poker_equity.engine.kernels.warm_up",
                   side_effect=RuntimeError("no parallel backend")):
            with caplog.at_level(logging.ERROR, logger=_LOGGER):
                assert not simulator.wait_until_ready(timeout=30)
        assert simulator.state == BackendState.FAILED
        assert "failed to initialize" in caplog.text
        query = SimulationQuery(hand=Hand.from_str("Ah As"))
        assert asyncio.run(simulator.simulate_parallel(query)) is None
        simulator.close()

    def test_range_filtering_rejected(self) -> None:
        simulator = _StubLanes(EngineConfig())
        simulator.wait_until_ready(timeout=5)
        query = SimulationQuery(hand=Hand.from_str("Ah As"), range_type=RangeType.TIGHT)
        with pytest.raises(ValueError, match="range"):
            asyncio.run(simulator.simulate_parallel(query))
        simulator.close()


class TestDispatch:
    def test_lane_count(self) -> None:
        simulator = HardwareSimulator(EngineConfig(lane_iterations=1_000))
        assert simulator.lane_count(2_000_000) == 2_000
        assert simulator.lane_count(999) == 1
        simulator.close()

    def test_result_is_summed_over_lanes(self) -> None:
        simulator = _StubLanes(EngineConfig(lane_iterations=100))
        simulator.wait_until_ready(timeout=5)
        query = SimulationQuery(hand=Hand.from_str("Ah As"), iterations=1_000)
        estimate = asyncio.run(simulator.simulate_parallel(query))
        assert estimate.backend == Backend.HARDWARE
        assert estimate.samples == 1_000
        assert estimate.workers == 10
        assert estimate.equity == 1.0
        simulator.close()

    def test_timeout_returns_none(self, caplog) -> None:
        simulator = _StubLanes(EngineConfig(hardware_timeout=0.05), delay=0.5)
        simulator.wait_until_ready(timeout=5)
        query = SimulationQuery(hand=Hand.from_str("Ah As"), iterations=1_000)
        t0 = time.perf_counter()
        with caplog.at_level(logging.WARNING, logger=_LOGGER):
            assert asyncio.run(simulator.simulate_parallel(query)) is None
        assert time.perf_counter() - t0 < 0.45
        assert "timed out" in caplog.text
        simulator.close()

    def test_insufficient_deck(self) -> None:
        simulator = _StubLanes(EngineConfig())
        simulator.wait_until_ready(timeout=5)
        hand = Hand.from_str("Ah As", "Kd 7c 2s 9h 3d")
        dead = frozenset(SimulationQuery(hand=hand).available_cards()[:30])
        query = SimulationQuery(hand=hand, opponents=8, dead_cards=dead)
        estimate = asyncio.run(simulator.simulate_parallel(query))
        assert estimate.samples == 0
        assert simulator.dispatches == 0
        simulator.close()


class TestHardwareSimulator:
    def test_ready_after_prepare(self, lanes) -> None:
        assert lanes.is_ready()
        assert lanes.state == BackendState.READY

    def test_heads_up_aces(self, lanes) -> None:
        query = SimulationQuery(hand=Hand.from_str("Ah As"), iterations=50_000, seed=3)
        estimate = asyncio.run(lanes.simulate_parallel(query))
        assert estimate.backend == Backend.HARDWARE
        assert estimate.samples == 50_000
        assert estimate.workers == 50
        assert estimate.converged
        assert 0.82 < estimate.equity < 0.88

    def test_seeded_dispatch_reproduces(self, lanes) -> None:
        query = SimulationQuery(hand=Hand.from_str("Tc 9c", "8c 2d Kh"), opponents=2,
                                iterations=20_000, seed=77)
        first = asyncio.run(lanes.simulate_parallel(query))
        second = asyncio.run(lanes.simulate_parallel(query))
        assert (first.wins, first.ties) == (second.wins, second.ties)

    def test_dead_cards_are_excluded(self, lanes) -> None:
        # The other two aces are out of play, so no opponent can hold one
        query = SimulationQuery(hand=Hand.from_str("Ah As"), iterations=20_000,
                                dead_cards=frozenset(parse_cards("Ad Ac")), seed=5)
        estimate = asyncio.run(lanes.simulate_parallel(query))
        assert estimate.is_available
        assert 0.80 < estimate.equity < 0.90
