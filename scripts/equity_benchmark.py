#!/usr/bin/env python3
"""Run a single equity query and print the estimate with its diagnostics.

Cards are two-character strings separated by spaces: rank (2-9, T, J,
Q, K, A) followed by suit (s, h, d, c).

Backends:
    auto      Route through EquityRouter (hardware when ready, else CPU).
              The hardware backend is compiled before the query runs so
              the benchmark measures steady-state latency.
    cpu       CPU process pool only.
    hardware  Numba lanes only; fails if the backend cannot initialize
              or a range filter is requested.

Usage:
    # Pocket aces against five random opponents
    python scripts/equity_benchmark.py --hand "Ah As" --opponents 5

    # Flop spot with a dead card, accurate preset, CPU only
    python scripts/equity_benchmark.py --hand "Ks Qs" --board "Js Ts 2d" \\
        --dead "9h" --opponents 2 --depth accurate --backend cpu

    # Heads-up preflop against a tight opening range
    python scripts/equity_benchmark.py --hand "7h 7d" --range tight

    # Compare both backends on the same query
    python scripts/equity_benchmark.py --hand "Ac Kc" --opponents 3 --compare
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path so we can import poker_equity
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from poker_equity.core.hand import Hand
from poker_equity.core.hand_evaluator import HandEvaluator
from poker_equity.engine import (
    CalculationDepth,
    CpuSimulator,
    EquityEstimate,
    EquityRouter,
    HardwareSimulator,
    SimulationQuery,
    load_engine_config,
)
from poker_equity.strategy.opponent_range import RangeType, hands_in_range
from poker_equity.utils.card import parse_cards

_DEPTHS = {d.name.lower(): d for d in CalculationDepth}
_RANGES = {r.name.lower().replace("_", "-"): r for r in RangeType}


def build_query(args: argparse.Namespace) -> SimulationQuery:
    hand = Hand.from_str(args.hand, args.board)
    depth = _DEPTHS[args.depth]
    query = depth.query(
        hand,
        args.opponents,
        dead_cards=frozenset(parse_cards(args.dead)),
        range_type=_RANGES[args.range],
        time_budget=args.time_budget,
    )
    if args.iterations:
        query = query.with_changes(iterations=args.iterations)
    if args.seed is not None:
        query = query.with_changes(seed=args.seed)
    return query


async def run_backend(name: str, query: SimulationQuery, config) -> EquityEstimate:
    if name == "cpu":
        with CpuSimulator(config) as cpu:
            return await cpu.simulate(query)

    if name == "hardware":
        hardware = HardwareSimulator(config)
        try:
            if not hardware.wait_until_ready():
                raise RuntimeError(
                    f"Hardware backend unavailable (state={hardware.state})"
                )
            estimate = await hardware.simulate_parallel(query)
        finally:
            hardware.close()
        if estimate is None:
            raise RuntimeError("Hardware dispatch timed out")
        return estimate

    hardware = None
    if config.enable_hardware:
        hardware = HardwareSimulator(config)
        # Blocking on compilation is fine in a script; the router never waits.
        await asyncio.to_thread(hardware.wait_until_ready)
    with EquityRouter(config, hardware=hardware) as router:
        router.start()
        return await router.calculate_equity(query)


def print_estimate(label: str, estimate: EquityEstimate) -> None:
    print(f"{label}: {estimate}")
    if not estimate.is_available:
        return
    print(f"  wins={estimate.wins} ties={estimate.ties} samples={estimate.samples} "
          f"iterations={estimate.iterations}")
    print(f"  converged={estimate.converged} batches={estimate.batches} "
          f"workers={estimate.workers} range={estimate.range_type.name.lower()}")


def describe_query(query: SimulationQuery) -> None:
    print(f"Hand: {query.hand} ({query.hand.street})")
    if len(query.hand.all_cards) >= 5:
        strength = HandEvaluator.evaluate(query.hand.all_cards)
        print(f"  Made hand: {HandEvaluator.describe(strength)}")
    if query.dead_cards:
        print(f"  Dead: {' '.join(str(c) for c in sorted(query.dead_cards))}")
    print(f"Opponents: {query.opponents}")
    if query.range_type.is_filtering:
        print(f"Range: {query.range_type.name.lower()} "
              f"({len(hands_in_range(query.range_type))} of 169 hands)")
    print(f"Budget: {query.iterations} iterations, "
          f"se target {query.confidence_threshold}, {query.time_budget}s\n")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Estimate hand equity with the Monte Carlo engine.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--hand", required=True,
        help='Hero hole cards, e.g. "Ah As"',
    )
    parser.add_argument(
        "--board", default="",
        help='Community cards (0, 3, 4 or 5), e.g. "Kd 7c 2s"',
    )
    parser.add_argument(
        "--dead", default="",
        help="Cards known to be out of play",
    )
    parser.add_argument(
        "--opponents", type=int, default=1,
        help="Number of opponents (1-8, default: 1)",
    )
    parser.add_argument(
        "--depth", choices=sorted(_DEPTHS), default="fast",
        help="Accuracy preset (default: fast)",
    )
    parser.add_argument(
        "--iterations", type=int, default=None,
        help="Override the preset's iteration budget",
    )
    parser.add_argument(
        "--range", choices=list(_RANGES), default="random",
        help="Opponent range hint (default: random)",
    )
    parser.add_argument(
        "--backend", choices=("auto", "cpu", "hardware"), default="auto",
        help="Backend to run (default: auto)",
    )
    parser.add_argument(
        "--compare", action="store_true",
        help="Run the query on both the CPU and the hardware backend",
    )
    parser.add_argument(
        "--time-budget", type=float, default=10.0,
        help="Wall-clock budget in seconds (default: 10)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Fixed random seed for reproducible runs",
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="Engine config JSON (default: ~/.poker_equity/engine_config.json)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Show per-batch debug logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        query = build_query(args)
    except ValueError as e:
        parser.error(str(e))

    config = load_engine_config(args.config)
    describe_query(query)

    backends = ("cpu", "hardware") if args.compare else (args.backend,)
    for name in backends:
        try:
            estimate = asyncio.run(run_backend(name, query, config))
        except (RuntimeError, ValueError) as e:
            print(f"{name}: {e}")
            continue
        print_estimate(name, estimate)


if __name__ == "__main__":
    main()
