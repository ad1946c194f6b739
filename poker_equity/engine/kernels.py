"""Data-parallel Monte Carlo kernels compiled with Numba.

Each lane is an independent simulation with its own seed, its own copy
of the available deck and its own scratch arrays. Lanes write their
counts to a private row of ``out``; nothing is shared between lanes, so
``prange`` needs no atomics or locks.

The hand evaluator here is written separately from
``poker_equity.core.hand_evaluator`` (the kernels cannot call into
Python objects) but produces the same encoded strengths bit for bit.
Cards are codes ``(rank - 2) * 4 + suit_index``.
"""

import numpy as np
from numba import njit, prange

BAND = 1_000_000

# Park-Miller minimal standard multiplicative LCG
LCG_MULTIPLIER = 48271
LCG_MODULUS = 2147483647


@njit(cache=True, nogil=True)
def lcg_next(state):
    return (state * LCG_MULTIPLIER) % LCG_MODULUS


@njit(cache=True, nogil=True)
def rank_five(five, r, counts):
    """Encoded strength of the 5 codes in ``five``.

    ``r`` (len 5) and ``counts`` (len 15) are caller-owned scratch.
    """
    for k in range(5):
        r[k] = (five[k] >> 2) + 2
    # Insertion sort, descending
    for a in range(1, 5):
        x = r[a]
        b = a - 1
        while b >= 0 and r[b] < x:
            r[b + 1] = r[b]
            b -= 1
        r[b + 1] = x

    suit = five[0] & 3
    flush = True
    for k in range(1, 5):
        if (five[k] & 3) != suit:
            flush = False

    distinct = r[0] != r[1] and r[1] != r[2] and r[2] != r[3] and r[3] != r[4]
    straight_high = 0
    if distinct:
        if r[0] - r[4] == 4:
            straight_high = r[0]
        elif r[0] == 14 and r[1] == 5:
            straight_high = 5

    if flush and straight_high > 0:
        return 8 * BAND + straight_high

    if distinct:
        packed = (((r[0] * 16 + r[1]) * 16 + r[2]) * 16 + r[3]) * 16 + r[4]
        if flush:
            return 5 * BAND + packed
        if straight_high > 0:
            return 4 * BAND + straight_high
        return packed

    for k in range(15):
        counts[k] = 0
    for k in range(5):
        counts[r[k]] += 1

    quad = 0
    trip = 0
    pair_hi = 0
    pair_lo = 0
    k0 = 0
    k1 = 0
    k2 = 0
    singles = 0
    for rank in range(14, 1, -1):
        c = counts[rank]
        if c == 4:
            quad = rank
        elif c == 3:
            trip = rank
        elif c == 2:
            if pair_hi == 0:
                pair_hi = rank
            else:
                pair_lo = rank
        elif c == 1:
            if singles == 0:
                k0 = rank
            elif singles == 1:
                k1 = rank
            else:
                k2 = rank
            singles += 1

    if quad > 0:
        return 7 * BAND + quad * 100 + k0
    if trip > 0 and pair_hi > 0:
        return 6 * BAND + trip * 100 + pair_hi
    if trip > 0:
        return 3 * BAND + trip * 10000 + k0 * 100 + k1
    if pair_lo > 0:
        return 2 * BAND + pair_hi * 10000 + pair_lo * 100 + k0
    return BAND + ((pair_hi * 16 + k0) * 16 + k1) * 16 + k2


@njit(cache=True, nogil=True)
def best_of_seven(seven, five, r, counts):
    """Best strength over the 21 five-card subsets of ``seven``."""
    best = 0
    for i in range(6):
        for j in range(i + 1, 7):
            m = 0
            for k in range(7):
                if k != i and k != j:
                    five[m] = seven[k]
                    m += 1
            v = rank_five(five, r, counts)
            if v > best:
                best = v
    return best


@njit(cache=True, nogil=True)
def evaluate_codes_kernel(codes):
    """Evaluate 5 to 7 codes; -1 for any other length."""
    n = codes.shape[0]
    five = np.empty(5, np.int64)
    r = np.empty(5, np.int64)
    counts = np.empty(15, np.int64)
    if n == 5:
        for k in range(5):
            five[k] = codes[k]
        return rank_five(five, r, counts)
    if n == 6:
        best = 0
        for skip in range(6):
            m = 0
            for k in range(6):
                if k != skip:
                    five[m] = codes[k]
                    m += 1
            v = rank_five(five, r, counts)
            if v > best:
                best = v
        return best
    if n == 7:
        seven = np.empty(7, np.int64)
        for k in range(7):
            seven[k] = codes[k]
        return best_of_seven(seven, five, r, counts)
    return -1


@njit(cache=True, nogil=True, parallel=True)
def run_lanes(hole, board, n_board, used_mask, opponents, lane_iterations, seeds, out):
    """Run ``lane_iterations`` iterations on every lane.

    Args:
        hole: int64[2] hero hole-card codes.
        board: int64[5] community codes; only the first n_board are used.
        n_board: Known community-card count (0, 3, 4 or 5).
        used_mask: 52-bit mask of hole, community and dead cards.
        opponents: Number of opponents.
        lane_iterations: Iterations per lane.
        seeds: int64[lanes] LCG seeds in [1, LCG_MODULUS).
        out: int64[lanes, 3] receives (wins, ties, total) per lane.
    """
    n_lanes = seeds.shape[0]
    for lane in prange(n_lanes):
        pool = np.empty(52, np.int64)
        n = 0
        for c in range(52):
            if (used_mask >> c) & 1 == 0:
                pool[n] = c
                n += 1

        to_come = 5 - n_board
        needed = to_come + 2 * opponents
        wins = 0
        ties = 0
        total = 0

        if n >= needed:
            seven = np.empty(7, np.int64)
            five = np.empty(5, np.int64)
            r = np.empty(5, np.int64)
            counts = np.empty(15, np.int64)
            runout = np.empty(5, np.int64)
            state = seeds[lane]

            for _ in range(lane_iterations):
                for i in range(needed):
                    state = lcg_next(state)
                    j = i + state % (n - i)
                    tmp = pool[i]
                    pool[i] = pool[j]
                    pool[j] = tmp

                for k in range(n_board):
                    runout[k] = board[k]
                for k in range(to_come):
                    runout[n_board + k] = pool[k]

                seven[0] = hole[0]
                seven[1] = hole[1]
                for k in range(5):
                    seven[2 + k] = runout[k]
                hero = best_of_seven(seven, five, r, counts)

                best = -1
                pos = to_come
                for _o in range(opponents):
                    seven[0] = pool[pos]
                    seven[1] = pool[pos + 1]
                    pos += 2
                    v = best_of_seven(seven, five, r, counts)
                    if v > best:
                        best = v

                total += 1
                if hero > best:
                    wins += 1
                elif hero == best:
                    ties += 1

        out[lane, 0] = wins
        out[lane, 1] = ties
        out[lane, 2] = total


def warm_up():
    """Force compilation of every kernel with a minimal dispatch."""
    hole = np.array([48, 49], dtype=np.int64)
    board = np.zeros(5, dtype=np.int64)
    seeds = np.ones(1, dtype=np.int64)
    out = np.zeros((1, 3), dtype=np.int64)
    run_lanes(hole, board, 0, (1 << 48) | (1 << 49), 1, 1, seeds, out)
    evaluate_codes_kernel(np.arange(7, dtype=np.int64))
