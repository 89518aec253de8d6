"""
Snake-order arithmetic for draft slots.

Odd rounds run in claimant order (index 0..n-1), even rounds run backwards
(n-1..0). An overall pick number is the 1-based position of a slot across all
rounds. All functions are pure: same inputs, same outputs, no caching.
"""
from __future__ import annotations

from typing import Iterator, NamedTuple


class SnakeSlot(NamedTuple):
    round: int  # 1-based
    index: int  # 0-based claimant index in draft order
    pos_in_round: int  # 0-based position within the round


def _check_count(n: int) -> None:
    if n < 1:
        raise ValueError(f"claimant count must be >= 1 (got {n})")


def slot_of(overall: int, n: int) -> SnakeSlot:
    """Map an overall pick number to (round, claimant index, position in round)."""
    _check_count(n)
    if overall < 1:
        raise ValueError(f"overall pick must be >= 1 (got {overall})")
    p0 = overall - 1
    rnd = p0 // n + 1
    pos = p0 % n
    index = n - 1 - pos if rnd % 2 == 0 else pos
    return SnakeSlot(rnd, index, pos)


def pick_in_round_of(overall: int, n: int) -> int:
    """1-based position of the slot within its round."""
    return slot_of(overall, n).pos_in_round + 1


def overall_of(round: int, index: int, n: int) -> int:
    """Inverse of slot_of: overall pick number of claimant `index` in `round`."""
    _check_count(n)
    if round < 1:
        raise ValueError(f"round must be >= 1 (got {round})")
    if not 0 <= index < n:
        raise ValueError(f"claimant index must be in [0, {n}) (got {index})")
    pos = n - 1 - index if round % 2 == 0 else index
    return (round - 1) * n + pos + 1


def claimant_slots(index: int, n: int, start: int, stop: int) -> Iterator[int]:
    """
    Overall numbers in [start, stop) that belong to claimant `index`, ascending.
    Jumps round to round instead of testing every slot.
    """
    _check_count(n)
    if start < 1:
        start = 1
    rnd = slot_of(start, n).round
    while True:
        overall = overall_of(rnd, index, n)
        if overall >= stop:
            return
        if overall >= start:
            yield overall
        rnd += 1
