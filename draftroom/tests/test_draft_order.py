"""
Tests for snake-order arithmetic.
Odd rounds forward, even rounds backward; overall_of inverts slot_of.
"""
from __future__ import annotations

import pytest

from draftroom.services.draft_order import claimant_slots, overall_of, pick_in_round_of, slot_of


def test_four_claimants_round_edges():
    """N=4: 1 -> (r1, i0), 4 -> (r1, i3), 5 -> (r2, i3), 8 -> (r2, i0)."""
    assert slot_of(1, 4)[:2] == (1, 0)
    assert slot_of(4, 4)[:2] == (1, 3)
    assert slot_of(5, 4)[:2] == (2, 3)
    assert slot_of(8, 4)[:2] == (2, 0)
    assert slot_of(9, 4)[:2] == (3, 0)


def test_even_round_runs_backwards():
    order = [slot_of(x, 3).index for x in range(1, 10)]
    assert order == [0, 1, 2, 2, 1, 0, 0, 1, 2]


def test_pick_in_round_is_position_not_index():
    # overall 5 with N=4: second round, first position, claimant index 3
    s = slot_of(5, 4)
    assert s.pos_in_round == 0
    assert pick_in_round_of(5, 4) == 1
    assert pick_in_round_of(8, 4) == 4


@pytest.mark.parametrize("n", [1, 2, 3, 4, 7, 12])
def test_round_trip_law(n):
    for x in range(1, n * 6 + 1):
        s = slot_of(x, n)
        assert overall_of(s.round, s.index, n) == x


def test_single_claimant_takes_every_slot():
    assert [slot_of(x, 1).round for x in range(1, 5)] == [1, 2, 3, 4]
    assert all(slot_of(x, 1).index == 0 for x in range(1, 5))


def test_invalid_inputs_raise():
    with pytest.raises(ValueError):
        slot_of(0, 4)
    with pytest.raises(ValueError):
        slot_of(1, 0)
    with pytest.raises(ValueError):
        overall_of(0, 0, 4)
    with pytest.raises(ValueError):
        overall_of(1, 4, 4)
    with pytest.raises(ValueError):
        overall_of(1, -1, 4)


def test_claimant_slots_lists_own_slots_in_window():
    # N=6, index 2 owns 3, 10, 15, 22, 27, ...
    assert list(claimant_slots(2, 6, 1, 30)) == [3, 10, 15, 22, 27]
    assert list(claimant_slots(2, 6, 11, 28)) == [15, 22, 27]
    assert list(claimant_slots(2, 6, 11, 15)) == []


def test_claimant_slots_match_slot_of():
    n = 5
    for index in range(n):
        expected = [x for x in range(1, 41) if slot_of(x, n).index == index]
        assert list(claimant_slots(index, n, 1, 41)) == expected
