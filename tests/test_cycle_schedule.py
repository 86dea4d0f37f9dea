from __future__ import annotations

import pytest

from constellation.ledger.schedule import (
    cycle_end_block,
    cycle_id_at,
    cycle_start_block,
    default_schedule,
    rebase_schedule,
)


def test_default_schedule_boundaries() -> None:
    s = default_schedule(start_block=100, blocks_per_cycle=10)
    assert cycle_id_at(s, 0) == 0
    assert cycle_id_at(s, 109) == 0
    assert cycle_id_at(s, 110) == 1
    assert cycle_start_block(s, 3) == 130
    assert cycle_end_block(s, 3) == 140


def test_cycle_is_current_until_its_end_block() -> None:
    s = default_schedule(start_block=0, blocks_per_cycle=144)
    end = cycle_end_block(s, 0)
    assert cycle_id_at(s, end - 1) == 0
    assert cycle_id_at(s, end) == 1


def test_rebase_keeps_past_cycles_and_anchors_current() -> None:
    s = default_schedule(start_block=0, blocks_per_cycle=10)
    s2 = rebase_schedule(s, height=35, blocks_per_cycle=4)

    assert s2[-1] == {"start_block": 30, "first_cycle": 3, "blocks_per_cycle": 4}
    assert cycle_start_block(s2, 2) == 20
    assert cycle_end_block(s2, 2) == 30
    assert cycle_id_at(s2, 33) == 3
    assert cycle_id_at(s2, 35) == 4
    assert cycle_end_block(s2, 4) == 38


def test_repeated_rebase_in_same_cycle_replaces_segment() -> None:
    s = default_schedule(start_block=0, blocks_per_cycle=10)
    s = rebase_schedule(s, height=35, blocks_per_cycle=100)
    s = rebase_schedule(s, height=36, blocks_per_cycle=20)
    assert [seg["first_cycle"] for seg in s] == [0, 3]
    assert cycle_id_at(s, 36) == 3


@pytest.mark.parametrize("lengths", [[5, 50, 1, 7], [1, 1, 1], [144, 12, 300]])
def test_cycle_id_is_monotonic_across_length_changes(lengths) -> None:
    s = default_schedule(start_block=0, blocks_per_cycle=10)
    h = 0
    last = 0
    for n in lengths:
        for _ in range(25):
            h += 1
            cid = cycle_id_at(s, h)
            assert cid >= last
            last = cid
        s = rebase_schedule(s, height=h, blocks_per_cycle=n)
        assert cycle_id_at(s, h) >= last


def test_invalid_length_rejected() -> None:
    with pytest.raises(ValueError):
        default_schedule(start_block=0, blocks_per_cycle=0)
    with pytest.raises(ValueError):
        rebase_schedule(default_schedule(start_block=0, blocks_per_cycle=5), height=1, blocks_per_cycle=0)
