# src/constellation/ledger/schedule.py
from __future__ import annotations

"""Block height <-> cycle id arithmetic.

The schedule is a list of segments::

    {"start_block": int, "first_cycle": int, "blocks_per_cycle": int}

ordered by start_block. Cycle ``c`` of a segment spans the half-open block
range ``[start + (c - first) * len, start + (c - first + 1) * len)``; the
upper bound is the cycle's *end block*. A cycle is finished once the chain
height reaches its end block, which is exactly when the current cycle id moves
past it.

Heights before the first segment's start block belong to cycle 0.
"""

from typing import Any, Dict, List

Json = Dict[str, Any]


def default_schedule(*, start_block: int, blocks_per_cycle: int) -> List[Json]:
    if int(blocks_per_cycle) <= 0:
        raise ValueError("blocks_per_cycle must be > 0")
    return [{"start_block": int(start_block), "first_cycle": 0, "blocks_per_cycle": int(blocks_per_cycle)}]


def _segments(schedule: Any) -> List[Json]:
    if not isinstance(schedule, list) or not schedule:
        raise ValueError("cycle schedule is empty")
    return [s for s in schedule if isinstance(s, dict)]


def _segment_for_height(schedule: Any, height: int) -> Json:
    segs = _segments(schedule)
    out = segs[0]
    for s in segs:
        if int(s["start_block"]) <= int(height):
            out = s
    return out


def _segment_for_cycle(schedule: Any, cycle_id: int) -> Json:
    segs = _segments(schedule)
    out = segs[0]
    for s in segs:
        if int(s["first_cycle"]) <= int(cycle_id):
            out = s
    return out


def cycle_id_at(schedule: Any, height: int) -> int:
    seg = _segment_for_height(schedule, height)
    start = int(seg["start_block"])
    if int(height) < start:
        return int(seg["first_cycle"])
    return int(seg["first_cycle"]) + (int(height) - start) // int(seg["blocks_per_cycle"])


def cycle_start_block(schedule: Any, cycle_id: int) -> int:
    seg = _segment_for_cycle(schedule, cycle_id)
    offset = max(0, int(cycle_id) - int(seg["first_cycle"]))
    return int(seg["start_block"]) + offset * int(seg["blocks_per_cycle"])


def cycle_end_block(schedule: Any, cycle_id: int) -> int:
    seg = _segment_for_cycle(schedule, cycle_id)
    return cycle_start_block(schedule, cycle_id) + int(seg["blocks_per_cycle"])


def rebase_schedule(schedule: Any, *, height: int, blocks_per_cycle: int) -> List[Json]:
    """Return a schedule where the cycle current at `height` uses the new length.

    The new segment is anchored at the current cycle's start block, so the
    cycle id at `height` never decreases. Shrinking the length may move the
    current height past the anchored cycle's end, which finishes it early.
    """
    if int(blocks_per_cycle) <= 0:
        raise ValueError("blocks_per_cycle must be > 0")

    cid = cycle_id_at(schedule, height)
    start = cycle_start_block(schedule, cid)

    kept = [dict(s) for s in _segments(schedule) if int(s["first_cycle"]) < cid]
    kept.append({"start_block": start, "first_cycle": cid, "blocks_per_cycle": int(blocks_per_cycle)})
    return kept


__all__ = [
    "cycle_end_block",
    "cycle_id_at",
    "cycle_start_block",
    "default_schedule",
    "rebase_schedule",
]
