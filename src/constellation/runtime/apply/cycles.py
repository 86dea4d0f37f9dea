# src/constellation/runtime/apply/cycles.py
from __future__ import annotations

import hashlib
from typing import Any, Dict, Optional, Set

from constellation.runtime.apply.common import (
    as_dict,
    as_str,
    as_uint,
    current_cycle_id,
    get_or_create_cycle,
    num_constellations,
    require_manager_or_system,
)
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def winner_from_seed(seed: str, n: int) -> int:
    """Map a block-hash seed onto a constellation index.

    Hex seeds are hashed as raw bytes, anything else as UTF-8 text.
    """
    s = str(seed or "").strip()
    if s.startswith("0x"):
        s = s[2:]
    try:
        raw = bytes.fromhex(s)
    except ValueError:
        raw = s.encode("utf-8")
    if not raw:
        raise ApplyError("invalid_value", "empty_seed", {})
    digest = hashlib.sha256(raw).digest()
    return int.from_bytes(digest, "big") % int(n)


def _apply_cycle_winner_record(state: Json, env: TxEnvelope) -> Json:
    require_manager_or_system(state, env)
    payload = as_dict(env.payload)
    cycle_id = as_uint(payload.get("cycle_id"), field="cycle_id")

    current = current_cycle_id(state)
    if current <= cycle_id:
        raise ApplyError(
            "cycle_not_finished",
            "cycle_not_finished",
            {"cycle_id": cycle_id, "current_cycle_id": current},
        )

    n = num_constellations(state)
    if payload.get("constellation") is not None:
        winner = as_uint(payload.get("constellation"), field="constellation")
        if winner >= n:
            raise ApplyError(
                "invalid_value",
                "constellation_out_of_range",
                {"constellation": winner, "num_constellations": n},
            )
        source = "explicit"
    elif as_str(payload.get("seed")):
        winner = winner_from_seed(as_str(payload.get("seed")), n)
        source = "seed"
    else:
        raise ApplyError("invalid_payload", "missing_constellation_or_seed", {})

    cycle = get_or_create_cycle(state, cycle_id)
    if cycle.get("winning_constellation") is not None:
        raise ApplyError(
            "conflict",
            "winner_already_recorded",
            {"cycle_id": cycle_id, "winning_constellation": cycle["winning_constellation"]},
        )

    cycle["winning_constellation"] = winner
    return {"applied": "CYCLE_WINNER_RECORD", "cycle_id": cycle_id, "winning_constellation": winner, "source": source}


CYCLE_TX_TYPES: Set[str] = {
    "CYCLE_WINNER_RECORD",
}


def apply_cycles(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = as_str(env.tx_type).upper()
    if t not in CYCLE_TX_TYPES:
        return None

    if t == "CYCLE_WINNER_RECORD":
        return _apply_cycle_winner_record(state, env)

    return None


__all__ = ["CYCLE_TX_TYPES", "apply_cycles", "winner_from_seed"]
