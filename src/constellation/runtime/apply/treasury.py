# src/constellation/runtime/apply/treasury.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from constellation.runtime.apply.common import (
    as_dict,
    as_str,
    as_uint,
    config,
    current_cycle_id,
    game,
    get_cycle,
    get_or_create_cycle,
    pay_from_contract,
    require_manager,
    require_manager_or_system,
)
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _apply_treasury_distribute(state: Json, env: TxEnvelope) -> Json:
    """Seed the current cycle's prize with a slice of the treasury."""
    require_manager_or_system(state, env)

    g = game(state)
    treasury = int(g["treasury"])
    period = int(config(state)["treasury_distribution_period"])
    amount = treasury // period if period > 0 else 0
    if amount <= 0:
        raise ApplyError("precondition_failed", "treasury_empty", {"treasury": treasury, "period": period})

    cycle_id = current_cycle_id(state)
    cycle = get_or_create_cycle(state, cycle_id)
    if bool(cycle.get("treasury_distributed", False)):
        raise ApplyError("conflict", "treasury_already_distributed", {"cycle_id": cycle_id})

    g["treasury"] = treasury - amount
    cycle["prize"] = int(cycle["prize"]) + amount
    cycle["treasury_distributed"] = True
    return {"applied": "TREASURY_DISTRIBUTE", "cycle_id": cycle_id, "amount": amount}


def _apply_recover_expired_prizes(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    cycle_id = as_uint(as_dict(env.payload).get("cycle_id"), field="cycle_id")

    current = current_cycle_id(state)
    expiration = int(config(state)["prize_expiration_cycles"])
    # The cycle ends when cycle_id + 1 starts; it then stays claimable for
    # `expiration` whole cycles.
    if current < cycle_id + 1 + expiration:
        raise ApplyError(
            "expiration_period_not_met",
            "expiration_period_not_met",
            {"cycle_id": cycle_id, "current_cycle_id": current, "prize_expiration_cycles": expiration},
        )

    cycle = get_cycle(state, cycle_id)
    unclaimed = int(cycle["prize"]) - int(cycle["prize_claimed"]) if cycle is not None else 0
    if unclaimed <= 0:
        raise ApplyError("no_unclaimed_prize", "no_unclaimed_prize", {"cycle_id": cycle_id})

    cycle["prize_claimed"] = int(cycle["prize_claimed"]) + unclaimed
    cycle["prize_recovered"] = int(cycle.get("prize_recovered", 0) or 0) + unclaimed

    g = game(state)
    g["treasury"] = int(g["treasury"]) + unclaimed
    return {"applied": "RECOVER_EXPIRED_PRIZES", "cycle_id": cycle_id, "amount": unclaimed}


def _apply_team_fee_withdraw(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    g = game(state)
    amount = int(g["team_fee"])
    if amount <= 0:
        raise ApplyError("precondition_failed", "team_fee_empty", {})

    g["team_fee"] = 0
    pay_from_contract(state, as_str(env.signer), amount)
    return {"applied": "TEAM_FEE_WITHDRAW", "amount": amount}


TREASURY_TX_TYPES: Set[str] = {
    "TREASURY_DISTRIBUTE",
    "RECOVER_EXPIRED_PRIZES",
    "TEAM_FEE_WITHDRAW",
}


def apply_treasury(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = as_str(env.tx_type).upper()
    if t not in TREASURY_TX_TYPES:
        return None

    if t == "TREASURY_DISTRIBUTE":
        return _apply_treasury_distribute(state, env)
    if t == "RECOVER_EXPIRED_PRIZES":
        return _apply_recover_expired_prizes(state, env)
    if t == "TEAM_FEE_WITHDRAW":
        return _apply_team_fee_withdraw(state, env)

    return None


__all__ = ["TREASURY_TX_TYPES", "apply_treasury"]
