# src/constellation/runtime/apply/admin.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from constellation.ledger.constants import ALLOCATION_BUCKETS
from constellation.ledger.schedule import rebase_schedule
from constellation.runtime.apply.common import (
    as_dict,
    as_str,
    as_uint,
    config,
    game,
    height,
    require_manager,
)
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _apply_allocation_percentages_set(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    payload = as_dict(env.payload)

    pct = {k: as_uint(payload.get(k), field=k) for k in ALLOCATION_BUCKETS}
    total = sum(pct.values())
    if total != 100:
        raise ApplyError("precondition_failed", "percentages_must_sum_to_100", {"total": total, **pct})

    config(state)["allocation_percentages"] = pct
    return {"applied": "ALLOCATION_PERCENTAGES_SET", "allocation_percentages": dict(pct)}


def _apply_min_allocation_set(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    value = as_uint(as_dict(env.payload).get("min_allocation"), field="min_allocation")
    config(state)["min_allocation"] = value
    return {"applied": "MIN_ALLOCATION_SET", "min_allocation": value}


def _apply_cycle_length_set(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    value = as_uint(as_dict(env.payload).get("blocks_per_cycle"), field="blocks_per_cycle")
    if value <= 0:
        raise ApplyError("invalid_value", "blocks_per_cycle_must_be_positive", {"blocks_per_cycle": value})

    g = game(state)
    g["schedule"] = rebase_schedule(g["schedule"], height=height(state), blocks_per_cycle=value)
    config(state)["blocks_per_cycle"] = value
    return {"applied": "CYCLE_LENGTH_SET", "blocks_per_cycle": value}


def _apply_reward_claim_fee_set(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    value = as_uint(as_dict(env.payload).get("reward_claim_fee"), field="reward_claim_fee")
    config(state)["reward_claim_fee"] = value
    return {"applied": "REWARD_CLAIM_FEE_SET", "reward_claim_fee": value}


def _apply_treasury_distribution_period_set(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    value = as_uint(as_dict(env.payload).get("treasury_distribution_period"), field="treasury_distribution_period")
    if value <= 0:
        raise ApplyError("invalid_value", "treasury_distribution_period_must_be_positive", {"value": value})
    config(state)["treasury_distribution_period"] = value
    return {"applied": "TREASURY_DISTRIBUTION_PERIOD_SET", "treasury_distribution_period": value}


def _apply_prize_expiration_set(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    value = as_uint(as_dict(env.payload).get("prize_expiration_cycles"), field="prize_expiration_cycles")
    if value <= 0:
        raise ApplyError("invalid_value", "prize_expiration_cycles_must_be_positive", {"value": value})
    config(state)["prize_expiration_cycles"] = value
    return {"applied": "PRIZE_EXPIRATION_SET", "prize_expiration_cycles": value}


def _apply_manager_set(state: Json, env: TxEnvelope) -> Json:
    require_manager(state, env)
    new_manager = as_str(as_dict(env.payload).get("manager"))
    if not new_manager:
        raise ApplyError("invalid_value", "missing_manager", {})
    config(state)["manager"] = new_manager
    return {"applied": "MANAGER_SET", "manager": new_manager}


ADMIN_TX_TYPES: Set[str] = {
    "ALLOCATION_PERCENTAGES_SET",
    "MIN_ALLOCATION_SET",
    "CYCLE_LENGTH_SET",
    "REWARD_CLAIM_FEE_SET",
    "TREASURY_DISTRIBUTION_PERIOD_SET",
    "PRIZE_EXPIRATION_SET",
    "MANAGER_SET",
}


def apply_admin(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = as_str(env.tx_type).upper()
    if t not in ADMIN_TX_TYPES:
        return None

    if t == "ALLOCATION_PERCENTAGES_SET":
        return _apply_allocation_percentages_set(state, env)
    if t == "MIN_ALLOCATION_SET":
        return _apply_min_allocation_set(state, env)
    if t == "CYCLE_LENGTH_SET":
        return _apply_cycle_length_set(state, env)
    if t == "REWARD_CLAIM_FEE_SET":
        return _apply_reward_claim_fee_set(state, env)
    if t == "TREASURY_DISTRIBUTION_PERIOD_SET":
        return _apply_treasury_distribution_period_set(state, env)
    if t == "PRIZE_EXPIRATION_SET":
        return _apply_prize_expiration_set(state, env)
    if t == "MANAGER_SET":
        return _apply_manager_set(state, env)

    return None


__all__ = ["ADMIN_TX_TYPES", "apply_admin"]
