# src/constellation/runtime/apply/allocation.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from constellation.runtime.apply.common import (
    as_dict,
    as_str,
    as_uint,
    config,
    current_cycle_id,
    game,
    get_or_create_cycle,
    get_or_create_user_allocation,
    height,
    num_constellations,
    pay_to_contract,
)
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def split_allocation(amount: int, percentages: Json) -> Json:
    """Split `amount` into the four allocation buckets.

    Treasury, team fee and referral reward are floored; the rounding remainder
    stays in the current-cycle prize so the buckets always sum to `amount`.
    """
    amount = int(amount)
    treasury = amount * int(percentages.get("treasury", 0)) // 100
    team_fee = amount * int(percentages.get("team_fee", 0)) // 100
    referral_reward = amount * int(percentages.get("referral_reward", 0)) // 100
    prize = amount - treasury - team_fee - referral_reward
    return {
        "current_cycle": prize,
        "treasury": treasury,
        "team_fee": team_fee,
        "referral_reward": referral_reward,
    }


def _credit_referral(state: Json, referrer: str, amount: int) -> None:
    rewards = state["referral_rewards"]
    rec = rewards.get(referrer)
    if not isinstance(rec, dict):
        rec = {"amount": 0, "block_update": 0}
        rewards[referrer] = rec
    rec["amount"] = int(rec.get("amount", 0) or 0) + int(amount)
    rec["block_update"] = height(state)


def _apply_allocate(state: Json, env: TxEnvelope) -> Json:
    payload = as_dict(env.payload)
    caller = as_str(env.signer)
    cfg = config(state)

    amount = as_uint(payload.get("amount"), field="amount")
    constellation = as_uint(payload.get("constellation"), field="constellation")
    referrer = as_str(payload.get("referrer")) or caller

    min_allocation = int(cfg["min_allocation"])
    if amount < min_allocation:
        raise ApplyError(
            "precondition_failed",
            "amount_below_minimum",
            {"amount": amount, "min_allocation": min_allocation},
        )

    n = num_constellations(state)
    if constellation >= n:
        raise ApplyError(
            "invalid_value",
            "constellation_out_of_range",
            {"constellation": constellation, "num_constellations": n},
        )

    pay_to_contract(state, caller, amount)

    split = split_allocation(amount, cfg["allocation_percentages"])
    prize = int(split["current_cycle"])

    g = game(state)
    g["treasury"] = int(g["treasury"]) + int(split["treasury"])
    g["team_fee"] = int(g["team_fee"]) + int(split["team_fee"])
    if split["referral_reward"] > 0:
        _credit_referral(state, referrer, int(split["referral_reward"]))

    cycle_id = current_cycle_id(state)
    cycle = get_or_create_cycle(state, cycle_id)
    cycle["prize"] = int(cycle["prize"]) + prize
    cycle["constellation_allocation"][constellation] = int(cycle["constellation_allocation"][constellation]) + prize

    rec = get_or_create_user_allocation(state, cycle_id, caller)
    rec["constellation_allocation"][constellation] = int(rec["constellation_allocation"][constellation]) + prize

    return {
        "applied": "ALLOCATE",
        "cycle_id": cycle_id,
        "constellation": constellation,
        "amount": amount,
        "referrer": referrer,
        "split": split,
    }


def _apply_treasury_deposit(state: Json, env: TxEnvelope) -> Json:
    payload = as_dict(env.payload)
    amount = as_uint(payload.get("amount"), field="amount")
    if amount <= 0:
        raise ApplyError("invalid_value", "amount_must_be_positive", {"amount": amount})

    pay_to_contract(state, as_str(env.signer), amount)
    g = game(state)
    g["treasury"] = int(g["treasury"]) + amount
    return {"applied": "TREASURY_DEPOSIT", "amount": amount, "treasury": int(g["treasury"])}


ALLOCATION_TX_TYPES: Set[str] = {
    "ALLOCATE",
    "TREASURY_DEPOSIT",
}


def apply_allocation(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = as_str(env.tx_type).upper()
    if t not in ALLOCATION_TX_TYPES:
        return None

    if t == "ALLOCATE":
        return _apply_allocate(state, env)
    if t == "TREASURY_DEPOSIT":
        return _apply_treasury_deposit(state, env)

    return None


__all__ = ["ALLOCATION_TX_TYPES", "apply_allocation", "split_allocation"]
