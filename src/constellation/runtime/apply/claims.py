# src/constellation/runtime/apply/claims.py
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
    get_user_allocation,
    pay_from_contract,
)
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def compute_payout(*, remaining_prize: int, user_allocation: int, remaining_allocation: int) -> int:
    """Pro-rata share of what is left of a cycle's prize.

    Earlier claimants have already removed both their payout and their stake
    from the pool, so every winner gets the same rate. Capped at
    `remaining_prize` so the pool can never be overdrawn.
    """
    if remaining_prize <= 0 or user_allocation <= 0:
        return 0
    if remaining_allocation <= 0:
        return int(remaining_prize)
    payout = int(remaining_prize) * int(user_allocation) // int(remaining_allocation)
    return min(payout, int(remaining_prize))


def _apply_claim_reward(state: Json, env: TxEnvelope) -> Json:
    payload = as_dict(env.payload)
    caller = as_str(env.signer)
    cycle_id = as_uint(payload.get("cycle_id"), field="cycle_id")

    current = current_cycle_id(state)
    if current <= cycle_id:
        raise ApplyError(
            "cycle_not_finished",
            "cycle_not_finished",
            {"cycle_id": cycle_id, "current_cycle_id": current},
        )

    rec = get_user_allocation(state, cycle_id, caller)
    if rec is not None and bool(rec.get("claimed", False)):
        raise ApplyError("already_claimed", "already_claimed", {"cycle_id": cycle_id, "user": caller})

    cycle = get_cycle(state, cycle_id)
    winner = cycle.get("winning_constellation") if cycle is not None else None
    if winner is None:
        raise ApplyError("winner_not_recorded", "winner_not_recorded", {"cycle_id": cycle_id})
    winner = int(winner)

    user_win = int(rec["constellation_allocation"][winner]) if rec is not None else 0
    if user_win <= 0:
        raise ApplyError(
            "no_allocation",
            "no_allocation_to_winning_constellation",
            {"cycle_id": cycle_id, "user": caller, "winning_constellation": winner},
        )

    remaining_prize = int(cycle["prize"]) - int(cycle["prize_claimed"])
    if remaining_prize <= 0:
        raise ApplyError("prize_pool_empty", "prize_pool_empty", {"cycle_id": cycle_id})

    remaining_allocation = int(cycle["constellation_allocation"][winner]) - int(cycle["allocation_claimed"])
    payout = compute_payout(
        remaining_prize=remaining_prize,
        user_allocation=user_win,
        remaining_allocation=remaining_allocation,
    )

    fee = min(int(config(state)["reward_claim_fee"]), payout)
    net = payout - fee

    rec["claimed"] = True
    cycle["prize_claimed"] = int(cycle["prize_claimed"]) + payout
    cycle["allocation_claimed"] = int(cycle["allocation_claimed"]) + user_win

    g = game(state)
    g["team_fee"] = int(g["team_fee"]) + fee
    pay_from_contract(state, caller, net)

    return {
        "applied": "CLAIM_REWARD",
        "cycle_id": cycle_id,
        "winning_constellation": winner,
        "payout": payout,
        "fee": fee,
        "net": net,
    }


def _apply_claim_referral_reward(state: Json, env: TxEnvelope) -> Json:
    caller = as_str(env.signer)
    rec = state["referral_rewards"].get(caller)
    if not isinstance(rec, dict):
        raise ApplyError("not_found", "referral_reward_not_found", {"user": caller})

    amount = int(rec.get("amount", 0) or 0)
    if amount <= 0:
        raise ApplyError("precondition_failed", "referral_reward_empty", {"user": caller})

    rec["amount"] = 0
    pay_from_contract(state, caller, amount)
    return {"applied": "CLAIM_REFERRAL_REWARD", "amount": amount}


CLAIM_TX_TYPES: Set[str] = {
    "CLAIM_REWARD",
    "CLAIM_REFERRAL_REWARD",
}


def apply_claims(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = as_str(env.tx_type).upper()
    if t not in CLAIM_TX_TYPES:
        return None

    if t == "CLAIM_REWARD":
        return _apply_claim_reward(state, env)
    if t == "CLAIM_REFERRAL_REWARD":
        return _apply_claim_referral_reward(state, env)

    return None


__all__ = ["CLAIM_TX_TYPES", "apply_claims", "compute_payout"]
