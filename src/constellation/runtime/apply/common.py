# src/constellation/runtime/apply/common.py
from __future__ import annotations

"""Helpers shared by the game apply modules.

Every helper here either reads state or mutates it in place; none of them
catch ApplyError. Domain appliers run on a snapshot (see domain_apply), so a
raise halfway through a mutation never leaks partial state.
"""

from typing import Any, Dict, List

from constellation.ledger.constants import CONTRACT_ACCOUNT_ID
from constellation.ledger.schedule import cycle_id_at
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def as_uint(v: Any, *, field: str) -> int:
    """Parse a non-negative integer payload field or raise invalid_value."""
    if isinstance(v, bool):
        raise ApplyError("invalid_value", f"{field}_not_integer", {field: v})
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise ApplyError("invalid_value", f"{field}_not_integer", {field: v}) from None
    if isinstance(v, float) and float(n) != v:
        raise ApplyError("invalid_value", f"{field}_not_integer", {field: v})
    if n < 0:
        raise ApplyError("invalid_value", f"{field}_negative", {field: n})
    return n


def game(state: Json) -> Json:
    return state["game"]


def config(state: Json) -> Json:
    return state["game"]["config"]


def height(state: Json) -> int:
    return int(state.get("height", 0) or 0)


def num_constellations(state: Json) -> int:
    return int(config(state)["num_constellations"])


def current_cycle_id(state: Json) -> int:
    return cycle_id_at(state["game"]["schedule"], height(state))


def is_system_env(state: Json, env: TxEnvelope) -> bool:
    if not bool(getattr(env, "system", False)):
        return False
    signer = as_str(getattr(env, "signer", ""))
    system_signer = as_str(state.get("params", {}).get("system_signer")) or "SYSTEM"
    return signer in {system_signer, "SYSTEM"}


def require_manager(state: Json, env: TxEnvelope) -> None:
    manager = as_str(config(state).get("manager"))
    if not manager or as_str(env.signer) != manager:
        raise ApplyError(
            "permission_denied",
            "manager_required",
            {"tx_type": env.tx_type, "signer": env.signer},
        )


def require_manager_or_system(state: Json, env: TxEnvelope) -> None:
    if is_system_env(state, env):
        return
    require_manager(state, env)


def require_system(state: Json, env: TxEnvelope) -> None:
    if not is_system_env(state, env):
        raise ApplyError("forbidden", "system_tx_required", {"tx_type": env.tx_type, "signer": env.signer})


def zero_allocation(state: Json) -> List[int]:
    return [0] * num_constellations(state)


def get_or_create_cycle(state: Json, cycle_id: int) -> Json:
    cycles = state["cycles"]
    key = str(int(cycle_id))
    c = cycles.get(key)
    if not isinstance(c, dict):
        c = {
            "prize": 0,
            "prize_claimed": 0,
            "constellation_allocation": zero_allocation(state),
            "allocation_claimed": 0,
            "winning_constellation": None,
            "treasury_distributed": False,
            "prize_recovered": 0,
        }
        cycles[key] = c
    return c


def get_cycle(state: Json, cycle_id: int) -> Json | None:
    c = state["cycles"].get(str(int(cycle_id)))
    return c if isinstance(c, dict) else None


def get_or_create_user_allocation(state: Json, cycle_id: int, user: str) -> Json:
    by_cycle = state["allocations"].setdefault(str(int(cycle_id)), {})
    rec = by_cycle.get(user)
    if not isinstance(rec, dict):
        rec = {"constellation_allocation": zero_allocation(state), "claimed": False}
        by_cycle[user] = rec
    return rec


def get_user_allocation(state: Json, cycle_id: int, user: str) -> Json | None:
    by_cycle = state["allocations"].get(str(int(cycle_id)))
    if not isinstance(by_cycle, dict):
        return None
    rec = by_cycle.get(user)
    return rec if isinstance(rec, dict) else None


def balance_of(state: Json, principal: str) -> int:
    return int(state["balances"].get(principal, 0) or 0)


def credit(state: Json, principal: str, amount: int) -> None:
    if amount < 0:
        raise ApplyError("invalid_value", "negative_credit", {"principal": principal, "amount": amount})
    state["balances"][principal] = balance_of(state, principal) + int(amount)


def transfer(state: Json, *, sender: str, recipient: str, amount: int) -> None:
    """Move tokens between principals, failing on insufficient balance."""
    amount = int(amount)
    if amount <= 0:
        raise ApplyError("transfer_failed", "non_positive_amount", {"amount": amount})
    have = balance_of(state, sender)
    if have < amount:
        raise ApplyError(
            "transfer_failed",
            "insufficient_balance",
            {"principal": sender, "balance": have, "amount": amount},
        )
    state["balances"][sender] = have - amount
    credit(state, recipient, amount)


def pay_from_contract(state: Json, recipient: str, amount: int) -> None:
    if int(amount) <= 0:
        return
    transfer(state, sender=CONTRACT_ACCOUNT_ID, recipient=recipient, amount=int(amount))


def pay_to_contract(state: Json, sender: str, amount: int) -> None:
    transfer(state, sender=sender, recipient=CONTRACT_ACCOUNT_ID, amount=int(amount))
