# src/constellation/runtime/apply/tokens.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from constellation.runtime.apply.common import as_dict, as_str, as_uint, credit, require_system
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _apply_token_mint(state: Json, env: TxEnvelope) -> Json:
    """Faucet credit, system-only (dev/testnet funding)."""
    require_system(state, env)
    payload = as_dict(env.payload)
    recipient = as_str(payload.get("recipient"))
    if not recipient:
        raise ApplyError("invalid_payload", "missing_recipient", {})
    amount = as_uint(payload.get("amount"), field="amount")
    if amount <= 0:
        raise ApplyError("invalid_value", "amount_must_be_positive", {"amount": amount})

    credit(state, recipient, amount)
    return {"applied": "TOKEN_MINT", "recipient": recipient, "amount": amount}


def _apply_account_register(state: Json, env: TxEnvelope) -> Json:
    signer = as_str(env.signer)
    pubkey = as_str(env.pubkey) or as_str(as_dict(env.payload).get("pubkey"))
    if not pubkey:
        raise ApplyError("invalid_payload", "missing_pubkey", {})

    accounts = state["accounts"]
    acct = accounts.get(signer)
    if not isinstance(acct, dict):
        acct = {"nonce": 0, "keys": []}
        accounts[signer] = acct

    keys: List[Json] = acct.get("keys") if isinstance(acct.get("keys"), list) else []
    for rec in keys:
        if isinstance(rec, dict) and rec.get("active", True):
            if as_str(rec.get("pubkey")) == pubkey:
                return {"applied": "ACCOUNT_REGISTER", "account": signer, "deduped": True}
            raise ApplyError("conflict", "account_already_registered", {"account": signer})

    keys.append({"pubkey": pubkey, "active": True})
    acct["keys"] = keys
    return {"applied": "ACCOUNT_REGISTER", "account": signer, "pubkey": pubkey}


TOKEN_TX_TYPES: Set[str] = {
    "TOKEN_MINT",
    "ACCOUNT_REGISTER",
}


def apply_tokens(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = as_str(env.tx_type).upper()
    if t not in TOKEN_TX_TYPES:
        return None

    if t == "TOKEN_MINT":
        return _apply_token_mint(state, env)
    if t == "ACCOUNT_REGISTER":
        return _apply_account_register(state, env)

    return None


__all__ = ["TOKEN_TX_TYPES", "apply_tokens"]
