# src/constellation/runtime/tx_admission.py
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional, Tuple

from constellation.crypto.sig import canonical_tx_message, verify_ed25519_signature, verify_tx_sig_against_any_key
from constellation.runtime.tx_admission_types import TxEnvelope, TxVerdict
from constellation.tx.canon import TxIndex

Json = Dict[str, Any]


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except ValueError:
        return int(default)


def _json_size_bytes(obj: Any) -> int:
    """Compute JSON byte size. If not serializable, return -1 (unknown)."""
    try:
        return len(json.dumps(obj, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _validate_payload_limits(payload: Any) -> Optional[TxVerdict]:
    """Generic payload validation (shape + size caps)."""
    if not isinstance(payload, dict):
        return TxVerdict.reject("invalid_payload", "payload_must_be_object", {"type": str(type(payload))})

    max_payload_bytes = _env_int("CONSTELLATION_MAX_TX_PAYLOAD_BYTES", 16 * 1024)
    max_payload_keys = _env_int("CONSTELLATION_MAX_TX_PAYLOAD_KEYS", 32)
    max_string_bytes = _env_int("CONSTELLATION_MAX_TX_STRING_BYTES", 1024)

    if len(payload) > max_payload_keys:
        return TxVerdict.reject(
            "invalid_payload",
            "payload_too_many_keys",
            {"keys": len(payload), "max_keys": max_payload_keys},
        )

    payload_bytes = _json_size_bytes(payload)
    if payload_bytes < 0:
        return TxVerdict.reject("invalid_payload", "payload_not_json", None)
    if payload_bytes > max_payload_bytes:
        return TxVerdict.reject(
            "payload_too_large",
            "payload_exceeds_size_limit",
            {"bytes": payload_bytes, "max_bytes": max_payload_bytes},
        )

    for k, v in payload.items():
        if isinstance(v, (dict, list)):
            return TxVerdict.reject("invalid_payload", "nested_values_not_allowed", {"field": k})
        if isinstance(v, str) and len(v.encode("utf-8")) > max_string_bytes:
            return TxVerdict.reject(
                "invalid_payload",
                "string_too_large",
                {"field": k, "max_bytes": max_string_bytes},
            )

    return None


def _require_fields(txdef: Json, payload: Json) -> Optional[TxVerdict]:
    for key in txdef.get("payload") or []:
        v = payload.get(key)
        if v is None or (isinstance(v, str) and not v.strip()):
            return TxVerdict.reject("invalid_payload", f"missing_{key}", {"missing": key})
    return None


def _system_signer(ledger: Json) -> str:
    params = ledger.get("params") if isinstance(ledger, dict) else None
    if isinstance(params, dict):
        return str(params.get("system_signer") or "").strip()
    return ""


def _verify_register(env: TxEnvelope) -> Optional[TxVerdict]:
    """ACCOUNT_REGISTER for a fresh account is signed by the key it binds."""
    pubkey = str(env.pubkey or "").strip()
    if not pubkey:
        return TxVerdict.reject("invalid_payload", "missing_pubkey", {"tx_type": env.tx_type})
    msg = canonical_tx_message(tx_type=env.tx_type, signer=env.signer, nonce=env.nonce, payload=env.payload)
    if not verify_ed25519_signature(message=msg, sig=env.sig, pubkey=pubkey):
        return TxVerdict.reject("bad_sig", "signature_verification_failed", {"signer": env.signer, "tx_type": env.tx_type})
    return None


def admit_tx(
    tx: Any,
    ledger: Json,
    canon: TxIndex,
    *,
    pending_nonce: int = 0,
) -> Tuple[TxVerdict, Optional[TxEnvelope]]:
    """Decide whether a user-submitted envelope may enter the mempool.

    `pending_nonce` is the highest nonce already queued for this signer, so
    a client can pipeline several txs ahead of block production.
    """
    max_tx_bytes = _env_int("CONSTELLATION_MAX_TX_ENVELOPE_BYTES", 32 * 1024)
    raw = tx.to_json() if isinstance(tx, TxEnvelope) else tx
    env_size = _json_size_bytes(raw)
    if env_size > max_tx_bytes:
        return (
            TxVerdict.reject("tx_too_large", "tx_envelope_exceeds_size_limit", {"bytes": env_size, "max_bytes": max_tx_bytes}),
            None,
        )

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError) as e:
        return TxVerdict.reject("bad_shape", "malformed_envelope", {"error": str(e)}), None

    if not env.tx_type:
        return TxVerdict.reject("bad_shape", "missing_tx_type", None), env
    if not env.signer:
        return TxVerdict.reject("bad_shape", "missing_signer", None), env
    if int(env.nonce) <= 0:
        return TxVerdict.reject("bad_shape", "nonce_must_be_positive", {"nonce": int(env.nonce)}), env

    txdef = canon.get(env.tx_type)
    if txdef is None:
        return TxVerdict.reject("unknown_tx", "tx_type_not_in_canon", {"tx_type": env.tx_type}), env

    verdict = _validate_payload_limits(env.payload)
    if verdict is None:
        verdict = _require_fields(txdef, env.payload)
    if verdict is not None:
        return verdict, env

    allowed = {"SYSTEM", _system_signer(ledger)} - {""}
    if env.system or env.signer in allowed:
        return TxVerdict.reject("forbidden", "system_tx_not_admissible", {"signer": env.signer}), env
    if str(txdef.get("origin") or "").upper() == "SYSTEM":
        return TxVerdict.reject("forbidden", "system_only_tx", {"tx_type": env.tx_type}), env

    acct = ledger.get("accounts", {}).get(env.signer)
    last_nonce = int(acct.get("nonce", 0) or 0) if isinstance(acct, dict) else 0
    expected = max(last_nonce, int(pending_nonce)) + 1
    if int(env.nonce) != expected:
        return TxVerdict.reject("bad_nonce", "nonce_must_be_next", {"expected": expected, "got": env.nonce}), env

    has_keys = isinstance(acct, dict) and bool(acct.get("keys"))
    if not has_keys:
        if env.tx_type != "ACCOUNT_REGISTER":
            return TxVerdict.reject("unknown_signer", "signer_not_registered", {"signer": env.signer}), env
        verdict = _verify_register(env)
        return (verdict or TxVerdict.admit()), env

    ok, info = verify_tx_sig_against_any_key(
        ledger=ledger,
        tx_type=env.tx_type,
        signer=env.signer,
        nonce=env.nonce,
        payload=env.payload,
        sig=env.sig,
    )
    if not ok:
        return (
            TxVerdict.reject("bad_sig", "signature_verification_failed", {"signer": env.signer, **info}),
            env,
        )

    return TxVerdict.admit(), env


__all__ = ["admit_tx"]
