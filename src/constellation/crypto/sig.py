# src/constellation/crypto/sig.py
from __future__ import annotations

import base64
import json
from binascii import Error as BinasciiError
from typing import Any, Dict, List, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2, validate=True)
    except (ValueError, BinasciiError) as e:
        raise ValueError("not hex or base64") from e


def canonical_tx_message(*, tx_type: str, signer: str, nonce: int, payload: Json) -> bytes:
    """Bytes covered by a tx signature: sorted-key compact JSON."""
    obj: Json = {
        "tx_type": str(tx_type),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        sig_b = _decode_bytes(sig)
        pk_b = _decode_bytes(pubkey)
        key = Ed25519PublicKey.from_public_bytes(pk_b)
        key.verify(sig_b, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    """Sign a message with an Ed25519 private key.

    privkey: hex or base64 string holding the 32-byte seed.
    encoding: "hex" (default) or "b64".
    """
    pk_b = _decode_bytes(privkey)
    if len(pk_b) == 64:
        pk_b = pk_b[:32]
    if len(pk_b) != 32:
        raise ValueError("ed25519 privkey must be 32-byte seed (or 64-byte expanded key)")

    sig_b = Ed25519PrivateKey.from_private_bytes(pk_b).sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError("unsupported encoding")


def sign_tx_envelope_dict(*, tx: Json, privkey: str, encoding: str = "hex") -> Json:
    """Return a copy of tx with its 'sig' field populated."""
    tx_type = str(tx.get("tx_type") or "").strip().upper()
    signer = str(tx.get("signer") or "").strip()
    nonce = int(tx.get("nonce") or 0)
    payload = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}

    msg = canonical_tx_message(tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)
    out = dict(tx)
    out.update({"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": payload})
    out["sig"] = sign_ed25519(message=msg, privkey=privkey, encoding=encoding)
    return out


def extract_active_account_pubkeys(ledger: Json, account_id: str) -> List[str]:
    """Active pubkeys bound to an account.

    Schema: ledger["accounts"][account_id]["keys"] = [{"pubkey", "active"}, ...]
    """
    accounts = ledger.get("accounts")
    if not isinstance(accounts, dict):
        return []
    acct = accounts.get(account_id)
    if not isinstance(acct, dict):
        return []

    keys = acct.get("keys")
    if not isinstance(keys, list):
        return []

    out: List[str] = []
    for rec in keys:
        if not isinstance(rec, dict) or not rec.get("active", True):
            continue
        pk = rec.get("pubkey")
        if isinstance(pk, str) and pk.strip() and pk.strip() not in out:
            out.append(pk.strip())
    return out


def verify_tx_sig_against_any_key(
    *,
    ledger: Json,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
    sig: str,
) -> Tuple[bool, Dict[str, Any]]:
    keys = extract_active_account_pubkeys(ledger, signer)
    if not keys:
        return False, {"reason": "no_active_keys"}

    msg = canonical_tx_message(tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)
    for pk in keys:
        if verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
            return True, {"pubkey": pk}

    return False, {"reason": "invalid_signature"}
