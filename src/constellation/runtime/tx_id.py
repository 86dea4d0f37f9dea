# src/constellation/runtime/tx_id.py
from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def compute_tx_id(
    *,
    chain_id: str,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
    system: bool = False,
) -> str:
    """Canonical tx id.

    Includes chain_id so identical txs on different chains never collide.
    Excludes sig so the signature encoding cannot change the id.
    """
    obj: Json = {
        "chain_id": str(chain_id),
        "tx_type": str(tx_type),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
        "system": bool(system),
    }
    data = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def compute_tx_id_from_envelope(chain_id: str, env: TxEnvelope) -> str:
    return compute_tx_id(
        chain_id=str(chain_id),
        tx_type=env.tx_type,
        signer=env.signer,
        nonce=env.nonce,
        payload=env.payload,
        system=env.system,
    )
