# src/constellation/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from constellation.runtime.domain_dispatch import apply_tx
from constellation.runtime.errors import ApplyError
from constellation.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _consume_nonce_if_possible(state: Json, env: TxEnvelope) -> None:
    """Consume the signer's nonce even though the tx failed.

    System txs do not consume nonces. Only the account nonce is touched.
    """

    if env.system:
        return

    signer = str(env.signer or "").strip()
    if not signer:
        return

    accounts = state.setdefault("accounts", {})
    acct = accounts.get(signer)
    if not isinstance(acct, dict):
        acct = {"nonce": 0, "keys": []}
        accounts[signer] = acct

    acct["nonce"] = max(int(acct.get("nonce", 0) or 0), int(env.nonce))


def apply_tx_atomic(
    state: Json,
    env: Any,
    *,
    consume_nonce_on_fail: bool = True,
) -> Optional[Json]:
    """Apply a tx with fail-atomic semantics.

    On success state is updated as if apply_tx() ran directly, and the
    signer's nonce advances. On ApplyError state is unchanged, except
    (optionally) nonce consumption.
    """

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    snapshot = copy.deepcopy(state)

    try:
        meta = apply_tx(snapshot, env_norm)
        _consume_nonce_if_possible(snapshot, env_norm)
    except ApplyError:
        if consume_nonce_on_fail:
            _consume_nonce_if_possible(state, env_norm)
        raise

    # Commit in place so callers holding references to `state` see the update.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "Json"]
