# src/constellation/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from constellation.runtime.errors import ApplyError
from constellation.runtime.state_invariants import ensure_state
from constellation.runtime.tx_admission_types import TxEnvelope
from constellation.tx.canon import CanonError, load_tx_index

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from constellation.runtime.apply.admin import apply_admin
from constellation.runtime.apply.allocation import apply_allocation
from constellation.runtime.apply.claims import apply_claims
from constellation.runtime.apply.cycles import apply_cycles
from constellation.runtime.apply.tokens import apply_tokens
from constellation.runtime.apply.treasury import apply_treasury

Json = Dict[str, Any]
ApplyFn = Callable[[Json, Any], Optional[Json]]


def _get(env: Any, key: str, default: Any = None) -> Any:
    """Read a field from either a TxEnvelope-like object or a dict."""

    if isinstance(env, dict):
        return env.get(key, default)
    return getattr(env, key, default)


def _tx_type(env: Any) -> str:
    return str(_get(env, "tx_type", "") or "").strip().upper()


def _enforce_apply_time_canon(state: Json, env: Any) -> None:
    """Re-check origin=SYSTEM at apply time.

    Admission enforces this for the mempool, but apply_tx() is also driven
    directly by tests and by the executor for internally generated txs.
    """
    t = _tx_type(env)
    try:
        txdef = load_tx_index().get(t)
    except CanonError:
        return
    if not isinstance(txdef, dict):
        return

    origin = str(txdef.get("origin") or "").strip().upper()
    if origin != "SYSTEM":
        return

    if not bool(_get(env, "system", False)):
        raise ApplyError("forbidden", "system_flag_required", {"tx_type": t})

    signer = str(_get(env, "signer", "") or "").strip()
    system_signer = str(state.get("params", {}).get("system_signer") or "").strip()
    if signer not in {system_signer, "SYSTEM"}:
        raise ApplyError(
            "forbidden",
            "system_signer_required",
            {"tx_type": t, "signer": signer, "system_signer": system_signer},
        )


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_tokens,
    apply_allocation,
    apply_claims,
    apply_cycles,
    apply_treasury,
    apply_admin,
)


def apply_tx(state: Json, env: Any) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it."""

    ensure_state(state)

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    t = _tx_type(env_norm)
    if not t:
        raise ApplyError("invalid_tx", "missing_tx_type", {"tx_type": t})

    _enforce_apply_time_canon(state, env_norm)

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})


__all__ = ["apply_tx"]
