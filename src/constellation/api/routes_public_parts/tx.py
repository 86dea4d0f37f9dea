from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from constellation.api.errors import ApiError
from constellation.api.routes_public_parts.common import _executor
from constellation.api.schemas import TxSubmitRequest
from constellation.ledger.constants import SYSTEM_SIGNER

router = APIRouter()

Json = Dict[str, Any]

# Admission / mempool reject code -> HTTP status.
_REJECT_STATUS: Dict[str, int] = {
    "bad_env": 400,
    "bad_shape": 400,
    "unknown_tx": 400,
    "invalid_payload": 400,
    "forbidden": 403,
    "unknown_signer": 403,
    "bad_sig": 403,
    "bad_nonce": 409,
    "tx_id_conflict": 409,
    "tx_too_large": 413,
    "payload_too_large": 413,
    "mempool_full": 503,
    "mempool_signer_quota": 429,
}


@router.post("/tx/submit")
def tx_submit(request: Request, body: TxSubmitRequest) -> Json:
    """Submit a signed user tx envelope.

    Idempotent: resubmitting an identical envelope answers already_known.
    SYSTEM envelopes are refused here before admission sees them.

    Returns:
      { ok, tx_id, status: accepted|already_known, mempool_size }
    """
    ex = _executor(request)
    env = body.model_dump()

    if str(env.get("signer") or "").strip() == SYSTEM_SIGNER or bool(env.get("system", False)):
        raise ApiError.forbidden("system_tx_forbidden", "SYSTEM transactions cannot be submitted over HTTP", {})

    res = ex.submit_tx(env)
    if not res.get("ok"):
        code = str(res.get("error") or "rejected")
        details = dict(res.get("details") or {})
        if res.get("reason"):
            details.setdefault("reason", str(res.get("reason")))
        raise ApiError(_REJECT_STATUS.get(code, 400), code, "tx rejected", details)

    return {
        "ok": True,
        "tx_id": str(res.get("tx_id") or ""),
        "status": "already_known" if res.get("deduped") else "accepted",
        "mempool_size": int(ex.mempool.size()),
    }


@router.get("/tx/{tx_id}")
def tx_status(request: Request, tx_id: str) -> Json:
    """Finality poll: pending, success, abort_by_response or unknown."""
    t = str(tx_id or "").strip()
    if not t:
        raise ApiError.bad_request("invalid_value", "tx_id is required", {})
    return {"ok": True, **_executor(request).tx_status(t)}
