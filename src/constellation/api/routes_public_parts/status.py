from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from constellation.api.routes_public_parts.common import _executor, _snapshot
from constellation.ledger.state import LedgerView

router = APIRouter()

Json = Dict[str, Any]


@router.get("/status")
def status(request: Request) -> Json:
    """
    Public node status summary.

    Mounted under /v1 by routes_public.py:
      GET /v1/status
    """
    ex = _executor(request)
    st = _snapshot(request)
    ledger = LedgerView.from_ledger(st)

    loop = getattr(request.app.state, "block_loop", None)
    return {
        "ok": True,
        "chain_id": str(st.get("chain_id") or ex.chain_id),
        "node_id": str(ex.node_id),
        "mode": str(ex.cfg.mode),
        "height": ledger.height,
        "tip": ledger.tip,
        "current_cycle_id": ledger.get_current_cycle_id(),
        "mempool_size": int(ex.mempool.size()),
        "block_loop": {
            "attached": loop is not None,
            "running": bool(getattr(ex, "block_loop_running", False)),
            "unhealthy": bool(getattr(ex, "block_loop_unhealthy", False)),
            "last_error": str(getattr(ex, "block_loop_last_error", "") or ""),
        },
    }
