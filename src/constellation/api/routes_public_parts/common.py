from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from constellation.api.errors import ApiError
from constellation.ledger.state import LedgerView

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _snapshot(request: Request) -> Json:
    st = _executor(request).read_state()
    if not isinstance(st, dict):
        raise ApiError.internal("bad_state", "executor state is not a dict", {})
    return st


def _view(request: Request) -> LedgerView:
    return LedgerView.from_ledger(_snapshot(request))


def _cycle_id_param(cycle_id: int) -> int:
    if int(cycle_id) < 0:
        raise ApiError.bad_request("invalid_value", "cycle_id must be >= 0", {"cycle_id": int(cycle_id)})
    return int(cycle_id)


def _principal_param(name: str, value: str) -> str:
    v = str(value or "").strip()
    if not v:
        raise ApiError.bad_request("invalid_value", f"{name} is required", {})
    return v
