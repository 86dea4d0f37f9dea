from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from constellation.api.routes_public_parts.common import _cycle_id_param, _principal_param, _view

router = APIRouter()

Json = Dict[str, Any]


# Static "current" routes are registered before the {cycle_id} routes so they
# are never parsed as a cycle id.
@router.get("/cycles/current")
def current_cycle(request: Request) -> Json:
    return {"ok": True, **_view(request).get_current_cycle()}


@router.get("/cycles/current/users/{user}")
def current_cycle_user(request: Request, user: str) -> Json:
    u = _principal_param("user", user)
    return {"ok": True, **_view(request).get_current_cycle_user_status(u)}


@router.get("/cycles/{cycle_id}")
def cycle(request: Request, cycle_id: int) -> Json:
    """Cycle record plus schedule position. Unknown cycles read as zeroes."""
    cid = _cycle_id_param(cycle_id)
    return {"ok": True, **_view(request).get_cycle_status(cid)}


@router.get("/cycles/{cycle_id}/winner")
def cycle_winner(request: Request, cycle_id: int) -> Json:
    cid = _cycle_id_param(cycle_id)
    winner = _view(request).get_constellation(cid)
    return {"ok": True, "cycle_id": cid, "winning_constellation": winner, "recorded": winner is not None}


@router.get("/cycles/{cycle_id}/users/{user}")
def cycle_user(request: Request, cycle_id: int, user: str) -> Json:
    cid = _cycle_id_param(cycle_id)
    u = _principal_param("user", user)
    return {"ok": True, **_view(request).get_cycle_user_status(cid, u)}


@router.get("/allocations/{cycle_id}/{user}")
def allocation(request: Request, cycle_id: int, user: str) -> Json:
    cid = _cycle_id_param(cycle_id)
    u = _principal_param("user", user)
    return {"ok": True, "cycle_id": cid, "user": u, **_view(request).get_allocated_by_user(cid, u)}
