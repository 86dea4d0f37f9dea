from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from constellation.api.routes_public_parts.common import _principal_param, _view

router = APIRouter()

Json = Dict[str, Any]


@router.get("/referrals/{user}")
def referral(request: Request, user: str) -> Json:
    u = _principal_param("user", user)
    return {"ok": True, "user": u, **_view(request).get_referral_reward(u)}


@router.get("/accounts/{account}")
def account(request: Request, account: str) -> Json:
    """Balance, nonce and keys. Clients read `nonce` to sign the next tx with nonce + 1."""
    a = _principal_param("account", account)
    v = _view(request)
    return {
        "ok": True,
        "account": a,
        "registered": bool(v.get_active_keys(a)),
        "balance": v.get_balance(a),
        "nonce": v.get_nonce(a),
        "keys": v.get_active_keys(a),
        "referral_reward": v.get_referral_reward(a),
    }
