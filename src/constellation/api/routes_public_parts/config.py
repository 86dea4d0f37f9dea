from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from constellation.api.routes_public_parts.common import _view
from constellation.ledger.constants import CONTRACT_ACCOUNT_ID

router = APIRouter()

Json = Dict[str, Any]


@router.get("/config")
def game_config(request: Request) -> Json:
    """Current admin-tunable game parameters."""
    v = _view(request)
    return {
        "ok": True,
        "manager": v.get_manager(),
        "num_constellations": v.num_constellations,
        "allocation_percentages": v.get_allocation_percentages(),
        "min_allocation": v.get_min_allocation(),
        "blocks_per_cycle": v.get_blocks_per_cycle(),
        "reward_claim_fee": v.get_reward_claim_fee(),
        "treasury_distribution_period": v.get_treasury_distribution_period(),
        "prize_expiration_cycles": v.get_prize_expiration_cycles(),
        "schedule": v.schedule,
    }


@router.get("/treasury")
def treasury(request: Request) -> Json:
    v = _view(request)
    return {
        "ok": True,
        "treasury": v.get_treasury(),
        "team_fee": v.get_team_fee(),
        "contract_balance": v.get_balance(CONTRACT_ACCOUNT_ID),
        "current_cycle_id": v.get_current_cycle_id(),
    }
