from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List, Optional

from constellation.ledger.schedule import cycle_end_block, cycle_id_at, cycle_start_block
from constellation.runtime.apply.claims import compute_payout


Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class LedgerView:
    """
    Immutable read-only ledger view used by the API.

    Missing cycles and records read as zero-valued defaults; nothing here
    creates state.
    """

    height: int = 0
    tip: str = ""
    game: Dict[str, Any] = field(default_factory=dict)
    cycles: Dict[str, Any] = field(default_factory=dict)
    allocations: Dict[str, Any] = field(default_factory=dict)
    referral_rewards: Dict[str, Any] = field(default_factory=dict)
    balances: Dict[str, Any] = field(default_factory=dict)
    accounts: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "LedgerView":
        return cls(
            height=int(state.get("height", 0) or 0),
            tip=str(state.get("tip") or ""),
            game=copy.deepcopy(state.get("game", {})),
            cycles=copy.deepcopy(state.get("cycles", {})),
            allocations=copy.deepcopy(state.get("allocations", {})),
            referral_rewards=copy.deepcopy(state.get("referral_rewards", {})),
            balances=copy.deepcopy(state.get("balances", {})),
            accounts=copy.deepcopy(state.get("accounts", {})),
        )

    # ----------------------------
    # Config
    # ----------------------------

    @property
    def config(self) -> Json:
        cfg = self.game.get("config")
        return cfg if isinstance(cfg, dict) else {}

    @property
    def num_constellations(self) -> int:
        return int(self.config.get("num_constellations", 0) or 0)

    def get_allocation_percentages(self) -> Json:
        return dict(self.config.get("allocation_percentages") or {})

    def get_min_allocation(self) -> int:
        return int(self.config.get("min_allocation", 0) or 0)

    def get_blocks_per_cycle(self) -> int:
        return int(self.config.get("blocks_per_cycle", 0) or 0)

    def get_reward_claim_fee(self) -> int:
        return int(self.config.get("reward_claim_fee", 0) or 0)

    def get_treasury_distribution_period(self) -> int:
        return int(self.config.get("treasury_distribution_period", 0) or 0)

    def get_prize_expiration_cycles(self) -> int:
        return int(self.config.get("prize_expiration_cycles", 0) or 0)

    def get_manager(self) -> str:
        return str(self.config.get("manager") or "")

    def get_treasury(self) -> int:
        return int(self.game.get("treasury", 0) or 0)

    def get_team_fee(self) -> int:
        return int(self.game.get("team_fee", 0) or 0)

    def get_balance(self, principal: str) -> int:
        return int(self.balances.get(principal, 0) or 0)

    def get_nonce(self, account_id: str) -> int:
        acct = self.accounts.get(account_id)
        return int(acct.get("nonce", 0) or 0) if isinstance(acct, dict) else 0

    def get_active_keys(self, account_id: str) -> List[str]:
        acct = self.accounts.get(account_id)
        keys = acct.get("keys") if isinstance(acct, dict) else None
        if not isinstance(keys, list):
            return []
        return [str(k["pubkey"]) for k in keys if isinstance(k, dict) and k.get("active", True) and k.get("pubkey")]

    # ----------------------------
    # Cycles
    # ----------------------------

    @property
    def schedule(self) -> List[Json]:
        return list(self.game.get("schedule") or [])

    def get_current_cycle_id(self) -> int:
        return cycle_id_at(self.schedule, self.height)

    def get_cycle(self, cycle_id: int) -> Json:
        c = self.cycles.get(str(int(cycle_id)))
        if not isinstance(c, dict):
            c = {
                "prize": 0,
                "prize_claimed": 0,
                "constellation_allocation": [0] * self.num_constellations,
                "allocation_claimed": 0,
                "winning_constellation": None,
                "treasury_distributed": False,
                "prize_recovered": 0,
            }
        return {"cycle_id": int(cycle_id), **c}

    def get_constellation(self, cycle_id: int) -> Optional[int]:
        """Winning constellation of a cycle, or None until recorded."""
        w = self.get_cycle(cycle_id).get("winning_constellation")
        return None if w is None else int(w)

    def get_allocated_by_user(self, cycle_id: int, user: str) -> Json:
        by_cycle = self.allocations.get(str(int(cycle_id)))
        rec = by_cycle.get(user) if isinstance(by_cycle, dict) else None
        if not isinstance(rec, dict):
            return {"constellation_allocation": [0] * self.num_constellations, "claimed": False}
        return {
            "constellation_allocation": list(rec.get("constellation_allocation") or []),
            "claimed": bool(rec.get("claimed", False)),
        }

    def get_referral_reward(self, user: str) -> Json:
        rec = self.referral_rewards.get(user)
        if not isinstance(rec, dict):
            return {"amount": 0, "block_update": 0}
        return {"amount": int(rec.get("amount", 0) or 0), "block_update": int(rec.get("block_update", 0) or 0)}

    def get_cycle_status(self, cycle_id: int) -> Json:
        cid = int(cycle_id)
        current = self.get_current_cycle_id()
        end_block = cycle_end_block(self.schedule, cid)
        return {
            "cycle_id": cid,
            "cycle": self.get_cycle(cid),
            "start_block": cycle_start_block(self.schedule, cid),
            "end_block": end_block,
            "blocks_remaining": max(0, end_block - self.height),
            "current_cycle_id": current,
            "current_height": self.height,
            "finished": current > cid,
        }

    def estimate_payout(self, cycle_id: int, user: str) -> int:
        """What CLAIM_REWARD would pay right now (before the claim fee), or 0."""
        cycle = self.get_cycle(cycle_id)
        winner = cycle.get("winning_constellation")
        rec = self.get_allocated_by_user(cycle_id, user)
        if winner is None or rec["claimed"] or self.get_current_cycle_id() <= int(cycle_id):
            return 0
        alloc = rec["constellation_allocation"]
        user_win = int(alloc[int(winner)]) if int(winner) < len(alloc) else 0
        return compute_payout(
            remaining_prize=int(cycle["prize"]) - int(cycle["prize_claimed"]),
            user_allocation=user_win,
            remaining_allocation=int(cycle["constellation_allocation"][int(winner)]) - int(cycle["allocation_claimed"]),
        )

    def get_cycle_user_status(self, cycle_id: int, user: str) -> Json:
        out = self.get_cycle_status(cycle_id)
        out["user"] = str(user)
        out["user_allocation"] = self.get_allocated_by_user(cycle_id, user)
        out["estimated_payout"] = self.estimate_payout(cycle_id, user)
        return out

    def get_current_cycle(self) -> Json:
        return self.get_cycle_status(self.get_current_cycle_id())

    def get_current_cycle_user_status(self, user: str) -> Json:
        return self.get_cycle_user_status(self.get_current_cycle_id(), user)
