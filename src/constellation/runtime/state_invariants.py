# src/constellation/runtime/state_invariants.py
from __future__ import annotations

"""State normalization helpers.

Ledger state is a nested JSON-like dict mutated deterministically by the
apply_* modules. This module is the single place that validates the state is
dict-like and creates the top-level containers every domain relies on.

Cycle and allocation maps are keyed by the *string* form of the cycle id so
the snapshot survives a JSON round-trip through SQLite unchanged.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

from constellation.ledger.constants import (
    DEFAULT_ALLOCATION_PERCENTAGES,
    DEFAULT_BLOCKS_PER_CYCLE,
    DEFAULT_MIN_ALLOCATION,
    DEFAULT_PRIZE_EXPIRATION_CYCLES,
    DEFAULT_REWARD_CLAIM_FEE,
    DEFAULT_TREASURY_DISTRIBUTION_PERIOD,
    NUM_CONSTELLATIONS,
    START_BLOCK,
    SYSTEM_SIGNER,
)
from constellation.ledger.schedule import default_schedule

Json = Dict[str, Any]

_DICT_ROOTS = ("accounts", "params", "balances", "cycles", "allocations", "referral_rewards")


def default_game_config(*, manager: str = "") -> Json:
    return {
        "manager": str(manager or ""),
        "allocation_percentages": dict(DEFAULT_ALLOCATION_PERCENTAGES),
        "min_allocation": DEFAULT_MIN_ALLOCATION,
        "blocks_per_cycle": DEFAULT_BLOCKS_PER_CYCLE,
        "reward_claim_fee": DEFAULT_REWARD_CLAIM_FEE,
        "treasury_distribution_period": DEFAULT_TREASURY_DISTRIBUTION_PERIOD,
        "prize_expiration_cycles": DEFAULT_PRIZE_EXPIRATION_CYCLES,
        "start_block": START_BLOCK,
        "num_constellations": NUM_CONSTELLATIONS,
    }


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains the core containers.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st or one of its core containers has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _DICT_ROOTS:
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    st.setdefault("height", 0)
    st["params"].setdefault("system_signer", SYSTEM_SIGNER)

    game = st.get("game")
    if game is None:
        game = {}
        st["game"] = game
    elif not isinstance(game, dict):
        raise TypeError(f"state['game'] must be dict, got {type(game)}")

    cfg = game.get("config")
    if not isinstance(cfg, dict):
        cfg = default_game_config()
        game["config"] = cfg
    else:
        for k, v in default_game_config().items():
            cfg.setdefault(k, v)

    sched = game.get("schedule")
    if not isinstance(sched, list) or not sched:
        game["schedule"] = default_schedule(
            start_block=int(cfg["start_block"]),
            blocks_per_cycle=int(cfg["blocks_per_cycle"]),
        )

    game.setdefault("treasury", 0)
    game.setdefault("team_fee", 0)

    return st  # type: ignore[return-value]


__all__ = ["default_game_config", "ensure_state"]
