# src/constellation/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from constellation.ledger.constants import (
    ALLOCATION_BUCKETS,
    DEFAULT_ALLOCATION_PERCENTAGES,
    DEFAULT_BLOCKS_PER_CYCLE,
    DEFAULT_MIN_ALLOCATION,
    DEFAULT_PRIZE_EXPIRATION_CYCLES,
    DEFAULT_REWARD_CLAIM_FEE,
    DEFAULT_TREASURY_DISTRIBUTION_PERIOD,
    START_BLOCK,
)

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _as_int_map(v: Any, default: Dict[str, int]) -> Dict[str, int]:
    if not isinstance(v, dict):
        return dict(default)
    return {str(k): _as_int(val, 0) for k, val in v.items()}


@dataclass(frozen=True)
class ChainConfig:
    chain_id: str
    node_id: str
    mode: str  # "dev" | "testnet" | "prod"

    db_path: str

    block_interval_ms: int
    max_txs_per_block: int

    api_host: str
    api_port: int

    log_level: str

    # Record each finished cycle's winner from the block hash that closes it.
    auto_record_winner: bool

    # Move a treasury slice into each new cycle's prize as a SYSTEM tx.
    auto_distribute_treasury: bool

    # Genesis game parameters. Only read when the ledger is first created;
    # afterwards the manager changes them through admin txs.
    manager: str
    start_block: int
    blocks_per_cycle: int
    min_allocation: int
    reward_claim_fee: int
    treasury_distribution_period: int
    prize_expiration_cycles: int
    allocation_percentages: Dict[str, int]
    genesis_balances: Dict[str, int]


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_chain_config(cfg: ChainConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ValueError("chain_id must be a non-empty string")

    if not isinstance(cfg.node_id, str) or not cfg.node_id.strip():
        raise ValueError("node_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if int(cfg.block_interval_ms) < 250:
        raise ValueError(f"block_interval_ms must be >= 250; got: {cfg.block_interval_ms}")

    if int(cfg.max_txs_per_block) <= 0:
        raise ValueError(f"max_txs_per_block must be > 0; got: {cfg.max_txs_per_block}")

    if int(cfg.start_block) < 0:
        raise ValueError(f"start_block must be >= 0; got: {cfg.start_block}")

    for name in ("blocks_per_cycle", "treasury_distribution_period", "prize_expiration_cycles"):
        if int(getattr(cfg, name)) <= 0:
            raise ValueError(f"{name} must be > 0; got: {getattr(cfg, name)}")

    for name in ("min_allocation", "reward_claim_fee"):
        if int(getattr(cfg, name)) < 0:
            raise ValueError(f"{name} must be >= 0; got: {getattr(cfg, name)}")

    pct = cfg.allocation_percentages
    if set(pct) != set(ALLOCATION_BUCKETS):
        raise ValueError(f"allocation_percentages must have keys {list(ALLOCATION_BUCKETS)}; got: {sorted(pct)}")
    if any(int(v) < 0 for v in pct.values()) or sum(int(v) for v in pct.values()) != 100:
        raise ValueError(f"allocation_percentages must be non-negative and sum to 100; got: {pct}")

    for principal, amount in cfg.genesis_balances.items():
        if not principal.strip() or int(amount) < 0:
            raise ValueError(f"genesis_balances entry invalid: {principal!r}={amount!r}")

    if mode == "prod" and cfg.genesis_balances:
        raise ValueError("genesis_balances is only allowed in dev/testnet mode")


def default_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id="constellation-dev",
        node_id="local-node",
        mode="prod",
        db_path="./data/constellation.db",
        block_interval_ms=10_000,
        max_txs_per_block=500,
        api_host="127.0.0.1",
        api_port=8000,
        log_level="INFO",
        auto_record_winner=True,
        auto_distribute_treasury=False,
        manager="",
        start_block=START_BLOCK,
        blocks_per_cycle=DEFAULT_BLOCKS_PER_CYCLE,
        min_allocation=DEFAULT_MIN_ALLOCATION,
        reward_claim_fee=DEFAULT_REWARD_CLAIM_FEE,
        treasury_distribution_period=DEFAULT_TREASURY_DISTRIBUTION_PERIOD,
        prize_expiration_cycles=DEFAULT_PRIZE_EXPIRATION_CYCLES,
        allocation_percentages=dict(DEFAULT_ALLOCATION_PERCENTAGES),
        genesis_balances={},
    )


def chain_config_from_json(raw: Json) -> ChainConfig:
    if not isinstance(raw, dict):
        raise ValueError("chain config must be a JSON object")

    d = default_chain_config()
    game = raw.get("game") if isinstance(raw.get("game"), dict) else {}

    return ChainConfig(
        chain_id=_as_str(raw.get("chain_id"), d.chain_id),
        node_id=_as_str(raw.get("node_id"), d.node_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        block_interval_ms=_as_int(raw.get("block_interval_ms"), d.block_interval_ms),
        max_txs_per_block=_as_int(raw.get("max_txs_per_block"), d.max_txs_per_block),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        auto_record_winner=_as_bool(raw.get("auto_record_winner"), d.auto_record_winner),
        auto_distribute_treasury=_as_bool(raw.get("auto_distribute_treasury"), d.auto_distribute_treasury),
        manager=_as_str(game.get("manager"), d.manager).strip(),
        start_block=_as_int(game.get("start_block"), d.start_block),
        blocks_per_cycle=_as_int(game.get("blocks_per_cycle"), d.blocks_per_cycle),
        min_allocation=_as_int(game.get("min_allocation"), d.min_allocation),
        reward_claim_fee=_as_int(game.get("reward_claim_fee"), d.reward_claim_fee),
        treasury_distribution_period=_as_int(game.get("treasury_distribution_period"), d.treasury_distribution_period),
        prize_expiration_cycles=_as_int(game.get("prize_expiration_cycles"), d.prize_expiration_cycles),
        allocation_percentages=_as_int_map(game.get("allocation_percentages"), d.allocation_percentages),
        genesis_balances=_as_int_map(game.get("genesis_balances"), d.genesis_balances),
    )


def read_chain_config_file(path: str) -> ChainConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return chain_config_from_json(raw)


def _overlay_env(cfg: ChainConfig) -> ChainConfig:
    """CONSTELLATION_* environment variables win over the config file."""
    env = os.environ
    return replace(
        cfg,
        chain_id=_as_str(env.get("CONSTELLATION_CHAIN_ID"), cfg.chain_id),
        node_id=_as_str(env.get("CONSTELLATION_NODE_ID"), cfg.node_id),
        mode=_as_str(env.get("CONSTELLATION_MODE"), cfg.mode).strip().lower(),
        db_path=_as_str(env.get("CONSTELLATION_DB_PATH"), cfg.db_path),
        block_interval_ms=_as_int(env.get("CONSTELLATION_BLOCK_INTERVAL_MS"), cfg.block_interval_ms),
        max_txs_per_block=_as_int(env.get("CONSTELLATION_MAX_TXS_PER_BLOCK"), cfg.max_txs_per_block),
        api_host=_as_str(env.get("CONSTELLATION_API_HOST"), cfg.api_host),
        api_port=_as_int(env.get("CONSTELLATION_API_PORT"), cfg.api_port),
        log_level=_as_str(env.get("CONSTELLATION_LOG_LEVEL"), cfg.log_level),
        auto_record_winner=_as_bool(env.get("CONSTELLATION_AUTO_RECORD_WINNER"), cfg.auto_record_winner),
        auto_distribute_treasury=_as_bool(
            env.get("CONSTELLATION_AUTO_DISTRIBUTE_TREASURY"), cfg.auto_distribute_treasury
        ),
        manager=_as_str(env.get("CONSTELLATION_MANAGER"), cfg.manager).strip(),
    )


def load_chain_config(*, config_path: Optional[str] = None) -> ChainConfig:
    p = config_path or os.environ.get("CONSTELLATION_CHAIN_CONFIG_PATH")
    cfg = read_chain_config_file(p) if p else default_chain_config()
    cfg = _overlay_env(cfg)
    validate_chain_config(cfg)
    return cfg


__all__ = [
    "ChainConfig",
    "chain_config_from_json",
    "default_chain_config",
    "load_chain_config",
    "read_chain_config_file",
    "validate_chain_config",
]
