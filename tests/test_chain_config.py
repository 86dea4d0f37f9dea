from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from constellation.runtime.chain_config import (
    chain_config_from_json,
    default_chain_config,
    load_chain_config,
    validate_chain_config,
)


def _write(tmp_path: Path, obj: dict) -> str:
    p = tmp_path / "chain.json"
    p.write_text(json.dumps(obj), encoding="utf-8")
    return str(p)


def test_defaults_are_valid_and_match_game_constants() -> None:
    cfg = default_chain_config()
    validate_chain_config(cfg)
    assert cfg.blocks_per_cycle == 144
    assert cfg.min_allocation == 1_000_000
    assert cfg.reward_claim_fee == 100
    assert cfg.allocation_percentages == {"current_cycle": 30, "treasury": 40, "team_fee": 25, "referral_reward": 5}
    assert cfg.auto_record_winner is True
    assert cfg.auto_distribute_treasury is False


def test_game_section_is_read_from_json(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "chain_id": "c1",
            "mode": "testnet",
            "db_path": str(tmp_path / "x.db"),
            "game": {
                "manager": "mgr",
                "blocks_per_cycle": 6,
                "min_allocation": 50,
                "allocation_percentages": {"current_cycle": 25, "treasury": 25, "team_fee": 25, "referral_reward": 25},
                "genesis_balances": {"alice": 1000},
            },
        },
    )
    cfg = load_chain_config(config_path=path)
    assert cfg.chain_id == "c1"
    assert cfg.mode == "testnet"
    assert cfg.manager == "mgr"
    assert cfg.blocks_per_cycle == 6
    assert cfg.min_allocation == 50
    assert cfg.genesis_balances == {"alice": 1000}


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, {"chain_id": "from-file", "game": {"manager": "a"}})
    monkeypatch.setenv("CONSTELLATION_CHAIN_ID", "from-env")
    monkeypatch.setenv("CONSTELLATION_MANAGER", "b")
    monkeypatch.setenv("CONSTELLATION_AUTO_RECORD_WINNER", "0")
    monkeypatch.setenv("CONSTELLATION_AUTO_DISTRIBUTE_TREASURY", "1")
    cfg = load_chain_config(config_path=path)
    assert cfg.chain_id == "from-env"
    assert cfg.manager == "b"
    assert cfg.auto_record_winner is False
    assert cfg.auto_distribute_treasury is True


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONSTELLATION_CHAIN_CONFIG_PATH", _write(tmp_path, {"node_id": "n7"}))
    assert load_chain_config().node_id == "n7"


@pytest.mark.parametrize(
    "change",
    [
        {"chain_id": ""},
        {"mode": "yolo"},
        {"api_port": 0},
        {"block_interval_ms": 10},
        {"blocks_per_cycle": 0},
        {"treasury_distribution_period": 0},
        {"min_allocation": -1},
        {"allocation_percentages": {"current_cycle": 50, "treasury": 50, "team_fee": 0, "referral_reward": 1}},
        {"allocation_percentages": {"current_cycle": 100}},
    ],
)
def test_invalid_configs_fail_fast(change: dict) -> None:
    with pytest.raises(ValueError):
        validate_chain_config(replace(default_chain_config(), **change))


def test_genesis_balances_forbidden_in_prod() -> None:
    with pytest.raises(ValueError):
        validate_chain_config(replace(default_chain_config(), mode="prod", genesis_balances={"alice": 1}))
    validate_chain_config(replace(default_chain_config(), mode="dev", genesis_balances={"alice": 1}))


def test_non_object_json_rejected() -> None:
    with pytest.raises(ValueError):
        chain_config_from_json([1, 2, 3])  # type: ignore[arg-type]
