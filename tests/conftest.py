from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

import pytest

# Ensure local "src/" takes precedence over any globally-installed "constellation" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests independent of the developer's shell environment."""
    for name in (
        "CONSTELLATION_CHAIN_CONFIG_PATH",
        "CONSTELLATION_CHAIN_ID",
        "CONSTELLATION_DB_PATH",
        "CONSTELLATION_MANAGER",
        "CONSTELLATION_MODE",
        "CONSTELLATION_BLOCK_LOOP_AUTOSTART",
        "CONSTELLATION_CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CONSTELLATION_LOG_REQUESTS", "0")


@pytest.fixture
def make_executor(tmp_path: Path) -> Callable[..., Any]:
    """Factory for a dev-mode executor on a fresh SQLite file.

    Defaults: manager "mgr", 3-block cycles, min allocation 100, fee 10,
    alice/bob/mgr funded at genesis.
    """
    from constellation.runtime.chain_config import default_chain_config
    from constellation.runtime.executor import ConstellationExecutor

    def _make(**overrides: Any) -> ConstellationExecutor:
        cfg = replace(
            default_chain_config(),
            chain_id="constellation-test",
            mode="dev",
            db_path=str(tmp_path / "constellation.db"),
            manager="mgr",
            blocks_per_cycle=3,
            min_allocation=100,
            reward_claim_fee=10,
            genesis_balances={"alice": 100_000, "bob": 100_000, "mgr": 1_000},
        )
        if overrides:
            cfg = replace(cfg, **overrides)
        return ConstellationExecutor(cfg=cfg)

    return _make
