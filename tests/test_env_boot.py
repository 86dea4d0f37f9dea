from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

import constellation.env as env_mod
from constellation.runtime.executor_boot import build_executor


def test_dotenv_loaded_once_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / ".env"
    p.write_text("CONSTELLATION_TEST_A=from-file\nCONSTELLATION_TEST_B=from-file\n", encoding="utf-8")
    monkeypatch.setattr(env_mod, "_LOADED", False)
    monkeypatch.setenv("CONSTELLATION_TEST_A", "from-shell")
    monkeypatch.delenv("CONSTELLATION_TEST_B", raising=False)

    assert env_mod.load_dotenv_if_present(str(p)) is True
    assert env_mod.load_dotenv_if_present(str(p)) is False

    assert os.environ["CONSTELLATION_TEST_A"] == "from-shell"
    assert os.environ["CONSTELLATION_TEST_B"] == "from-file"
    monkeypatch.delenv("CONSTELLATION_TEST_B", raising=False)


def test_missing_dotenv_is_fine(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(env_mod, "_LOADED", False)
    assert env_mod.load_dotenv_if_present(str(tmp_path / "nope.env")) is False


def test_build_executor_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "chain.json"
    cfg_path.write_text(
        json.dumps({"chain_id": "boot-test", "mode": "dev", "game": {"manager": "mgr", "genesis_balances": {"alice": 9}}}),
        encoding="utf-8",
    )
    monkeypatch.setenv("CONSTELLATION_CHAIN_CONFIG_PATH", str(cfg_path))
    monkeypatch.setenv("CONSTELLATION_DB_PATH", str(tmp_path / "db" / "boot.db"))

    ex = build_executor()
    st = ex.read_state()
    assert st["chain_id"] == "boot-test"
    assert st["balances"]["alice"] == 9
    assert st["game"]["config"]["manager"] == "mgr"
