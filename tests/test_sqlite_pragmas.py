from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from constellation.runtime.sqlite_db import SqliteDB, SqliteLedgerStore


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONSTELLATION_MODE", "prod")
    monkeypatch.delenv("CONSTELLATION_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("CONSTELLATION_SQLITE_BUSY_TIMEOUT_MS", "1234")

    db = SqliteDB(path=str(tmp_path / "constellation.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"
        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        assert int(_pragma(con, "foreign_keys")) == 1
        # MEMORY
        assert int(_pragma(con, "temp_store")) == 2
        assert int(_pragma(con, "busy_timeout")) == 1234


def test_synchronous_follows_mode_and_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db = SqliteDB(path=str(tmp_path / "constellation.db"))

    monkeypatch.setenv("CONSTELLATION_MODE", "dev")
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1

    monkeypatch.setenv("CONSTELLATION_SQLITE_SYNCHRONOUS", "bogus")
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1

    monkeypatch.setenv("CONSTELLATION_SQLITE_SYNCHRONOUS", "extra")
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 3


def test_ledger_store_round_trip_and_rollback(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "nested" / "constellation.db")))
    assert store.exists() is False
    with pytest.raises(FileNotFoundError):
        store.read()

    store.write({"height": 3, "tip": "abc", "balances": {"alice": 5}})
    assert store.read()["balances"] == {"alice": 5}

    with pytest.raises(RuntimeError):
        with store._db.write_tx() as con:
            SqliteLedgerStore.write_on(con, {"height": 4, "tip": "def"})
            raise RuntimeError("abort")

    assert store.read()["height"] == 3
