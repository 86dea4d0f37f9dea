# src/constellation/runtime/mempool.py
from __future__ import annotations

import json
import os
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from constellation.runtime.sqlite_db import SqliteDB, _canon_json

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


@dataclass
class PersistentMempool:
    """SQLite-backed mempool.

    Table schema:
      mempool(seq PK, tx_id UNIQUE, envelope_json, signer, tx_type, nonce, received_ms)

    Guarantees:
      - tx_id is derived by the caller from envelope content, never trusted from the client
      - idempotent insert: same tx_id + identical envelope is accepted
      - conflicting insert: same tx_id + different envelope is rejected
      - peek order is arrival order (seq ASC)

    Env overrides:
      - CONSTELLATION_MEMPOOL_MAX
      - CONSTELLATION_MEMPOOL_MAX_PER_SIGNER
    """

    db: SqliteDB

    max_items: int = 10_000
    max_per_signer: int = 64

    def __post_init__(self) -> None:
        self.db.init_schema()
        self.max_items = max(0, _env_int("CONSTELLATION_MEMPOOL_MAX", self.max_items))
        self.max_per_signer = max(0, _env_int("CONSTELLATION_MEMPOOL_MAX_PER_SIGNER", self.max_per_signer))

    def add(self, *, tx_id: str, env: Json) -> Json:
        signer = str(env.get("signer") or "").strip()
        tx_type = str(env.get("tx_type") or "").strip()
        if not signer or not tx_type:
            return {"ok": False, "error": "bad_env:missing_fields"}

        received_ms = _now_ms()
        env_json = _canon_json(env)

        with self.db.write_tx() as con:
            existing = con.execute("SELECT envelope_json FROM mempool WHERE tx_id=? LIMIT 1;", (tx_id,)).fetchone()
            if existing is not None:
                if str(existing["envelope_json"]) != env_json:
                    return {"ok": False, "error": "tx_id_conflict"}
                return {"ok": True, "tx_id": tx_id, "deduped": True}

            if self.max_items > 0:
                row = con.execute("SELECT COUNT(1) AS n FROM mempool;").fetchone()
                if int(row["n"]) >= self.max_items:
                    return {"ok": False, "error": "mempool_full", "details": {"max": self.max_items}}

            if self.max_per_signer > 0:
                row = con.execute("SELECT COUNT(1) AS n FROM mempool WHERE signer=?;", (signer,)).fetchone()
                if int(row["n"]) >= self.max_per_signer:
                    return {
                        "ok": False,
                        "error": "mempool_signer_quota",
                        "details": {"signer": signer, "max": self.max_per_signer},
                    }

            con.execute(
                """
                INSERT INTO mempool(tx_id, envelope_json, signer, tx_type, nonce, received_ms)
                VALUES(?, ?, ?, ?, ?, ?);
                """,
                (tx_id, env_json, signer, tx_type, int(env.get("nonce") or 0), received_ms),
            )

        return {"ok": True, "tx_id": tx_id, "received_ms": received_ms}

    def peek(self, *, limit: int = 500) -> List[Json]:
        """Oldest-first list of {"tx_id", "env"} items."""
        lim = int(limit) if int(limit) > 0 else 500
        with self.db.connection() as con:
            rows = con.execute(
                "SELECT tx_id, envelope_json FROM mempool ORDER BY seq ASC LIMIT ?;",
                (lim,),
            ).fetchall()

        out: List[Json] = []
        for r in rows:
            env = json.loads(str(r["envelope_json"]))
            if isinstance(env, dict):
                out.append({"tx_id": str(r["tx_id"]), "env": env})
        return out

    def contains(self, tx_id: str) -> bool:
        with self.db.connection() as con:
            return con.execute("SELECT 1 FROM mempool WHERE tx_id=? LIMIT 1;", (str(tx_id),)).fetchone() is not None

    def max_nonce(self, signer: str) -> int:
        with self.db.connection() as con:
            row = con.execute("SELECT MAX(nonce) AS n FROM mempool WHERE signer=?;", (str(signer),)).fetchone()
        return int(row["n"]) if row is not None and row["n"] is not None else 0

    def size(self) -> int:
        with self.db.connection() as con:
            row = con.execute("SELECT COUNT(1) AS n FROM mempool;").fetchone()
            return int(row["n"]) if row is not None else 0

    @staticmethod
    def delete_on(con: sqlite3.Connection, tx_ids: List[str]) -> None:
        for tx_id in tx_ids:
            con.execute("DELETE FROM mempool WHERE tx_id=?;", (tx_id,))

    def remove(self, tx_id: str) -> Optional[Json]:
        with self.db.write_tx() as con:
            self.delete_on(con, [str(tx_id)])
        return {"ok": True, "tx_id": str(tx_id)}
