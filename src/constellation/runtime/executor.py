from __future__ import annotations

import copy
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from constellation.api.structured_logging import log_event
from constellation.ledger.constants import CONTRACT_ACCOUNT_ID
from constellation.ledger.schedule import cycle_id_at, default_schedule
from constellation.runtime.chain_config import ChainConfig
from constellation.runtime.domain_apply import ApplyError, apply_tx_atomic
from constellation.runtime.mempool import PersistentMempool
from constellation.runtime.metrics import inc_counter, set_gauge
from constellation.runtime.sqlite_db import SqliteDB, SqliteLedgerStore, _canon_json
from constellation.runtime.state_invariants import ensure_state
from constellation.runtime.tx_admission import admit_tx
from constellation.runtime.tx_admission_types import TxEnvelope
from constellation.runtime.tx_id import compute_tx_id_from_envelope
from constellation.tx.canon import TxIndex, load_tx_index

Json = Dict[str, Any]

log = logging.getLogger("constellation.executor")

# Receipt statuses, named after the host-chain statuses clients already poll for.
STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_ABORTED = "abort_by_response"
STATUS_UNKNOWN = "unknown"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


@dataclass
class ExecutorMeta:
    ok: bool
    error: str = ""
    height: int = 0
    block_id: str = ""
    applied_count: int = 0
    failed_count: int = 0


class ExecutorError(RuntimeError):
    pass


class ConstellationExecutor:
    """Single-node executor: admission, mempool, block production, receipts.

    All ledger mutation happens in produce_block() under the executor lock;
    submit_tx() only reads state to admit into the mempool.
    """

    def __init__(self, *, cfg: ChainConfig, tx_index: Optional[TxIndex] = None) -> None:
        self.cfg = cfg
        self.node_id = str(cfg.node_id)
        self.chain_id = str(cfg.chain_id)
        self.db_path = str(cfg.db_path)

        self._lock = threading.RLock()
        self._system_seq = _now_ms()

        self._db = SqliteDB(path=self.db_path)
        self._db.init_schema()

        self._ledger_store = SqliteLedgerStore(db=self._db)
        self._mempool = PersistentMempool(db=self._db)

        if self._ledger_store.exists():
            self.state = self._ledger_store.read()
        else:
            self.state = self._initial_state()
            self._ledger_store.write(self.state)

        st_chain_id = str(self.state.get("chain_id") or "").strip()
        if st_chain_id != self.chain_id:
            raise ExecutorError(
                f"chain_id mismatch: db={st_chain_id!r} executor={self.chain_id!r}. Refuse to start."
            )

        self._check_db_consistency_fail_closed()

        ensure_state(self.state)
        self.tx_index: TxIndex = tx_index or load_tx_index()

        # Health hooks read by /v1/status; the block loop keeps them current.
        self.block_loop_running = False
        self.block_loop_unhealthy = False
        self.block_loop_last_error = ""

    def _initial_state(self) -> Json:
        c = self.cfg
        st: Json = {
            "chain_id": self.chain_id,
            "height": 0,
            "tip": "",
            "created_ms": _now_ms(),
        }
        ensure_state(st)

        game_cfg = st["game"]["config"]
        game_cfg.update(
            {
                "manager": c.manager,
                "allocation_percentages": dict(c.allocation_percentages),
                "min_allocation": int(c.min_allocation),
                "blocks_per_cycle": int(c.blocks_per_cycle),
                "reward_claim_fee": int(c.reward_claim_fee),
                "treasury_distribution_period": int(c.treasury_distribution_period),
                "prize_expiration_cycles": int(c.prize_expiration_cycles),
                "start_block": int(c.start_block),
            }
        )
        st["game"]["schedule"] = default_schedule(start_block=int(c.start_block), blocks_per_cycle=int(c.blocks_per_cycle))
        st["game"]["last_cycle_id"] = cycle_id_at(st["game"]["schedule"], 0)

        st["balances"][CONTRACT_ACCOUNT_ID] = 0
        for principal, amount in sorted(c.genesis_balances.items()):
            st["balances"][principal] = int(st["balances"].get(principal, 0)) + int(amount)

        log_event(log, "genesis", chain_id=self.chain_id, manager=c.manager, funded=len(c.genesis_balances))
        return st

    def _check_db_consistency_fail_closed(self) -> None:
        """Refuse to start if the snapshot and the block table disagree."""
        st_h = _safe_int(self.state.get("height"), 0)
        with self._db.connection() as con:
            row = con.execute("SELECT MAX(height) AS h FROM blocks;").fetchone()
            max_h = int(row["h"]) if (row is not None and row["h"] is not None) else 0

        if st_h != max_h:
            raise ExecutorError(
                f"db_invariant_violation: snapshot height {st_h} but max persisted block height {max_h}. "
                "Refuse to start."
            )

    # ----------------------------
    # Public accessors
    # ----------------------------

    @property
    def mempool(self) -> PersistentMempool:
        return self._mempool

    def read_state(self) -> Json:
        with self._lock:
            return self.state

    def snapshot(self) -> Json:
        with self._lock:
            return copy.deepcopy(self.state)

    # ----------------------------
    # Tx submission
    # ----------------------------

    def submit_tx(self, env: Json) -> Json:
        if not isinstance(env, dict):
            return {"ok": False, "error": "bad_env", "reason": "not_object", "details": {}}

        with self._lock:
            # A queued envelope would fail the nonce check on resubmission;
            # hand it to the mempool, which dedupes or flags a tx_id conflict.
            try:
                queued = TxEnvelope.from_json(env)
            except (TypeError, ValueError):
                queued = None
            if queued is not None and queued.signer and queued.tx_type and not queued.system:
                queued_id = compute_tx_id_from_envelope(self.chain_id, queued)
                if self._mempool.contains(queued_id):
                    return self._mempool.add(tx_id=queued_id, env=queued.to_json())

            signer = str(env.get("signer") or "").strip()
            verdict, env_obj = admit_tx(
                env,
                self.state,
                self.tx_index,
                pending_nonce=self._mempool.max_nonce(signer) if signer else 0,
            )
            if not verdict.ok or env_obj is None:
                inc_counter("tx_rejected_total", 1)
                return {"ok": False, "error": verdict.code, "reason": verdict.reason, "details": verdict.details or {}}

            tx_id = compute_tx_id_from_envelope(self.chain_id, env_obj)
            res = self._mempool.add(tx_id=tx_id, env=env_obj.to_json())

        if res.get("ok"):
            inc_counter("tx_admitted_total", 1)
            set_gauge("mempool_size", self._mempool.size())
            log_event(log, "tx_admitted", tx_id=tx_id, tx_type=env_obj.tx_type, signer=env_obj.signer)
        return res

    def submit_system_tx(self, tx_type: str, payload: Json) -> Json:
        """Queue an executor-originated tx (faucet mints, winner records)."""
        with self._lock:
            self._system_seq += 1
            env = TxEnvelope(
                tx_type=str(tx_type).strip().upper(),
                signer=str(self.state["params"].get("system_signer") or "SYSTEM"),
                nonce=self._system_seq,
                payload=dict(payload),
                system=True,
            )
            tx_id = compute_tx_id_from_envelope(self.chain_id, env)
            return self._mempool.add(tx_id=tx_id, env=env.to_json())

    # ----------------------------
    # Block production
    # ----------------------------

    def _block_id(self, *, height: int, prev: str, tx_ids: List[str], ts_ms: int) -> str:
        header = {"chain_id": self.chain_id, "height": height, "prev_block_id": prev, "tx_ids": tx_ids, "ts_ms": ts_ms}
        return hashlib.sha256(_canon_json(header).encode("utf-8")).hexdigest()

    @staticmethod
    def _apply_one(working: Json, env: TxEnvelope, tx_id: str, height: int) -> Json:
        try:
            result = apply_tx_atomic(working, env)
        except ApplyError as e:
            return {
                "tx_id": tx_id,
                "height": height,
                "tx_type": env.tx_type,
                "signer": env.signer,
                "status": STATUS_ABORTED,
                "error": e.to_json(),
            }
        return {
            "tx_id": tx_id,
            "height": height,
            "tx_type": env.tx_type,
            "signer": env.signer,
            "status": STATUS_SUCCESS,
            "result": result or {},
        }

    # Upper bound on catch-up winner records injected into a single block.
    MAX_WINNER_BACKFILL = 64

    def _system_env(self, working: Json, tx_type: str, payload: Json, height: int) -> TxEnvelope:
        return TxEnvelope(
            tx_type=tx_type,
            signer=str(working["params"].get("system_signer") or "SYSTEM"),
            nonce=height,
            payload=payload,
            system=True,
        )

    def _cycle_boundary_receipts(self, working: Json, *, prev_height: int, seed: str, height: int) -> List[Json]:
        """SYSTEM txs for cycles closed since the last block.

        game["last_cycle_id"] is the cycle that was current when the previous
        block started, under the schedule in force then. Every cycle from it
        up to the new current cycle gets a winner, so a CYCLE_LENGTH_SET that
        jumps the cycle id forward cannot strand the cycle it interrupted.
        """
        g = working["game"]
        sched = g["schedule"]
        current = cycle_id_at(sched, height)
        last = _safe_int(g.get("last_cycle_id"), cycle_id_at(sched, prev_height))
        if last >= current:
            g["last_cycle_id"] = current
            return []

        receipts: List[Json] = []
        if self.cfg.auto_record_winner:
            if not seed:
                # No block hash to seed from yet; retry on the next block.
                return []
            upto = min(current, last + self.MAX_WINNER_BACKFILL)
            for cid in range(last, upto):
                cycle = working["cycles"].get(str(cid))
                if isinstance(cycle, dict) and cycle.get("winning_constellation") is not None:
                    continue
                cycle_seed = hashlib.sha256(f"{seed}:{cid}".encode("utf-8")).hexdigest()
                env = self._system_env(working, "CYCLE_WINNER_RECORD", {"cycle_id": cid, "seed": cycle_seed}, height)
                receipts.append(self._apply_one(working, env, compute_tx_id_from_envelope(self.chain_id, env), height))
            g["last_cycle_id"] = upto
            if upto < current:
                return receipts
        else:
            g["last_cycle_id"] = current

        if self.cfg.auto_distribute_treasury:
            period = _safe_int(g["config"].get("treasury_distribution_period"), 0)
            cycle = working["cycles"].get(str(current))
            distributed = isinstance(cycle, dict) and bool(cycle.get("treasury_distributed", False))
            if period > 0 and _safe_int(g.get("treasury"), 0) // period > 0 and not distributed:
                env = self._system_env(working, "TREASURY_DISTRIBUTE", {"cycle_id": current}, height)
                receipts.append(self._apply_one(working, env, compute_tx_id_from_envelope(self.chain_id, env), height))

        return receipts

    def produce_block(self, *, max_txs: Optional[int] = None) -> ExecutorMeta:
        """Advance the height by one and apply queued txs in arrival order.

        Block row, receipts, mempool deletions and the ledger snapshot are
        persisted in one write transaction.
        """
        limit = int(max_txs or self.cfg.max_txs_per_block)
        with self._lock:
            h0 = _safe_int(self.state.get("height"), 0)
            prev = str(self.state.get("tip") or "")
            height = h0 + 1

            working = copy.deepcopy(self.state)
            working["height"] = height

            receipts: List[Json] = self._cycle_boundary_receipts(working, prev_height=h0, seed=prev, height=height)

            items = self._mempool.peek(limit=limit)
            for item in items:
                env = TxEnvelope.from_json(item["env"])
                receipts.append(self._apply_one(working, env, item["tx_id"], height))

            mempool_ids = [item["tx_id"] for item in items]
            ts_ms = _now_ms()
            tx_ids = [r["tx_id"] for r in receipts]
            block_id = self._block_id(height=height, prev=prev, tx_ids=tx_ids, ts_ms=ts_ms)
            working["tip"] = block_id

            block = {
                "height": height,
                "block_id": block_id,
                "prev_block_id": prev,
                "ts_ms": ts_ms,
                "tx_ids": tx_ids,
            }

            try:
                with self._db.write_tx() as con:
                    con.execute(
                        "INSERT INTO blocks(height, block_id, block_json, created_ts_ms) VALUES(?,?,?,?);",
                        (height, block_id, _canon_json(block), ts_ms),
                    )
                    for r in receipts:
                        con.execute(
                            """
                            INSERT OR REPLACE INTO tx_receipts(tx_id, height, status, receipt_json, created_ts_ms)
                            VALUES(?, ?, ?, ?, ?);
                            """,
                            (r["tx_id"], height, r["status"], _canon_json(r), ts_ms),
                        )
                    PersistentMempool.delete_on(con, mempool_ids)
                    SqliteLedgerStore.write_on(con, working)
            except Exception as e:
                inc_counter("block_commit_failed_total", 1)
                log.exception("block commit failed height=%s", height)
                return ExecutorMeta(ok=False, error=f"commit_failed:{type(e).__name__}", height=h0, block_id=prev)

            self.state = working

        applied = sum(1 for r in receipts if r["status"] == STATUS_SUCCESS)
        failed = len(receipts) - applied
        inc_counter("blocks_produced_total", 1)
        inc_counter("txs_applied_total", applied)
        inc_counter("txs_failed_total", failed)
        set_gauge("height", height)
        set_gauge("mempool_size", self._mempool.size())
        if receipts:
            log_event(log, "block_produced", height=height, block_id=block_id, applied=applied, failed=failed)

        return ExecutorMeta(ok=True, height=height, block_id=block_id, applied_count=applied, failed_count=failed)

    # ----------------------------
    # Receipts + history
    # ----------------------------

    def get_receipt(self, tx_id: str) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT receipt_json FROM tx_receipts WHERE tx_id=? LIMIT 1;", (str(tx_id),)).fetchone()
        if row is None:
            return None
        return json.loads(str(row["receipt_json"]))

    def tx_status(self, tx_id: str) -> Json:
        receipt = self.get_receipt(tx_id)
        if receipt is not None:
            return dict(receipt)
        if self._mempool.contains(tx_id):
            return {"tx_id": str(tx_id), "status": STATUS_PENDING}
        return {"tx_id": str(tx_id), "status": STATUS_UNKNOWN}

    def get_block_by_height(self, height: int) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT block_json FROM blocks WHERE height=? LIMIT 1;", (int(height),)).fetchone()
        if row is None:
            return None
        return json.loads(str(row["block_json"]))

    def get_latest_block(self) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT block_json FROM blocks ORDER BY height DESC LIMIT 1;").fetchone()
        if row is None:
            return None
        return json.loads(str(row["block_json"]))


__all__ = [
    "ConstellationExecutor",
    "ExecutorError",
    "ExecutorMeta",
    "STATUS_ABORTED",
    "STATUS_PENDING",
    "STATUS_SUCCESS",
    "STATUS_UNKNOWN",
]
