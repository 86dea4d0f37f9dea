# src/constellation/tx/canon.py
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, TypedDict

import yaml

_ORIGINS = {"USER", "MANAGER", "SYSTEM"}

DEFAULT_CANON_PATH = Path(__file__).with_name("tx_canon.yaml")


class CanonError(RuntimeError):
    pass


class CanonTxType(TypedDict, total=False):
    """
    Canonical TxType entry.

    total=False so we can carry extra forward-compatible fields
    while validating required fields at load-time.
    """
    id: int
    name: str
    domain: str
    origin: str
    payload: List[str]
    notes: str


@dataclass(frozen=True)
class TxIndex:
    """Normalized TxType index."""

    tx_types: List[CanonTxType]
    by_name: Dict[str, CanonTxType]
    by_id: Dict[int, CanonTxType]
    meta: Dict[str, Any]
    source_sha256: str

    def get(self, name: str) -> Optional[CanonTxType]:
        return self.by_name.get(str(name or "").strip().upper())

    def get_by_id(self, tx_id: int) -> Optional[CanonTxType]:
        return self.by_id.get(int(tx_id))

    def names(self) -> List[str]:
        return [t["name"] for t in self.tx_types]

    @classmethod
    def load_from_file(cls, path: str | Path) -> "TxIndex":
        p = Path(path)
        if not p.exists():
            raise CanonError(f"canon artifact not found: {p}")
        return load_tx_index_yaml(p.read_bytes(), source=str(p))


def _validate_entry(tx: Any) -> CanonTxType:
    if not isinstance(tx, dict):
        raise CanonError("tx entry must be an object")

    name = tx.get("name")
    if not isinstance(name, str) or not name.strip():
        raise CanonError("tx entry 'name' must be non-empty string")
    name = name.strip().upper()

    tx_id = tx.get("id")
    if isinstance(tx_id, bool) or not isinstance(tx_id, int):
        raise CanonError(f"tx '{name}' id must be int")

    origin = str(tx.get("origin") or "USER").strip().upper()
    if origin not in _ORIGINS:
        raise CanonError(f"tx '{name}' has unknown origin: {origin}")

    payload = tx.get("payload") or []
    if not isinstance(payload, list) or not all(isinstance(f, str) for f in payload):
        raise CanonError(f"tx '{name}' payload must be a list of field names")

    out: CanonTxType = dict(tx)  # type: ignore[assignment]
    out["name"] = name
    out["origin"] = origin
    out["payload"] = list(payload)
    return out


def load_tx_index_yaml(raw: bytes, *, source: str = "") -> TxIndex:
    """Parse a YAML canon document into a TxIndex."""
    try:
        obj = yaml.safe_load(raw.decode("utf-8"))
    except yaml.YAMLError as e:
        raise CanonError(f"failed to parse tx canon: {e}") from e

    if not isinstance(obj, dict) or not isinstance(obj.get("tx_types"), list):
        raise CanonError("tx canon must be a mapping with a 'tx_types' list")

    tx_list: List[CanonTxType] = []
    by_name: Dict[str, CanonTxType] = {}
    by_id: Dict[int, CanonTxType] = {}

    for it in obj["tx_types"]:
        tx = _validate_entry(it)
        if tx["name"] in by_name:
            raise CanonError(f"duplicate tx name in canon: {tx['name']}")
        if tx["id"] in by_id:
            raise CanonError(f"duplicate tx id in canon: {tx['id']}")
        by_name[tx["name"]] = tx
        by_id[tx["id"]] = tx
        tx_list.append(tx)

    tx_list.sort(key=lambda x: int(x["id"]))
    meta = {k: v for k, v in obj.items() if k != "tx_types"}
    if source:
        meta["_source"] = source

    return TxIndex(
        tx_types=tx_list,
        by_name=by_name,
        by_id=by_id,
        meta=meta,
        source_sha256=hashlib.sha256(raw).hexdigest(),
    )


@lru_cache(maxsize=1)
def load_tx_index() -> TxIndex:
    """Load the packaged canon once per process."""
    return TxIndex.load_from_file(DEFAULT_CANON_PATH)


__all__ = ["CanonError", "CanonTxType", "TxIndex", "load_tx_index", "load_tx_index_yaml", "DEFAULT_CANON_PATH"]
