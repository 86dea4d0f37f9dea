from __future__ import annotations

import pytest

from constellation.runtime.domain_apply import ApplyError, apply_tx
from constellation.runtime.tx_admission_types import TxEnvelope


def _env(tx_type: str, signer: str, payload: dict, *, system: bool = False, pubkey: str | None = None) -> TxEnvelope:
    return TxEnvelope(tx_type=tx_type, signer=signer, nonce=1, payload=payload, sig="", pubkey=pubkey, system=system)


def test_mint_requires_system_origin() -> None:
    st: dict = {}
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("TOKEN_MINT", "alice", {"recipient": "alice", "amount": 10}))
    assert e.value.code == "forbidden"

    with pytest.raises(ApplyError):
        apply_tx(st, _env("TOKEN_MINT", "alice", {"recipient": "alice", "amount": 10}, system=True))

    apply_tx(st, _env("TOKEN_MINT", "SYSTEM", {"recipient": "alice", "amount": 10}, system=True))
    assert st["balances"]["alice"] == 10


def test_mint_rejects_zero_amount() -> None:
    st: dict = {}
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("TOKEN_MINT", "SYSTEM", {"recipient": "alice", "amount": 0}, system=True))
    assert e.value.code == "invalid_value"


def test_register_binds_key_and_dedupes() -> None:
    st: dict = {}
    out = apply_tx(st, _env("ACCOUNT_REGISTER", "alice", {}, pubkey="aa" * 32))
    assert out["pubkey"] == "aa" * 32
    assert st["accounts"]["alice"]["keys"] == [{"pubkey": "aa" * 32, "active": True}]

    again = apply_tx(st, _env("ACCOUNT_REGISTER", "alice", {}, pubkey="aa" * 32))
    assert again["deduped"] is True
    assert len(st["accounts"]["alice"]["keys"]) == 1


def test_register_with_different_key_conflicts() -> None:
    st: dict = {}
    apply_tx(st, _env("ACCOUNT_REGISTER", "alice", {"pubkey": "aa" * 32}))
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("ACCOUNT_REGISTER", "alice", {}, pubkey="bb" * 32))
    assert e.value.code == "conflict"


def test_register_without_pubkey_rejected() -> None:
    st: dict = {}
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("ACCOUNT_REGISTER", "alice", {}))
    assert e.value.code == "invalid_payload"
