from __future__ import annotations

import pytest

from constellation.runtime.state_invariants import ensure_state
from constellation.runtime.tx_admission import admit_tx
from constellation.testing.sigtools import deterministic_ed25519_keypair, sign_tx_dict
from constellation.tx.canon import load_tx_index


def _ledger() -> dict:
    st: dict = {}
    ensure_state(st)
    pub, _ = deterministic_ed25519_keypair(label="alice")
    st["accounts"]["alice"] = {"nonce": 4, "keys": [{"pubkey": pub, "active": True}]}
    return st


def _alloc(nonce: int = 5, **payload) -> dict:
    body = {"amount": 100, "constellation": 1}
    body.update(payload)
    return {"tx_type": "ALLOCATE", "signer": "alice", "nonce": nonce, "payload": body}


def _admit(tx: dict, ledger: dict | None = None, **kw):
    return admit_tx(tx, ledger if ledger is not None else _ledger(), load_tx_index(), **kw)


def test_signed_next_nonce_is_admitted() -> None:
    verdict, env = _admit(sign_tx_dict(_alloc()))
    assert verdict.ok, verdict
    assert env.tx_type == "ALLOCATE"


def test_nonce_must_be_exactly_next() -> None:
    for n in (4, 6):
        verdict, _ = _admit(sign_tx_dict(_alloc(nonce=n)))
        assert not verdict.ok
        assert verdict.code == "bad_nonce"
        assert verdict.details["expected"] == 5


def test_pending_nonce_allows_pipelining() -> None:
    verdict, _ = _admit(sign_tx_dict(_alloc(nonce=7)), pending_nonce=6)
    assert verdict.ok


def test_bad_signature_rejected() -> None:
    tx = sign_tx_dict(_alloc(), label="mallory")
    verdict, _ = _admit(tx)
    assert verdict.code == "bad_sig"

    tampered = sign_tx_dict(_alloc())
    tampered["payload"]["amount"] = 1_000_000
    verdict, _ = _admit(tampered)
    assert verdict.code == "bad_sig"


def test_unregistered_signer_may_only_register() -> None:
    tx = sign_tx_dict({"tx_type": "ALLOCATE", "signer": "bob", "nonce": 1, "payload": {"amount": 1, "constellation": 0}})
    verdict, _ = _admit(tx)
    assert verdict.code == "unknown_signer"

    reg = sign_tx_dict({"tx_type": "ACCOUNT_REGISTER", "signer": "bob", "nonce": 1, "payload": {}}, include_pubkey=True)
    verdict, env = _admit(reg)
    assert verdict.ok, verdict
    assert env.pubkey == deterministic_ed25519_keypair(label="bob")[0]


def test_register_signed_by_other_key_rejected() -> None:
    reg = sign_tx_dict({"tx_type": "ACCOUNT_REGISTER", "signer": "bob", "nonce": 1, "payload": {}}, label="eve")
    reg["pubkey"] = deterministic_ed25519_keypair(label="bob")[0]
    verdict, _ = _admit(reg)
    assert verdict.code == "bad_sig"


def test_register_without_pubkey_rejected() -> None:
    reg = sign_tx_dict({"tx_type": "ACCOUNT_REGISTER", "signer": "bob", "nonce": 1, "payload": {}})
    verdict, _ = _admit(reg)
    assert verdict.code == "invalid_payload"
    assert verdict.reason == "missing_pubkey"


@pytest.mark.parametrize(
    "tx,code",
    [
        ({"tx_type": "", "signer": "alice", "nonce": 5, "payload": {}}, "bad_shape"),
        ({"tx_type": "ALLOCATE", "signer": "", "nonce": 5, "payload": {}}, "bad_shape"),
        ({"tx_type": "ALLOCATE", "signer": "alice", "nonce": 0, "payload": {}}, "bad_shape"),
        ({"tx_type": "ALLOCATE", "signer": "alice", "nonce": "x", "payload": {}}, "bad_shape"),
        ({"tx_type": "WARP_DRIVE", "signer": "alice", "nonce": 5, "payload": {}}, "unknown_tx"),
        ({"tx_type": "ALLOCATE", "signer": "alice", "nonce": 5, "payload": {"amount": 1}}, "invalid_payload"),
        ({"tx_type": "ALLOCATE", "signer": "alice", "nonce": 5, "payload": {"amount": [1], "constellation": 1}}, "invalid_payload"),
    ],
)
def test_shape_errors(tx: dict, code: str) -> None:
    verdict, _ = _admit(tx)
    assert not verdict.ok
    assert verdict.code == code


def test_system_envelopes_are_never_admitted() -> None:
    verdict, _ = _admit({"tx_type": "ALLOCATE", "signer": "SYSTEM", "nonce": 1, "payload": {"amount": 1, "constellation": 1}})
    assert verdict.code == "forbidden"

    verdict, _ = _admit(sign_tx_dict({**_alloc(), "system": True}))
    assert verdict.code == "forbidden"

    mint = sign_tx_dict({"tx_type": "TOKEN_MINT", "signer": "alice", "nonce": 5, "payload": {"recipient": "alice", "amount": 1}})
    verdict, _ = _admit(mint)
    assert verdict.code == "forbidden"
    assert verdict.reason == "system_only_tx"


def test_size_limits(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONSTELLATION_MAX_TX_STRING_BYTES", "8")
    verdict, _ = _admit(sign_tx_dict(_alloc(referrer="a-very-long-referrer")))
    assert verdict.code == "invalid_payload"
    assert verdict.reason == "string_too_large"

    monkeypatch.setenv("CONSTELLATION_MAX_TX_ENVELOPE_BYTES", "64")
    verdict, env = _admit(sign_tx_dict(_alloc()))
    assert verdict.code == "tx_too_large"
    assert env is None


def test_verdict_unpacks_like_a_tuple() -> None:
    verdict, _ = _admit(sign_tx_dict(_alloc(nonce=9)))
    ok, rej = verdict
    assert ok is False
    assert rej.code == "bad_nonce"
