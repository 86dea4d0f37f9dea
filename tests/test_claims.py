from __future__ import annotations

import pytest

from constellation.ledger.constants import CONTRACT_ACCOUNT_ID
from constellation.runtime.apply.claims import compute_payout
from constellation.runtime.domain_apply import ApplyError, apply_tx
from constellation.runtime.state_invariants import ensure_state
from constellation.runtime.tx_admission_types import TxEnvelope

CYCLE_LEN = 144


def _env(tx_type: str, signer: str, payload: dict, nonce: int = 1) -> TxEnvelope:
    return TxEnvelope(tx_type=tx_type, signer=signer, nonce=nonce, payload=payload, sig="")


def _played_cycle() -> dict:
    """Cycle 0 with alice (300k) and bob (900k) on #3, carol (300k) on #5."""
    st: dict = {}
    ensure_state(st)
    st["game"]["config"]["manager"] = "mgr"
    st["balances"].update({"alice": 1_000_000, "bob": 3_000_000, "carol": 1_000_000, CONTRACT_ACCOUNT_ID: 0})

    apply_tx(st, _env("ALLOCATE", "alice", {"amount": 1_000_000, "constellation": 3}))
    apply_tx(st, _env("ALLOCATE", "bob", {"amount": 3_000_000, "constellation": 3}))
    apply_tx(st, _env("ALLOCATE", "carol", {"amount": 1_000_000, "constellation": 5}))
    return st


def _finish_and_record(st: dict, winner: int = 3) -> None:
    st["height"] = CYCLE_LEN
    apply_tx(st, _env("CYCLE_WINNER_RECORD", "mgr", {"cycle_id": 0, "constellation": winner}))


def test_compute_payout_is_pro_rata_and_capped() -> None:
    assert compute_payout(remaining_prize=1_500_000, user_allocation=300_000, remaining_allocation=1_200_000) == 375_000
    assert compute_payout(remaining_prize=10, user_allocation=5, remaining_allocation=0) == 10
    assert compute_payout(remaining_prize=0, user_allocation=5, remaining_allocation=5) == 0
    assert compute_payout(remaining_prize=100, user_allocation=500, remaining_allocation=100) == 100


def test_claim_before_cycle_end_fails() -> None:
    st = _played_cycle()
    st["height"] = CYCLE_LEN - 1
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REWARD", "alice", {"cycle_id": 0}))
    assert e.value.code == "cycle_not_finished"
    assert e.value.number == 4121


def test_claim_without_recorded_winner_fails() -> None:
    st = _played_cycle()
    st["height"] = CYCLE_LEN
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REWARD", "alice", {"cycle_id": 0}))
    assert e.value.code == "winner_not_recorded"
    assert e.value.number == 4125


def test_winners_share_the_prize_pro_rata() -> None:
    st = _played_cycle()
    _finish_and_record(st)

    a = apply_tx(st, _env("CLAIM_REWARD", "alice", {"cycle_id": 0}, nonce=2))
    assert a["payout"] == 375_000
    assert a["fee"] == 100
    assert a["net"] == 374_900
    assert st["balances"]["alice"] == 374_900

    b = apply_tx(st, _env("CLAIM_REWARD", "bob", {"cycle_id": 0}, nonce=2))
    assert b["payout"] == 1_125_000

    cycle = st["cycles"]["0"]
    assert cycle["prize_claimed"] == cycle["prize"] == 1_500_000
    assert cycle["allocation_claimed"] == 1_200_000
    # 250k team fee per 1M allocated, plus two claim fees.
    assert st["game"]["team_fee"] == 1_250_000 + 200


def test_second_claim_fails_with_already_claimed() -> None:
    st = _played_cycle()
    _finish_and_record(st)
    apply_tx(st, _env("CLAIM_REWARD", "alice", {"cycle_id": 0}, nonce=2))

    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REWARD", "alice", {"cycle_id": 0}, nonce=3))
    assert e.value.code == "already_claimed"
    assert e.value.number == 4122


def test_losing_constellation_has_no_allocation() -> None:
    st = _played_cycle()
    _finish_and_record(st)
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REWARD", "carol", {"cycle_id": 0}, nonce=2))
    assert e.value.code == "no_allocation"


def test_user_without_any_allocation_has_no_allocation() -> None:
    st = _played_cycle()
    _finish_and_record(st)
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REWARD", "dave", {"cycle_id": 0}))
    assert e.value.code == "no_allocation"
    assert e.value.number == 4123


def test_claim_after_prize_recovered_reports_empty_pool() -> None:
    st = _played_cycle()
    _finish_and_record(st)
    st["height"] = CYCLE_LEN * 11
    apply_tx(st, _env("RECOVER_EXPIRED_PRIZES", "mgr", {"cycle_id": 0}, nonce=2))

    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REWARD", "alice", {"cycle_id": 0}, nonce=2))
    assert e.value.code == "prize_pool_empty"
    assert e.value.number == 4124


def test_fee_never_exceeds_payout() -> None:
    st = _played_cycle()
    st["game"]["config"]["reward_claim_fee"] = 10_000_000
    _finish_and_record(st)

    out = apply_tx(st, _env("CLAIM_REWARD", "alice", {"cycle_id": 0}, nonce=2))
    assert out["fee"] == out["payout"]
    assert out["net"] == 0
    assert st["balances"]["alice"] == 0


def test_referral_claim_pays_and_resets() -> None:
    st = _played_cycle()
    before = st["balances"][CONTRACT_ACCOUNT_ID]

    out = apply_tx(st, _env("CLAIM_REFERRAL_REWARD", "bob", {}, nonce=2))
    assert out["amount"] == 150_000
    assert st["balances"]["bob"] == 150_000
    assert st["balances"][CONTRACT_ACCOUNT_ID] == before - 150_000
    assert st["referral_rewards"]["bob"]["amount"] == 0

    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REFERRAL_REWARD", "bob", {}, nonce=3))
    assert e.value.code == "precondition_failed"


def test_referral_claim_without_record_is_not_found() -> None:
    st = _played_cycle()
    with pytest.raises(ApplyError) as e:
        apply_tx(st, _env("CLAIM_REFERRAL_REWARD", "zed", {}))
    assert e.value.code == "not_found"
    assert e.value.number == 404


def test_referral_reward_records_block_update() -> None:
    st: dict = {}
    ensure_state(st)
    st["height"] = 42
    st["balances"]["alice"] = 1_000_000
    apply_tx(st, _env("ALLOCATE", "alice", {"amount": 1_000_000, "constellation": 0, "referrer": "rita"}))
    assert st["referral_rewards"]["rita"] == {"amount": 50_000, "block_update": 42}
