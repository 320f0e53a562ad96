from __future__ import annotations

import copy

import pytest

from conftest import DAY, E, START, approve_all, base_genesis, tx
from ultrastake.ledger.constants import ENGINE_ACCOUNT, ZERO_ADDRESS
from ultrastake.runtime import metrics
from ultrastake.runtime.domain_apply import apply_tx, apply_tx_atomic
from ultrastake.runtime.errors import ApplyError, AuthorizationError, InvariantViolation, ValidationError
from ultrastake.runtime.genesis_config import build_genesis_state, genesis_from_dict
from ultrastake.runtime.state_invariants import check_staking_invariants


def _genesis_state():
    return build_genesis_state(genesis_from_dict(base_genesis()))


def test_failed_tx_leaves_engine_state_untouched(engine, clock) -> None:
    approve_all(engine, users=["user1"])
    clock.set(START)
    engine.apply(tx("DEPOSIT", "user1", pid=0, amount=10 * E))
    clock.set(START + DAY)
    before = engine.read_state()

    # The payout is minted before the allowance check fails; nothing may stick.
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("DEPOSIT", "user1", pid=0, amount=2000 * E))
    assert e.value.reason == "insufficient_allowance"

    assert engine.read_state() == before
    assert engine.receipts(10)[0]["tx_type"] == "DEPOSIT"


def test_atomic_apply_rolls_back_on_invariant_violation() -> None:
    st = _genesis_state()
    st["pools"][0]["total_staked"] = 5
    before = copy.deepcopy(st)

    with pytest.raises(InvariantViolation) as e:
        apply_tx_atomic(st, tx("MASS_UPDATE_POOLS", "user1"), now=START + 10)
    assert e.value.reason == "total_staked_mismatch"
    assert st == before

    # Non-strict mode skips the post-apply checks.
    apply_tx_atomic(st, tx("MASS_UPDATE_POOLS", "user1"), now=START + 10, strict=False)
    assert st["time"] == START + 10


def test_accumulator_must_not_move_backward() -> None:
    prev = _genesis_state()
    prev["pools"][0]["acc_reward_per_share"] = 10
    cur = copy.deepcopy(prev)
    cur["pools"][0]["acc_reward_per_share"] = 9

    with pytest.raises(InvariantViolation) as e:
        check_staking_invariants(cur, prev=prev)
    assert e.value.reason == "accumulator_decreased"


def test_alloc_point_sum_is_checked() -> None:
    st = _genesis_state()
    st["params"]["total_alloc_point"] += 1
    with pytest.raises(InvariantViolation) as e:
        check_staking_invariants(st)
    assert e.value.reason == "alloc_point_sum_mismatch"


def test_engine_custody_shortfall_is_detected() -> None:
    st = _genesis_state()
    st["fees"]["collected"] = 1
    with pytest.raises(InvariantViolation) as e:
        check_staking_invariants(st)
    assert e.value.reason == "engine_custody_shortfall"


@pytest.mark.parametrize("signer", [ENGINE_ACCOUNT, "vault:0", ZERO_ADDRESS])
def test_reserved_accounts_cannot_sign(engine, signer: str) -> None:
    with pytest.raises(AuthorizationError) as e:
        engine.apply(tx("TOKEN_TRANSFER", signer, token="ULTRA", to="user1", amount=1))
    assert e.value.reason == "reserved_account"


def test_unknown_tx_type_is_rejected(engine) -> None:
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("MINT_EVERYTHING", "owner"))
    assert e.value.reason == "unknown_tx_type"

    with pytest.raises(ApplyError) as e2:
        apply_tx(_genesis_state(), tx("MINT_EVERYTHING", "owner"))
    assert e2.value.reason == "tx_type_not_implemented"


def test_admin_txs_require_owner(engine) -> None:
    with pytest.raises(AuthorizationError) as e:
        engine.apply(tx("ADD_POOL", "user1", stake_token="TKN", alloc_point=1, fee_bps=0))
    assert e.value.reason == "not_owner"
    assert engine.pool_length() == 1

    engine.apply(tx("TRANSFER_OWNERSHIP", "owner", new_owner="user3"))
    with pytest.raises(AuthorizationError):
        engine.apply(tx("SET_REWARD_PER_SECOND", "owner", reward_per_second=0))
    engine.apply(tx("SET_REWARD_PER_SECOND", "user3", reward_per_second=0))
    assert engine.view().params["reward_per_second"] == 0


def test_unknown_pool_is_rejected(engine) -> None:
    approve_all(engine, users=["user1"])
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("DEPOSIT", "user1", pid=3, amount=E))
    assert e.value.reason == "pool_not_found"
    with pytest.raises(ValidationError):
        engine.pool_info(3)


def test_submit_reports_rejections_and_counts_them(engine) -> None:
    res = engine.submit_tx(tx("GET_FEES", "user1"))
    assert res == {"ok": False, "error": "forbidden", "reason": "not_owner", "details": res["details"]}

    res = engine.submit_tx(tx("MASS_UPDATE_POOLS", "user1"))
    assert res["ok"] is True
    assert res["seq"] == 1

    counters = metrics.snapshot()["counters"]
    assert counters["tx_rejected_total"] == 1
    assert counters["tx_applied_total"] == 1


def test_ledger_time_never_runs_backward(engine, clock) -> None:
    clock.set(START + 100)
    engine.apply(tx("MASS_UPDATE_POOLS", "user1"))
    clock.set(START)
    assert engine.now() == START + 100
    engine.apply(tx("MASS_UPDATE_POOLS", "user1"))
    assert engine.receipts(1)[0]["time"] == START + 100
