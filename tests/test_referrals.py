from __future__ import annotations

import pytest

from conftest import DAY, E, START, approve_all, tx
from ultrastake.ledger.constants import ZERO_ADDRESS
from ultrastake.runtime.errors import AuthorizationError, StateGateError, TooEarlyError, ValidationError


@pytest.fixture
def two_pools(make_engine):
    return make_engine(pools=[{"stake_token": "TKN", "alloc_point": 2, "fee_bps": 0}])


def _stake_and_harvest(engine, clock, user: str, pids=(0,)) -> None:
    approve_all(engine, users=[user])
    clock.set(START)
    for pid in pids:
        engine.apply(tx("DEPOSIT", user, pid=pid, amount=10 * E))
    clock.set(START + DAY)
    for pid in pids:
        engine.apply(tx("HARVEST", user, pid=pid))


def test_unreferred_bonus_goes_to_protocol_bucket(engine, clock) -> None:
    _stake_and_harvest(engine, clock, "user1")
    bonus = DAY * E * 4 // 100
    assert engine.referral_details(ZERO_ADDRESS, 0) == bonus

    # The protocol bucket has no await.
    out = engine.apply(tx("GET_REFERRAL_REWARD_FOR", "owner", referrer=ZERO_ADDRESS))
    assert out["amount"] == bonus
    assert engine.balance_of("ULTRA", "owner") == bonus
    assert engine.referral_details(ZERO_ADDRESS, 0) == 0


def test_owner_sweep_waits_for_referrer_inactivity(engine, clock) -> None:
    _stake_and_harvest(engine, clock, "user2")
    bonus = DAY * E * 4 // 100
    assert engine.referral_details("user1", 0) == bonus
    assert engine.view().referral_record("user1", 0)["last_accrual_time"] == START + DAY

    with pytest.raises(TooEarlyError) as e:
        engine.apply(tx("GET_REFERRAL_REWARD_FOR", "owner", referrer="user1"))
    assert e.value.reason == "referral_await_not_passed"
    assert e.value.details["ready_at"] == START + 2 * DAY

    with pytest.raises(AuthorizationError):
        engine.apply(tx("GET_REFERRAL_REWARD_FOR", "user3", referrer="user1"))

    clock.set(START + 2 * DAY)
    out = engine.apply(tx("GET_REFERRAL_REWARD_FOR", "owner", referrer="user1"))
    assert out["amount"] == bonus
    assert engine.balance_of("ULTRA", "owner") == bonus
    assert engine.referral_details("user1", 0) == 0


def test_claim_can_target_one_pool(two_pools, clock) -> None:
    engine = two_pools
    _stake_and_harvest(engine, clock, "user2", pids=(0, 1))
    per_pool = DAY * E // 2 * 4 // 100
    assert engine.referral_details("user1", 0) == per_pool
    assert engine.referral_details("user1", 1) == per_pool

    out = engine.apply(tx("GET_REFERRAL_REWARD", "user1", pid=1))
    assert out["amount"] == per_pool
    assert engine.referral_details("user1", 1) == 0
    assert engine.referral_details("user1", 0) == per_pool

    out = engine.apply(tx("GET_REFERRAL_REWARD", "user1"))
    assert out["amount"] == per_pool
    assert engine.balance_of("ULTRA", "user1") == 75 * E + 2 * per_pool


def test_claim_for_unknown_pool(engine) -> None:
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("GET_REFERRAL_REWARD", "user1", pid=7))
    assert e.value.reason == "pool_not_found"


def test_referral_percent_zero_disables_bonus(engine, clock) -> None:
    engine.apply(tx("SET_REFERRAL_PERCENT", "owner", bps=0))
    _stake_and_harvest(engine, clock, "user2")
    assert engine.referral_details("user1", 0) == 0
    assert engine.view().referral_record("user1", 0)["last_accrual_time"] == 0


def test_referral_settings_are_owner_only(engine) -> None:
    for t, payload in (
        ("SET_REFERRAL_PERCENT", {"bps": 100}),
        ("SET_MIN_REFERRAL_REWARD", {"amount": 1}),
        ("SET_REFERRAL_OWNER_WITHDRAW_AWAIT", {"seconds": 1}),
    ):
        with pytest.raises(AuthorizationError):
            engine.apply(tx(t, "user1", **payload))

    engine.apply(tx("SET_REFERRAL_OWNER_WITHDRAW_AWAIT", "owner", seconds=0))
    assert engine.view().params["referral_owner_withdraw_await"] == 0


def test_register_referrer_rules(engine) -> None:
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("REFERRAL_REGISTER", "user1", referrer="user1"))
    assert e.value.reason == "self_referral"

    with pytest.raises(ValidationError) as e:
        engine.apply(tx("REFERRAL_REGISTER", "user1", referrer=ZERO_ADDRESS))
    assert e.value.reason == "zero_address"

    with pytest.raises(StateGateError) as e:
        engine.apply(tx("REFERRAL_REGISTER", "user2", referrer="user3"))
    assert e.value.reason == "referrer_already_set"

    # user3 -> user2 -> user1 already.
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("REFERRAL_REGISTER", "user1", referrer="user3"))
    assert e.value.reason == "referral_cycle"
    assert engine.view().referrer_of("user1") is None

    engine.apply(tx("REFERRAL_REGISTER", "user1", referrer="user4"))
    assert engine.view().referrer_of("user1") == "user4"
