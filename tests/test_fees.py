from __future__ import annotations

import pytest

from conftest import DAY, E, START, approve_all, base_genesis, tx
from ultrastake.ledger import token
from ultrastake.ledger.constants import ENGINE_ACCOUNT, ZERO_ADDRESS
from ultrastake.runtime.apply.fees import route_payout
from ultrastake.runtime.errors import AuthorizationError, ValidationError
from ultrastake.runtime.genesis_config import build_genesis_state, genesis_from_dict


def test_odd_fee_unit_is_never_minted() -> None:
    st = build_genesis_state(genesis_from_dict(base_genesis()))
    pool = st["pools"][0]

    out = route_payout(st, pool, depositor="user1", recipient="user1", gross=101, now=START)

    assert out["fee"] == 3
    assert out["net"] == 98
    assert out["burned"] == 1
    assert out["collected"] == 1
    assert out["referral"] == 4
    assert token.balance_of(st, "ULTRA", "burn") == 1
    assert token.balance_of(st, "ULTRA", ENGINE_ACCOUNT) == 1 + 4
    assert st["fees"]["collected"] == 1
    assert st["referral_rewards"][ZERO_ADDRESS]["0"]["amount"] == 4


def test_zero_gross_mints_nothing() -> None:
    st = build_genesis_state(genesis_from_dict(base_genesis()))
    supply = st["tokens"]["ULTRA"]["total_supply"]
    out = route_payout(st, st["pools"][0], depositor="user1", recipient="user1", gross=0, now=START)
    assert out["net"] == 0
    assert st["tokens"]["ULTRA"]["total_supply"] == supply


def test_fee_exempt_depositor_gets_gross_and_no_referral(engine, clock) -> None:
    approve_all(engine, users=["user2"])
    engine.apply(tx("EXCLUDE_FROM_FEE", "owner", addresses=["user2"]))
    assert "user2" in engine.view().fee_exempt()

    clock.set(START)
    engine.apply(tx("DEPOSIT", "user2", pid=0, amount=75 * E))
    clock.set(START + DAY)
    out = engine.apply(tx("HARVEST", "user2", pid=0))

    assert out["payout"]["net"] == DAY * E
    assert engine.balance_of("ULTRA", "user2") == DAY * E
    assert engine.referral_details("user1", 0) == 0
    assert engine.fees_collected() == 0

    engine.apply(tx("INCLUDE_IN_FEE", "owner", addresses=["user2"]))
    assert "user2" not in engine.view().fee_exempt()


def test_recipient_receives_net_reward(engine, clock) -> None:
    approve_all(engine, users=["user1"])
    clock.set(START)
    engine.apply(tx("DEPOSIT", "user1", pid=0, amount=10 * E))
    clock.set(START + DAY)
    engine.apply(tx("HARVEST", "user1", pid=0, recipient="user3"))

    assert engine.balance_of("ULTRA", "user3") == 50 * E + DAY * E * 97 // 100
    assert engine.balance_of("ULTRA", "user1") == 65 * E


def test_get_fees_is_owner_only_and_drains_collected(engine, clock) -> None:
    approve_all(engine, users=["user1"])
    clock.set(START)
    engine.apply(tx("DEPOSIT", "user1", pid=0, amount=10 * E))
    clock.set(START + DAY)
    engine.apply(tx("HARVEST", "user1", pid=0))
    collected = engine.fees_collected()
    assert collected == DAY * E * 3 // 100 // 2

    with pytest.raises(AuthorizationError) as e:
        engine.apply(tx("GET_FEES", "user1"))
    assert e.value.reason == "not_owner"

    out = engine.apply(tx("GET_FEES", "owner"))
    assert out["amount"] == collected
    assert engine.balance_of("ULTRA", "owner") == collected
    assert engine.fees_collected() == 0

    out = engine.apply(tx("GET_FEES", "owner"))
    assert out["amount"] == 0


def test_pool_fee_is_bounded(engine) -> None:
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("SET_POOL_FEE_PERCENTAGE", "owner", pid=0, fee_bps=10_001))
    assert e.value.reason == "payload_schema_mismatch"

    engine.apply(tx("SET_POOL_FEE_PERCENTAGE", "owner", pid=0, fee_bps=10_000))
    assert engine.pool_info(0)["fee_bps"] == 10_000


def test_exclude_requires_addresses(engine) -> None:
    with pytest.raises(ValidationError):
        engine.apply(tx("EXCLUDE_FROM_FEE", "owner", addresses=[]))
    with pytest.raises(ValidationError) as e:
        engine.apply(tx("EXCLUDE_FROM_FEE", "owner", addresses=[ZERO_ADDRESS]))
    assert e.value.reason == "zero_address"
