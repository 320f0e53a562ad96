from __future__ import annotations

import pytest

from ultrastake.ledger.migrations import CURRENT_STATE_VERSION, migrate_state_dict


def test_migrate_empty_state_builds_current_skeleton() -> None:
    st = migrate_state_dict({})
    assert st["state_version"] == CURRENT_STATE_VERSION
    assert st["pools"] == []
    assert st["fees"] == {"collected": 0, "burned_total": 0}
    assert st["params"]["lock_duration"] == 86_400
    assert st["params"]["referral_owner_withdraw_await"] == 86_400
    assert st["vaults"] == {}


def test_migrate_non_dict_is_treated_as_empty() -> None:
    st = migrate_state_dict(None)
    assert st["state_version"] == CURRENT_STATE_VERSION


def test_v0_shapes_are_normalized() -> None:
    raw = {
        "time": "12",
        "pools": [{"stake_token": "ULTRA", "alloc_point": "5"}],
        "positions": {"0": {"bob": {"amount": "7"}}},
        "fee_exempt": ["b", "a", "a", 3],
        "params": {"lock_duration": 60},
    }
    st = migrate_state_dict(raw)
    assert st["time"] == 12
    assert st["pools"][0]["pid"] == 0
    assert st["pools"][0]["alloc_point"] == 5
    assert st["pools"][0]["acc_reward_per_share"] == 0
    assert st["positions"]["0"]["bob"] == {"amount": 7, "reward_debt": 0, "last_action_time": 0}
    assert st["fee_exempt"] == ["a", "b"]
    assert st["params"]["lock_duration"] == 60


def test_v0_vaults_gain_fee_knobs() -> None:
    raw = {"vaults": {"0": {"pid": 0, "account": "vault:0", "total_shares": 3}}}
    st = migrate_state_dict(raw)
    v = st["vaults"]["0"]
    assert v["total_shares"] == 3
    assert v["shares"] == {}
    assert (v["restake_reward_bps"], v["performance_fee_bps"], v["withdraw_fee_bps"]) == (25, 200, 10)


def test_current_state_is_left_alone() -> None:
    assert CURRENT_STATE_VERSION == 1
    raw = {"state_version": 1, "pools": "not-normalized"}
    assert migrate_state_dict(raw)["pools"] == "not-normalized"


def test_future_state_version_is_refused() -> None:
    with pytest.raises(ValueError):
        migrate_state_dict({"state_version": CURRENT_STATE_VERSION + 1})
