from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import E, START, base_genesis, tx
from ultrastake.ledger.constants import ENGINE_ACCOUNT, ZERO_ADDRESS
from ultrastake.runtime.executor import ExecutorError
from ultrastake.runtime.executor_boot import ExecutorBootConfig, build_executor
from ultrastake.runtime.genesis_config import build_genesis_state, genesis_from_dict, load_genesis


def test_first_pool_stakes_the_reward_token() -> None:
    cfg = genesis_from_dict(base_genesis(pools=[{"stake_token": "TKN", "alloc_point": 3, "fee_bps": 50}]))
    assert [(p.stake_token, p.alloc_point, p.fee_bps) for p in cfg.pools] == [("ULTRA", 2, 300), ("TKN", 3, 50)]

    st = build_genesis_state(cfg)
    assert st["params"]["total_alloc_point"] == 5
    assert [p["last_reward_time"] for p in st["pools"]] == [START, START]
    assert ENGINE_ACCOUNT in st["tokens"]["ULTRA"]["minters"]
    assert st["tokens"]["ULTRA"]["total_supply"] == 200 * E
    assert st["referral_directory"] == {"user2": "user1", "user3": "user2"}


@pytest.mark.parametrize(
    "override",
    [{"reward_token": ""}, {"owner": None}, {"burn_address": ZERO_ADDRESS}],
)
def test_genesis_requires_core_fields(override) -> None:
    with pytest.raises(ValueError):
        genesis_from_dict(base_genesis(**override))


def test_genesis_must_be_object() -> None:
    with pytest.raises(ValueError):
        genesis_from_dict(["nope"])


def test_load_genesis_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_genesis(str(tmp_path / "genesis.json"))


def test_build_executor_from_genesis_file(tmp_path: Path, clock) -> None:
    gp = tmp_path / "genesis.json"
    gp.write_text(json.dumps(base_genesis(fee_exempt=["user3"])))
    cfg = ExecutorBootConfig(db_path=str(tmp_path / "db" / "ledger.db"), engine_id="node-a", genesis_path=str(gp))

    with build_executor(cfg, clock=clock) as ex:
        assert ex.persistent is True
        assert ex.read_state()["engine_id"] == "node-a"
        assert ex.pool_length() == 1
        assert ex.view().fee_exempt() == ["user3"]
        assert ex.balance_of("TKN", "user2") == 100 * E


def test_build_executor_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, clock) -> None:
    monkeypatch.setenv("ULTRASTAKE_DB_PATH", "")
    monkeypatch.setenv("ULTRASTAKE_ENGINE_ID", "env-node")

    with build_executor(clock=clock) as ex:
        assert ex.persistent is False
        assert ex.read_state()["engine_id"] == "env-node"
        assert ex.pool_length() == 0


def _prod_boot(tmp_path: Path, **genesis) -> ExecutorBootConfig:
    gp = tmp_path / "genesis.json"
    gp.write_text(json.dumps(base_genesis(**genesis)))
    return ExecutorBootConfig(
        db_path=str(tmp_path / "ledger.db"), engine_id="node-a", genesis_path=str(gp), mode="prod"
    )


def test_prod_boot_refuses_unsigned_ledger(tmp_path: Path, clock) -> None:
    cfg = _prod_boot(tmp_path)
    with pytest.raises(ExecutorError):
        build_executor(cfg, clock=clock)

    # The writer lock was released; a dev boot of the same db still works.
    cfg.mode = "dev"
    with build_executor(cfg, clock=clock) as ex:
        assert ex.read_state()["params"]["require_signatures"] is False


def test_prod_boot_requires_signed_owner_txs(tmp_path: Path, clock) -> None:
    with build_executor(_prod_boot(tmp_path, require_signatures=True), clock=clock) as ex:
        res = ex.submit_tx(tx("TRANSFER_OWNERSHIP", "owner", nonce=1, new_owner="attacker"))
        assert res["ok"] is False
        assert (res["error"], res["reason"]) == ("forbidden", "bad_signature")
        assert ex.read_state()["params"]["owner"] == "owner"
