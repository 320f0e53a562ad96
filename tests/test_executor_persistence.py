from __future__ import annotations

from pathlib import Path

import pytest

from conftest import DAY, E, START, approve_all, tx
from ultrastake.runtime.errors import AuthorizationError
from ultrastake.runtime.executor import ExecutorError, StakingExecutor
from ultrastake.runtime.single_writer import SingleWriterError, SingleWriterLock
from ultrastake.runtime.sqlite_db import SqliteDB


def test_state_and_receipts_survive_restart(make_engine, clock, tmp_path: Path) -> None:
    db = str(tmp_path / "ledger.db")
    ex = make_engine(db_path=db)
    assert ex.persistent is True
    approve_all(ex, users=["user1"])
    clock.set(START)
    ex.apply(tx("DEPOSIT", "user1", pid=0, amount=10 * E))
    snapshot = ex.read_state()
    ex.close()

    clock.set(START + DAY)
    # Genesis is ignored once the ledger exists.
    with make_engine(db_path=db, reward_per_second=0) as again:
        assert again.read_state() == snapshot
        assert again.pending_reward(0, "user1") == DAY * E
        rs = again.receipts(10)
        assert [r["tx_type"] for r in rs] == ["DEPOSIT", "TOKEN_APPROVE", "TOKEN_APPROVE"]
        assert rs[0]["seq"] == 3
        assert rs[0]["envelope"]["payload"] == {"pid": 0, "amount": 10 * E}
        assert rs[0]["result"]["staked"] == 10 * E


def test_rejected_tx_is_not_persisted(make_engine, tmp_path: Path) -> None:
    db = str(tmp_path / "ledger.db")
    with make_engine(db_path=db) as ex:
        with pytest.raises(AuthorizationError):
            ex.apply(tx("GET_FEES", "user1"))
        assert ex.receipts(5) == []

    with make_engine(db_path=db) as ex:
        assert int(ex.read_state()["seq"]) == 0


def test_second_writer_is_refused(make_engine, tmp_path: Path) -> None:
    db = str(tmp_path / "ledger.db")
    with make_engine(db_path=db):
        with pytest.raises(SingleWriterError):
            make_engine(db_path=db)
    # Released on close.
    make_engine(db_path=db).close()


def test_single_writer_lock_context(tmp_path: Path) -> None:
    path = str(tmp_path / "x.lock")
    with SingleWriterLock(path) as lock:
        assert lock.held is True
    assert lock.held is False


def test_engine_id_mismatch_refuses_to_start(make_engine, clock, tmp_path: Path) -> None:
    db = str(tmp_path / "ledger.db")
    make_engine(db_path=db).close()

    with pytest.raises(ExecutorError):
        StakingExecutor(db_path=db, engine_id="other", clock=clock)
    # The failed boot must not keep the writer lock.
    make_engine(db_path=db).close()


def test_sqlite_uses_wal(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "a.db"))
    db.init_schema()
    with db.connection() as con:
        assert str(con.execute("PRAGMA journal_mode;").fetchone()[0]).lower() == "wal"
