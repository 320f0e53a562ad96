from __future__ import annotations

import copy
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from ultrastake.ledger.migrations import migrate_state_dict
from ultrastake.ledger.state import StakingView
from ultrastake.runtime.clock import Clock, SystemClock
from ultrastake.runtime.domain_apply import apply_tx_atomic
from ultrastake.runtime.errors import ApplyError, AuthorizationError, ValidationError
from ultrastake.runtime.genesis_config import GenesisConfig, build_genesis_state
from ultrastake.runtime.log_events import log_event
from ultrastake.runtime.metrics import inc_counter, set_gauge
from ultrastake.runtime.single_writer import SingleWriterLock
from ultrastake.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from ultrastake.runtime.state_invariants import check_staking_invariants, ensure_state
from ultrastake.runtime.tx_admission import admit_tx
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

log = logging.getLogger("ultrastake.executor")

_MEMORY_RECEIPTS = 1000


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


class ExecutorError(RuntimeError):
    pass


def _verdict_error(code: str, reason: str, details: Any) -> ApplyError:
    d = details if isinstance(details, dict) else None
    if code == "forbidden":
        return AuthorizationError(reason, d)
    if code == "invalid":
        return ValidationError(reason, d)
    return ApplyError(code, reason, d)


class StakingExecutor:
    """Single-writer staking engine.

    Every state-changing call runs under one RLock: admission, atomic apply at
    `clock.now()`, the sequence bump and (when persistent) the SQLite commit of
    snapshot plus receipt. A failure at any step leaves the live state as it
    was. With a `db_path` the executor also holds an exclusive process lock on
    `<db_path>.lock` until `close()`.
    """

    def __init__(
        self,
        *,
        db_path: str = "",
        engine_id: str = "ultrastake-dev",
        clock: Optional[Clock] = None,
        genesis: Optional[GenesisConfig] = None,
        state: Optional[Json] = None,
        strict_invariants: bool = True,
    ) -> None:
        self.engine_id = str(engine_id)
        self.clock: Clock = clock or SystemClock()
        self.strict_invariants = bool(strict_invariants)
        self.db_path = str(db_path or "")

        self._lock = threading.RLock()
        self._writer_lock: Optional[SingleWriterLock] = None
        self._store: Optional[SqliteLedgerStore] = None
        self._receipts: Deque[Json] = deque(maxlen=_MEMORY_RECEIPTS)

        if self.db_path:
            self._writer_lock = SingleWriterLock(self.db_path + ".lock")
            self._writer_lock.acquire()
            try:
                self._store = SqliteLedgerStore(db=SqliteDB(path=self.db_path))
                if self._store.exists():
                    self.state = migrate_state_dict(self._store.read())
                else:
                    self.state = self._initial_state(genesis, state)
                    self._store.write(self.state)
            except BaseException:
                self._writer_lock.release()
                raise
        else:
            self.state = self._initial_state(genesis, state)

        st_engine_id = str(self.state.get("engine_id") or "").strip()
        if st_engine_id and st_engine_id != self.engine_id:
            self.close()
            raise ExecutorError(
                f"engine_id mismatch: db={st_engine_id!r} executor={self.engine_id!r}. Refuse to start."
            )

        self._publish_gauges()
        log_event(
            log,
            "executor_boot",
            engine_id=self.engine_id,
            db_path=self.db_path or ":memory:",
            seq=_safe_int(self.state.get("seq"), 0),
            pools=len(self.state.get("pools") or []),
        )

    def _initial_state(self, genesis: Optional[GenesisConfig], state: Optional[Json]) -> Json:
        if state is not None:
            st = migrate_state_dict(copy.deepcopy(state))
            ensure_state(st)
        elif genesis is not None:
            st = build_genesis_state(genesis)
        else:
            st = migrate_state_dict({})
            ensure_state(st)
        st["engine_id"] = self.engine_id
        check_staking_invariants(st)
        return st

    def _publish_gauges(self) -> None:
        set_gauge("ledger_seq", _safe_int(self.state.get("seq"), 0))
        set_gauge("ledger_time", _safe_int(self.state.get("time"), 0))
        set_gauge("pool_count", len(self.state.get("pools") or []))

    # ----------------------------
    # Lifecycle
    # ----------------------------

    @property
    def persistent(self) -> bool:
        return self._store is not None

    def close(self) -> None:
        if self._writer_lock is not None:
            self._writer_lock.release()
            self._writer_lock = None

    def __enter__(self) -> "StakingExecutor":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ----------------------------
    # Writes
    # ----------------------------

    def now(self) -> int:
        # Ledger time never runs backwards even if the clock does.
        return max(int(self.clock.now()), _safe_int(self.state.get("time"), 0))

    def apply(self, env: Any) -> Json:
        """Admit and apply one tx. Raises ApplyError (or a subclass) on rejection."""
        with self._lock:
            verdict = admit_tx(env, self.state)
            if not verdict.ok:
                err = _verdict_error(verdict.code, verdict.reason, verdict.details)
                self._log_rejection(env, err)
                raise err

            env_norm = TxEnvelope.from_json(env)
            working = dict(self.state)
            try:
                meta = apply_tx_atomic(working, env_norm, now=self.now(), strict=self.strict_invariants)
            except ApplyError as e:
                self._log_rejection(env_norm, e)
                raise

            working["seq"] = _safe_int(working.get("seq"), 0) + 1
            receipt = {
                "seq": working["seq"],
                "time": _safe_int(working.get("time"), 0),
                "tx_type": env_norm.tx_type,
                "signer": env_norm.signer,
                "envelope": env_norm.to_json(),
                "result": meta,
            }
            if self._store is not None:
                self._store.commit(working, receipt)
            else:
                self._receipts.appendleft(receipt)
            self.state = working

            inc_counter("tx_applied_total")
            self._publish_gauges()
            log_event(
                log,
                "tx_applied",
                tx_type=env_norm.tx_type,
                signer=env_norm.signer,
                seq=receipt["seq"],
                time=receipt["time"],
            )
            return meta

    def submit_tx(self, env: Any) -> Json:
        """Like apply(), but reports rejection as a result dict instead of raising."""
        if not isinstance(env, (dict, TxEnvelope)):
            return {"ok": False, "error": "invalid", "reason": "bad_env:not_object", "details": None}
        try:
            meta = self.apply(env)
        except ApplyError as e:
            return {"ok": False, "error": e.code, "reason": e.reason, "details": e.details}
        return {"ok": True, "seq": _safe_int(self.state.get("seq"), 0), "result": meta}

    def _log_rejection(self, env: Any, err: ApplyError) -> None:
        inc_counter("tx_rejected_total")
        if isinstance(env, TxEnvelope):
            tx_type, signer = env.tx_type, env.signer
        elif isinstance(env, dict):
            tx_type, signer = str(env.get("tx_type") or ""), str(env.get("signer") or "")
        else:
            tx_type, signer = "", ""
        log_event(
            log,
            "tx_rejected",
            level=logging.WARNING if err.code == "invariant_violation" else logging.INFO,
            tx_type=tx_type,
            signer=signer,
            code=err.code,
            reason=err.reason,
        )

    # ----------------------------
    # Reads
    # ----------------------------

    def read_state(self) -> Json:
        with self._lock:
            return copy.deepcopy(self.state)

    def view(self) -> StakingView:
        with self._lock:
            return StakingView.from_ledger(self.state)

    def receipts(self, limit: int = 50) -> List[Json]:
        if self._store is not None:
            return self._store.receipts(limit)
        lim = max(1, min(int(limit), _MEMORY_RECEIPTS))
        with self._lock:
            return list(self._receipts)[:lim]

    def pending_reward(self, pid: int, user: str) -> int:
        return self.view().pending_reward(pid, user, now=self.now())

    def is_locked(self, pid: int, user: str) -> bool:
        return self.view().is_locked(pid, user, now=self.now())

    def pool_info(self, pid: int) -> Json:
        return self.view().pool_info(pid)

    def user_info(self, pid: int, user: str) -> Json:
        return self.view().user_info(pid, user)

    def pool_length(self) -> int:
        return self.view().pool_length()

    def total_alloc_point(self) -> int:
        return self.view().total_alloc_point()

    def referral_details(self, referrer: str, pid: int) -> int:
        return self.view().referral_details(referrer, pid)

    def fees_collected(self) -> int:
        return self.view().fees_collected()

    def balance_of(self, token_id: str, account: str) -> int:
        return self.view().balance_of(token_id, account)

    def vault_info(self, pid: int) -> Json:
        return self.view().vault_info(pid)


__all__ = ["ExecutorError", "StakingExecutor"]
