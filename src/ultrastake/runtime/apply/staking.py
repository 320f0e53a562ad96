# src/ultrastake/runtime/apply/staking.py
from __future__ import annotations

"""User ledger and the position lock state machine.

Positions live at state["positions"][str(pid)][user]:

    {"amount": int, "reward_debt": int, "last_action_time": int}

Every action settles the pool first, pays out what the position earned up to
now, then mutates principal and re-bases reward_debt on the settled
accumulator. A position is locked while

    now < max(last_action_time, start_time) + lock_duration

WITHDRAW and HARVEST are lock-gated and relock; DEPOSIT is never gated but
still relocks. Vault accounts withdraw with enforce_lock=False.
"""

from typing import Any, Dict, Optional, Set

from ultrastake.ledger import token
from ultrastake.ledger.accumulator import accrued, pending_for
from ultrastake.ledger.constants import ENGINE_ACCOUNT
from ultrastake.runtime.apply.admin import params, require_address, require_non_negative_int
from ultrastake.runtime.apply.fees import route_payout
from ultrastake.runtime.apply.pools import get_pool, now_of, settle_pool
from ultrastake.runtime.errors import InvariantViolation, LockedError, ValidationError
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def ensure_position(state: Json, pid: int, user: str) -> Json:
    positions = state.get("positions")
    if not isinstance(positions, dict):
        positions = {}
        state["positions"] = positions
    per_pool = positions.get(str(pid))
    if not isinstance(per_pool, dict):
        per_pool = {}
        positions[str(pid)] = per_pool
    pos = per_pool.get(user)
    if not isinstance(pos, dict):
        pos = {"amount": 0, "reward_debt": 0, "last_action_time": 0}
        per_pool[user] = pos
    return pos


def unlock_time(state: Json, position: Json) -> int:
    p = params(state)
    anchor = max(_as_int(position.get("last_action_time"), 0), _as_int(p.get("start_time"), 0))
    return anchor + _as_int(p.get("lock_duration"), 0)


def is_locked(state: Json, position: Json, now: int) -> bool:
    return int(now) < unlock_time(state, position)


def _require_unlocked(state: Json, position: Json, now: int, *, reason: str, pid: int, user: str) -> None:
    if is_locked(state, position, now):
        raise LockedError(reason, {"pid": pid, "user": user, "now": now, "unlock_time": unlock_time(state, position)})


def _settle_and_pay(state: Json, pool: Json, position: Json, *, user: str, recipient: str, now: int) -> Json:
    settle_pool(state, pool, now)
    acc = _as_int(pool.get("acc_reward_per_share"), 0)
    pending = pending_for(position, acc)
    if pending < 0:
        raise InvariantViolation("negative_pending", {"pid": pool.get("pid"), "user": user, "pending": pending})
    return route_payout(state, pool, depositor=user, recipient=recipient, gross=pending, now=now)


def deposit(state: Json, pid: Any, user: str, amount: Any, recipient: Optional[str], now: int) -> Json:
    pool = get_pool(state, pid)
    amt = require_non_negative_int(amount, field="amount")
    to = require_address(recipient or user, field="recipient")
    pos = ensure_position(state, pool["pid"], user)

    payout = _settle_and_pay(state, pool, pos, user=user, recipient=to, now=now)

    if amt > 0:
        token.transfer_from(state, pool["stake_token"], ENGINE_ACCOUNT, user, ENGINE_ACCOUNT, amt)
        pos["amount"] = _as_int(pos.get("amount"), 0) + amt
        pool["total_staked"] = _as_int(pool.get("total_staked"), 0) + amt

    pos["reward_debt"] = accrued(pos["amount"], pool["acc_reward_per_share"])
    pos["last_action_time"] = int(now)
    return {"pid": pool["pid"], "user": user, "amount": amt, "staked": pos["amount"], "payout": payout}


def withdraw(
    state: Json, pid: Any, user: str, amount: Any, recipient: Optional[str], now: int, *, enforce_lock: bool = True
) -> Json:
    pool = get_pool(state, pid)
    amt = require_non_negative_int(amount, field="amount")
    to = require_address(recipient or user, field="recipient")
    pos = ensure_position(state, pool["pid"], user)

    if enforce_lock:
        _require_unlocked(state, pos, now, reason="withdraw_locked", pid=pool["pid"], user=user)
    staked = _as_int(pos.get("amount"), 0)
    if amt > staked:
        raise ValidationError("insufficient_stake", {"pid": pool["pid"], "user": user, "staked": staked, "amount": amt})

    payout = _settle_and_pay(state, pool, pos, user=user, recipient=to, now=now)

    if amt > 0:
        pos["amount"] = staked - amt
        pool["total_staked"] = _as_int(pool.get("total_staked"), 0) - amt
        token.transfer(state, pool["stake_token"], ENGINE_ACCOUNT, user, amt)

    pos["reward_debt"] = accrued(pos["amount"], pool["acc_reward_per_share"])
    pos["last_action_time"] = int(now)
    return {"pid": pool["pid"], "user": user, "amount": amt, "staked": pos["amount"], "payout": payout}


def harvest(state: Json, pid: Any, user: str, recipient: Optional[str], now: int) -> Json:
    pool = get_pool(state, pid)
    to = require_address(recipient or user, field="recipient")
    pos = ensure_position(state, pool["pid"], user)

    _require_unlocked(state, pos, now, reason="harvest_locked", pid=pool["pid"], user=user)
    payout = _settle_and_pay(state, pool, pos, user=user, recipient=to, now=now)

    pos["reward_debt"] = accrued(_as_int(pos.get("amount"), 0), pool["acc_reward_per_share"])
    pos["last_action_time"] = int(now)
    return {"pid": pool["pid"], "user": user, "payout": payout}


def _apply_deposit(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    out = deposit(state, p.get("pid"), env.signer, p.get("amount"), p.get("recipient"), now_of(state))
    return {"applied": "DEPOSIT", **out}


def _apply_withdraw(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    out = withdraw(state, p.get("pid"), env.signer, p.get("amount"), p.get("recipient"), now_of(state))
    return {"applied": "WITHDRAW", **out}


def _apply_harvest(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    out = harvest(state, p.get("pid"), env.signer, p.get("recipient"), now_of(state))
    return {"applied": "HARVEST", **out}


STAKING_TX_TYPES: Set[str] = {"DEPOSIT", "WITHDRAW", "HARVEST"}


def apply_staking(state: Json, env: TxEnvelope) -> Optional[Json]:
    """Apply user staking txs. Returns meta dict if handled; otherwise None."""
    t = str(env.tx_type or "").strip()
    if t not in STAKING_TX_TYPES:
        return None

    if t == "DEPOSIT":
        return _apply_deposit(state, env)
    if t == "WITHDRAW":
        return _apply_withdraw(state, env)
    if t == "HARVEST":
        return _apply_harvest(state, env)
    return None


__all__ = [
    "STAKING_TX_TYPES",
    "apply_staking",
    "deposit",
    "ensure_position",
    "harvest",
    "is_locked",
    "unlock_time",
    "withdraw",
]
