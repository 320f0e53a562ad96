# src/ultrastake/runtime/apply/referrals.py
from __future__ import annotations

"""Referral ledger domain apply semantics.

state["referral_rewards"][referrer][str(pid)] = {"amount": int, "last_accrual_time": int}

The ZERO_ADDRESS referrer is the protocol-owned bucket for stakers nobody
referred. Bonus tokens are already minted to engine custody when credited;
claims and sweeps only transfer them out.
"""

from typing import Any, Dict, List, Optional, Set, Tuple

from ultrastake.ledger import token
from ultrastake.ledger.constants import ENGINE_ACCOUNT, ZERO_ADDRESS
from ultrastake.runtime.apply.admin import params, require_non_negative_int, require_owner
from ultrastake.runtime.apply.pools import get_pool, now_of, require_fee_bps
from ultrastake.runtime.errors import BelowThresholdError, TooEarlyError, ValidationError
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _as_str(x: Any) -> str:
    return x.strip() if isinstance(x, str) else ""


def _rewards_root(state: Json) -> Json:
    r = state.get("referral_rewards")
    if not isinstance(r, dict):
        r = {}
        state["referral_rewards"] = r
    return r


def credit_referral(state: Json, referrer: Optional[str], pid: int, amount: int, now: int) -> Json:
    key = referrer or ZERO_ADDRESS
    per_ref = _rewards_root(state).setdefault(key, {})
    rec = per_ref.get(str(pid))
    if not isinstance(rec, dict):
        rec = {"amount": 0, "last_accrual_time": 0}
        per_ref[str(pid)] = rec
    rec["amount"] = _as_int(rec.get("amount"), 0) + int(amount)
    rec["last_accrual_time"] = int(now)
    return rec


def referral_record(state: Json, referrer: str, pid: int) -> Json:
    per_ref = _as_dict(_as_dict(state.get("referral_rewards")).get(referrer))
    rec = per_ref.get(str(pid))
    if not isinstance(rec, dict):
        return {"amount": 0, "last_accrual_time": 0}
    return {"amount": _as_int(rec.get("amount"), 0), "last_accrual_time": _as_int(rec.get("last_accrual_time"), 0)}


def _select(state: Json, referrer: str, pid: Any) -> List[Tuple[str, Json]]:
    """Records of `referrer` to settle: one pool, or every pool with a record."""
    per_ref = _rewards_root(state).get(referrer)
    if not isinstance(per_ref, dict):
        per_ref = {}

    if pid is not None:
        pool = get_pool(state, pid)
        key = str(pool["pid"])
        rec = per_ref.get(key)
        return [(key, rec)] if isinstance(rec, dict) else []

    return [(k, per_ref[k]) for k in sorted(per_ref, key=_as_int) if isinstance(per_ref[k], dict)]


def _apply_get_referral_reward(state: Json, env: TxEnvelope) -> Json:
    referrer = env.signer
    if not referrer or referrer == ZERO_ADDRESS:
        raise ValidationError("zero_address", {"field": "signer"})

    pid = _as_dict(env.payload).get("pid")
    records = _select(state, referrer, pid)
    total = sum(_as_int(rec.get("amount"), 0) for _, rec in records)
    minimum = _as_int(params(state).get("min_referral_reward"), 0)
    if total < minimum:
        raise BelowThresholdError(
            "referral_below_minimum",
            {"referrer": referrer, "amount": total, "min_referral_reward": minimum},
        )

    if total > 0:
        rtoken = _as_str(params(state).get("reward_token"))
        token.transfer(state, rtoken, ENGINE_ACCOUNT, referrer, total)
    for _, rec in records:
        rec["amount"] = 0

    return {"applied": "GET_REFERRAL_REWARD", "referrer": referrer, "amount": total, "pools": [k for k, _ in records]}


def _apply_get_referral_reward_for(state: Json, env: TxEnvelope) -> Json:
    owner = require_owner(state, env)
    payload = _as_dict(env.payload)
    referrer = _as_str(payload.get("referrer"))
    if not referrer:
        raise ValidationError("missing_referrer", {})

    records = _select(state, referrer, payload.get("pid"))
    now = now_of(state)
    wait = _as_int(params(state).get("referral_owner_withdraw_await"), 0)

    # The zero bucket has no claimant to protect.
    if referrer != ZERO_ADDRESS:
        for key, rec in records:
            if _as_int(rec.get("amount"), 0) <= 0:
                continue
            ready_at = _as_int(rec.get("last_accrual_time"), 0) + wait
            if now < ready_at:
                raise TooEarlyError(
                    "referral_await_not_passed",
                    {"referrer": referrer, "pid": _as_int(key), "now": now, "ready_at": ready_at},
                )

    total = sum(_as_int(rec.get("amount"), 0) for _, rec in records)
    if total > 0:
        rtoken = _as_str(params(state).get("reward_token"))
        token.transfer(state, rtoken, ENGINE_ACCOUNT, owner, total)
    for _, rec in records:
        rec["amount"] = 0

    return {"applied": "GET_REFERRAL_REWARD_FOR", "referrer": referrer, "to": owner, "amount": total}


def _apply_set_referral_percent(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    bps = require_fee_bps(_as_dict(env.payload).get("bps"), field="bps")
    params(state)["referral_percent_bps"] = bps
    return {"applied": "SET_REFERRAL_PERCENT", "referral_percent_bps": bps}


def _apply_set_min_referral_reward(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    amount = require_non_negative_int(_as_dict(env.payload).get("amount"), field="amount")
    params(state)["min_referral_reward"] = amount
    return {"applied": "SET_MIN_REFERRAL_REWARD", "min_referral_reward": amount}


def _apply_set_referral_owner_withdraw_await(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    seconds = require_non_negative_int(_as_dict(env.payload).get("seconds"), field="seconds")
    params(state)["referral_owner_withdraw_await"] = seconds
    return {"applied": "SET_REFERRAL_OWNER_WITHDRAW_AWAIT", "referral_owner_withdraw_await": seconds}


REFERRAL_TX_TYPES: Set[str] = {
    "GET_REFERRAL_REWARD",
    "GET_REFERRAL_REWARD_FOR",
    "SET_REFERRAL_PERCENT",
    "SET_MIN_REFERRAL_REWARD",
    "SET_REFERRAL_OWNER_WITHDRAW_AWAIT",
}


def apply_referrals(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = str(env.tx_type or "").strip()
    if t not in REFERRAL_TX_TYPES:
        return None

    if t == "GET_REFERRAL_REWARD":
        return _apply_get_referral_reward(state, env)
    if t == "GET_REFERRAL_REWARD_FOR":
        return _apply_get_referral_reward_for(state, env)
    if t == "SET_REFERRAL_PERCENT":
        return _apply_set_referral_percent(state, env)
    if t == "SET_MIN_REFERRAL_REWARD":
        return _apply_set_min_referral_reward(state, env)
    if t == "SET_REFERRAL_OWNER_WITHDRAW_AWAIT":
        return _apply_set_referral_owner_withdraw_await(state, env)
    return None


__all__ = ["REFERRAL_TX_TYPES", "apply_referrals", "credit_referral", "referral_record"]
