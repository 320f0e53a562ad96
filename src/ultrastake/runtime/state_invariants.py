# src/ultrastake/runtime/state_invariants.py
from __future__ import annotations

"""State normalization and post-apply invariant checks.

`ensure_state` makes sure the top-level containers every applier relies on
exist. `check_staking_invariants` verifies the accounting identities of the
engine after a tx was applied to a snapshot; the executor discards the
snapshot when it raises.
"""

from collections.abc import MutableMapping
from typing import Any, Dict, List, Optional

from ultrastake.ledger.accumulator import accrued
from ultrastake.ledger.constants import ENGINE_ACCOUNT
from ultrastake.runtime.errors import InvariantViolation

Json = Dict[str, Any]

_DICT_ROOTS = ("accounts", "params", "positions", "referral_rewards", "tokens", "referral_directory", "vaults")
_LIST_ROOTS = ("pools", "fee_exempt")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains the core containers.

    Raises:
        TypeError: if st (or one of its roots) has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _DICT_ROOTS:
        cur = st.get(key)
        if cur is None:
            st[key] = {}
        elif not isinstance(cur, dict):
            raise TypeError(f"state['{key}'] must be dict, got {type(cur)}")

    for key in _LIST_ROOTS:
        cur = st.get(key)
        if cur is None:
            st[key] = []
        elif not isinstance(cur, list):
            raise TypeError(f"state['{key}'] must be list, got {type(cur)}")

    fees = st.get("fees")
    if fees is None:
        st["fees"] = {"collected": 0, "burned_total": 0}
    elif not isinstance(fees, dict):
        raise TypeError(f"state['fees'] must be dict, got {type(fees)}")

    return st  # type: ignore[return-value]


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _pools(state: Json) -> List[Json]:
    p = state.get("pools")
    return [x for x in p if isinstance(x, dict)] if isinstance(p, list) else []


def _engine_balance(state: Json, token_id: str) -> int:
    rec = state.get("tokens", {}).get(token_id)
    if not isinstance(rec, dict):
        return 0
    return _as_int(rec.get("balances", {}).get(ENGINE_ACCOUNT), 0)


def check_staking_invariants(state: Json, prev: Optional[Json] = None) -> None:
    """Raise InvariantViolation if the engine's accounting identities do not hold.

    With `prev` (the state before the tx) also checks that pools were only
    appended and that no accumulator moved backward.
    """
    params = state.get("params", {})
    pools = _pools(state)

    alloc_sum = sum(_as_int(p.get("alloc_point"), 0) for p in pools)
    total_alloc = _as_int(params.get("total_alloc_point"), 0)
    if alloc_sum != total_alloc:
        raise InvariantViolation("alloc_point_sum_mismatch", {"sum": alloc_sum, "total_alloc_point": total_alloc})

    positions = state.get("positions", {})
    owed_by_token: Dict[str, int] = {}
    for i, pool in enumerate(pools):
        if _as_int(pool.get("pid"), -1) != i:
            raise InvariantViolation("pool_index_mismatch", {"index": i, "pid": pool.get("pid")})

        acc = _as_int(pool.get("acc_reward_per_share"), 0)
        per_pool = positions.get(str(i), {}) if isinstance(positions, dict) else {}
        staked_sum = 0
        for user, pos in (per_pool or {}).items():
            if not isinstance(pos, dict):
                continue
            amount = _as_int(pos.get("amount"), 0)
            if amount < 0:
                raise InvariantViolation("negative_position", {"pid": i, "user": user, "amount": amount})
            if accrued(amount, acc) < _as_int(pos.get("reward_debt"), 0):
                raise InvariantViolation("negative_pending", {"pid": i, "user": user})
            staked_sum += amount

        total_staked = _as_int(pool.get("total_staked"), 0)
        if staked_sum != total_staked:
            raise InvariantViolation("total_staked_mismatch", {"pid": i, "sum": staked_sum, "total_staked": total_staked})

        tok = str(pool.get("stake_token") or "")
        owed_by_token[tok] = owed_by_token.get(tok, 0) + total_staked

    collected = _as_int(state.get("fees", {}).get("collected"), 0)
    if collected < 0:
        raise InvariantViolation("negative_fees_collected", {"collected": collected})

    referral_owed = 0
    for per_ref in (state.get("referral_rewards") or {}).values():
        if not isinstance(per_ref, dict):
            continue
        for rec in per_ref.values():
            amt = _as_int(rec.get("amount"), 0) if isinstance(rec, dict) else 0
            if amt < 0:
                raise InvariantViolation("negative_referral_record", {})
            referral_owed += amt

    reward_token = str(params.get("reward_token") or "")
    if reward_token:
        owed_by_token[reward_token] = owed_by_token.get(reward_token, 0) + collected + referral_owed

    for tok, owed in owed_by_token.items():
        have = _engine_balance(state, tok)
        if have < owed:
            raise InvariantViolation("engine_custody_shortfall", {"token": tok, "balance": have, "owed": owed})

    for key, vault in (state.get("vaults") or {}).items():
        if not isinstance(vault, dict):
            continue
        shares = vault.get("shares") or {}
        share_sum = sum(_as_int(v, 0) for v in shares.values())
        if share_sum != _as_int(vault.get("total_shares"), 0):
            raise InvariantViolation("vault_shares_mismatch", {"pid": key, "sum": share_sum, "total_shares": vault.get("total_shares")})

    if prev is None:
        return

    prev_pools = _pools(prev)
    if len(pools) < len(prev_pools):
        raise InvariantViolation("pool_removed", {"before": len(prev_pools), "after": len(pools)})
    for before, after in zip(prev_pools, pools):
        if before.get("stake_token") != after.get("stake_token"):
            raise InvariantViolation("pool_relocated", {"pid": after.get("pid")})
        if _as_int(after.get("acc_reward_per_share"), 0) < _as_int(before.get("acc_reward_per_share"), 0):
            raise InvariantViolation("accumulator_decreased", {"pid": after.get("pid")})


__all__ = ["check_staking_invariants", "ensure_state"]
