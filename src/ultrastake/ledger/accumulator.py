# src/ultrastake/ledger/accumulator.py
from __future__ import annotations

"""Lazy per-share reward accumulator.

Each pool carries `acc_reward_per_share`: the cumulative reward earned by one
unit of stake since the pool was created, scaled by ACC_PRECISION. A position
only has to remember the accumulator value it was last paid out at
(`reward_debt`), so settling a pool is O(1) regardless of how many users it has.

Settlement must run before any input of the formula changes
(total_staked, alloc_point, total_alloc_point, reward_per_second); otherwise the
interval that just elapsed would be priced with the new inputs.
"""

from typing import Any, Dict

from ultrastake.ledger.constants import ACC_PRECISION

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def pool_reward_since(pool: Json, params: Json, now: int) -> int:
    """Reward emitted to `pool` between its last_reward_time and `now`.

    Returns 0 when nothing can accrue: clock did not move forward, or
    total_alloc_point is zero.
    """
    last = _as_int(pool.get("last_reward_time"), 0)
    now_i = int(now)
    if now_i <= last:
        return 0

    total_alloc = _as_int(params.get("total_alloc_point"), 0)
    if total_alloc <= 0:
        return 0

    elapsed = now_i - last
    rps = _as_int(params.get("reward_per_second"), 0)
    alloc = _as_int(pool.get("alloc_point"), 0)
    return elapsed * rps * alloc // total_alloc


def preview_acc(pool: Json, params: Json, now: int) -> int:
    """acc_reward_per_share as settle() would leave it at `now`. Never mutates."""
    acc = _as_int(pool.get("acc_reward_per_share"), 0)
    staked = _as_int(pool.get("total_staked"), 0)
    if staked <= 0:
        return acc
    reward = pool_reward_since(pool, params, now)
    if reward <= 0:
        return acc
    return acc + reward * ACC_PRECISION // staked


def settle(pool: Json, params: Json, now: int) -> bool:
    """Bring the pool accumulator up to `now`.

    Returns True if the pool changed. Calling twice at the same instant is a no-op.
    """
    now_i = int(now)
    last = _as_int(pool.get("last_reward_time"), 0)
    if now_i <= last:
        return False

    pool["acc_reward_per_share"] = preview_acc(pool, params, now_i)
    pool["last_reward_time"] = now_i
    return True


def accrued(amount: int, acc: int) -> int:
    return int(amount) * int(acc) // ACC_PRECISION


def pending_for(position: Json, acc: int) -> int:
    """Reward owed to a position at accumulator value `acc`.

    A negative value means the position's debt was computed against a later
    accumulator than `acc`, i.e. a settle-ordering bug; callers treat it as fatal.
    """
    return accrued(_as_int(position.get("amount"), 0), acc) - _as_int(position.get("reward_debt"), 0)


__all__ = ["accrued", "pending_for", "pool_reward_since", "preview_acc", "settle"]
