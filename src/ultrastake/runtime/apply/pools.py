# src/ultrastake/runtime/apply/pools.py
from __future__ import annotations

"""Pool registry domain apply semantics.

Pools live in state["pools"] as an append-only list; a pool's index is its
pid and never changes. Every mutation of an accumulator input
(total_alloc_point, alloc_point, reward_per_second) settles the affected
pools first so the interval that just elapsed is priced at the old inputs.
"""

from typing import Any, Dict, List, Optional, Set

from ultrastake.ledger.accumulator import settle
from ultrastake.ledger.constants import BPS_BASE
from ultrastake.runtime.apply.admin import params, require_address, require_non_negative_int, require_owner
from ultrastake.runtime.errors import ValidationError
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def now_of(state: Json) -> int:
    """Block-time of the tx being applied (set by the executor)."""
    t = state.get("time")
    if isinstance(t, bool) or not isinstance(t, int):
        raise ValidationError("missing_time", {"time": repr(t)})
    return t


def pools_list(state: Json) -> List[Json]:
    p = state.get("pools")
    if not isinstance(p, list):
        p = []
        state["pools"] = p
    return p


def require_pid(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise ValidationError("pool_not_found", {"pid": repr(v)})
    return v


def get_pool(state: Json, pid: Any) -> Json:
    i = require_pid(pid)
    pools = pools_list(state)
    if i >= len(pools) or not isinstance(pools[i], dict):
        raise ValidationError("pool_not_found", {"pid": i, "pool_length": len(pools)})
    return pools[i]


def require_fee_bps(v: Any, *, field: str = "fee_bps") -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0 or v > BPS_BASE:
        raise ValidationError("fee_bps_out_of_range", {"field": field, "value": repr(v), "max": BPS_BASE})
    return v


def settle_pool(state: Json, pool: Json, now: int) -> bool:
    return settle(pool, params(state), now)


def mass_settle(state: Json, now: int) -> int:
    """Settle every pool. Returns how many pools changed."""
    changed = 0
    p = params(state)
    for pool in pools_list(state):
        if isinstance(pool, dict) and settle(pool, p, now):
            changed += 1
    return changed


def _apply_add_pool(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    payload = _as_dict(env.payload)

    stake_token = require_address(payload.get("stake_token"), field="stake_token")
    alloc = require_non_negative_int(payload.get("alloc_point"), field="alloc_point")
    fee_bps = require_fee_bps(payload.get("fee_bps"))
    now = now_of(state)

    if bool(payload.get("mass_update", False)):
        mass_settle(state, now)

    p = params(state)
    pools = pools_list(state)
    pid = len(pools)
    pools.append(
        {
            "pid": pid,
            "stake_token": stake_token,
            "alloc_point": alloc,
            "last_reward_time": max(now, _as_int(p.get("start_time"), 0)),
            "acc_reward_per_share": 0,
            "total_staked": 0,
            "fee_bps": fee_bps,
        }
    )
    p["total_alloc_point"] = _as_int(p.get("total_alloc_point"), 0) + alloc

    positions = state.get("positions")
    if not isinstance(positions, dict):
        positions = {}
        state["positions"] = positions
    positions.setdefault(str(pid), {})

    return {"applied": "ADD_POOL", "pid": pid, "total_alloc_point": p["total_alloc_point"]}


def _apply_set_pool_alloc_point(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    payload = _as_dict(env.payload)
    pool = get_pool(state, payload.get("pid"))
    alloc = require_non_negative_int(payload.get("alloc_point"), field="alloc_point")
    now = now_of(state)

    if bool(payload.get("mass_update", False)):
        mass_settle(state, now)
    else:
        settle_pool(state, pool, now)

    p = params(state)
    old = _as_int(pool.get("alloc_point"), 0)
    p["total_alloc_point"] = _as_int(p.get("total_alloc_point"), 0) - old + alloc
    pool["alloc_point"] = alloc
    return {
        "applied": "SET_POOL_ALLOC_POINT",
        "pid": pool["pid"],
        "alloc_point": alloc,
        "total_alloc_point": p["total_alloc_point"],
    }


def _apply_set_pool_fee_percentage(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    payload = _as_dict(env.payload)
    pool = get_pool(state, payload.get("pid"))
    fee_bps = require_fee_bps(payload.get("fee_bps"))
    pool["fee_bps"] = fee_bps
    return {"applied": "SET_POOL_FEE_PERCENTAGE", "pid": pool["pid"], "fee_bps": fee_bps}


def _apply_set_reward_per_second(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    payload = _as_dict(env.payload)
    rps = require_non_negative_int(payload.get("reward_per_second"), field="reward_per_second")

    if bool(payload.get("mass_update", False)):
        mass_settle(state, now_of(state))

    params(state)["reward_per_second"] = rps
    return {"applied": "SET_REWARD_PER_SECOND", "reward_per_second": rps}


def _apply_update_pool(state: Json, env: TxEnvelope) -> Json:
    pool = get_pool(state, _as_dict(env.payload).get("pid"))
    changed = settle_pool(state, pool, now_of(state))
    return {
        "applied": "UPDATE_POOL",
        "pid": pool["pid"],
        "changed": changed,
        "acc_reward_per_share": pool["acc_reward_per_share"],
    }


def _apply_mass_update_pools(state: Json, env: TxEnvelope) -> Json:
    changed = mass_settle(state, now_of(state))
    return {"applied": "MASS_UPDATE_POOLS", "changed": changed}


POOL_TX_TYPES: Set[str] = {
    "ADD_POOL",
    "SET_POOL_ALLOC_POINT",
    "SET_POOL_FEE_PERCENTAGE",
    "SET_REWARD_PER_SECOND",
    "UPDATE_POOL",
    "MASS_UPDATE_POOLS",
}


def apply_pools(state: Json, env: TxEnvelope) -> Optional[Json]:
    """Apply pool registry txs. Returns meta dict if handled; otherwise None."""
    t = str(env.tx_type or "").strip()
    if t not in POOL_TX_TYPES:
        return None

    if t == "ADD_POOL":
        return _apply_add_pool(state, env)
    if t == "SET_POOL_ALLOC_POINT":
        return _apply_set_pool_alloc_point(state, env)
    if t == "SET_POOL_FEE_PERCENTAGE":
        return _apply_set_pool_fee_percentage(state, env)
    if t == "SET_REWARD_PER_SECOND":
        return _apply_set_reward_per_second(state, env)
    if t == "UPDATE_POOL":
        return _apply_update_pool(state, env)
    if t == "MASS_UPDATE_POOLS":
        return _apply_mass_update_pools(state, env)
    return None


__all__ = [
    "POOL_TX_TYPES",
    "apply_pools",
    "get_pool",
    "mass_settle",
    "now_of",
    "pools_list",
    "require_fee_bps",
    "require_pid",
    "settle_pool",
]
