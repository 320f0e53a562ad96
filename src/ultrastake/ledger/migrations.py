# src/ultrastake/ledger/migrations.py
from __future__ import annotations

from typing import Any, Callable, Dict

from ultrastake.ledger.constants import (
    DEFAULT_LOCK_DURATION,
    DEFAULT_REFERRAL_OWNER_WITHDRAW_AWAIT,
    DEFAULT_VAULT_PERFORMANCE_FEE_BPS,
    DEFAULT_VAULT_RESTAKE_REWARD_BPS,
    DEFAULT_VAULT_WITHDRAW_FEE_BPS,
)

Json = Dict[str, Any]

# Increment this when you add a new migration step.
CURRENT_STATE_VERSION = 1


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def _ensure_dict(root: Json, key: str) -> Json:
    v = root.get(key)
    if not isinstance(v, dict):
        v = {}
        root[key] = v
    return v


def _ensure_list(root: Json, key: str) -> list:
    v = root.get(key)
    if not isinstance(v, list):
        v = []
        root[key] = v
    return v


def _ensure_int(root: Json, key: str, default: int = 0) -> int:
    if key not in root:
        root[key] = int(default)
        return int(default)
    x = _as_int(root.get(key), default)
    root[key] = int(x)
    return int(x)


def _migrate_v0_to_v1(st: Json) -> Json:
    """
    v0 -> v1: introduce explicit state_version and normalize the staking roots.

    v0 characteristics:
      - no 'state_version'
      - may have missing roots or wrong shapes
    """
    _ensure_int(st, "time", 0)
    _ensure_int(st, "seq", 0)

    params = _ensure_dict(st, "params")
    for key in ("reward_per_second", "start_time", "total_alloc_point", "referral_percent_bps", "min_referral_reward"):
        _ensure_int(params, key, 0)
    _ensure_int(params, "referral_owner_withdraw_await", DEFAULT_REFERRAL_OWNER_WITHDRAW_AWAIT)
    _ensure_int(params, "lock_duration", DEFAULT_LOCK_DURATION)

    pools = _ensure_list(st, "pools")
    for i, pool in enumerate(pools):
        if not isinstance(pool, dict):
            continue
        pool["pid"] = i
        for key in ("alloc_point", "last_reward_time", "acc_reward_per_share", "total_staked", "fee_bps"):
            _ensure_int(pool, key, 0)

    positions = _ensure_dict(st, "positions")
    for per_pool in positions.values():
        if not isinstance(per_pool, dict):
            continue
        for pos in per_pool.values():
            if isinstance(pos, dict):
                for key in ("amount", "reward_debt", "last_action_time"):
                    _ensure_int(pos, key, 0)

    fees = _ensure_dict(st, "fees")
    _ensure_int(fees, "collected", 0)
    _ensure_int(fees, "burned_total", 0)

    _ensure_dict(st, "accounts")
    _ensure_dict(st, "referral_rewards")
    _ensure_dict(st, "tokens")
    _ensure_dict(st, "referral_directory")
    exempt = _ensure_list(st, "fee_exempt")
    st["fee_exempt"] = sorted({a for a in exempt if isinstance(a, str) and a})

    vaults = _ensure_dict(st, "vaults")
    for vault in vaults.values():
        if not isinstance(vault, dict):
            continue
        _ensure_int(vault, "total_shares", 0)
        _ensure_int(vault, "fees", 0)
        _ensure_dict(vault, "shares")
        _ensure_int(vault, "restake_reward_bps", DEFAULT_VAULT_RESTAKE_REWARD_BPS)
        _ensure_int(vault, "performance_fee_bps", DEFAULT_VAULT_PERFORMANCE_FEE_BPS)
        _ensure_int(vault, "withdraw_fee_bps", DEFAULT_VAULT_WITHDRAW_FEE_BPS)

    st["state_version"] = 1
    return st


_MIGRATIONS: Dict[int, Callable[[Json], Json]] = {
    0: _migrate_v0_to_v1,
}


def migrate_state_dict(raw: Any) -> Json:
    """
    Upgrade a raw persisted JSON dict to CURRENT_STATE_VERSION.

    - Best-effort: never raises for simple shape issues; it normalizes.
    - If raw isn't a dict, returns an empty vCURRENT state skeleton.
    """
    st: Json = raw if isinstance(raw, dict) else {}

    v = _as_int(st.get("state_version"), 0)
    if v > CURRENT_STATE_VERSION:
        # Future state created by a newer binary; refuse to downgrade silently.
        raise ValueError(
            f"Ledger state version {v} is newer than this binary supports (max {CURRENT_STATE_VERSION})."
        )

    while v < CURRENT_STATE_VERSION:
        step = _MIGRATIONS.get(v)
        if step is None:
            raise ValueError(f"No migration path from state_version={v} to {CURRENT_STATE_VERSION}.")
        st = step(st)
        v = _as_int(st.get("state_version"), v + 1)

    st["state_version"] = CURRENT_STATE_VERSION
    return st


__all__ = ["CURRENT_STATE_VERSION", "migrate_state_dict"]
