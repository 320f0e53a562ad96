# src/ultrastake/runtime/apply/vault.py
from __future__ import annotations

"""AutoCompounder vault domain apply semantics.

A vault is a share-based wrapper around one engine position held by the
account `vault:<pid>`. It only makes sense for pools whose stake token is the
reward token, so realised rewards can be staked back. The vault account is
fee-exempt: it is charged once, by the vault's own performance fee.

    total = staked_in_engine + idle
    idle  = vault_balance - vault_fees

Share price is total / total_shares. Rewards still pending in the engine are
not part of `total` until someone restakes.

state["vaults"][str(pid)]:
    {pid, account, total_shares, shares: {user: int}, fees,
     restake_reward_bps, performance_fee_bps, withdraw_fee_bps}
"""

from typing import Any, Dict, Optional, Set

from ultrastake.ledger import token
from ultrastake.ledger.constants import (
    BPS_BASE,
    DEFAULT_VAULT_PERFORMANCE_FEE_BPS,
    DEFAULT_VAULT_RESTAKE_REWARD_BPS,
    DEFAULT_VAULT_WITHDRAW_FEE_BPS,
    ENGINE_ACCOUNT,
    VAULT_ACCOUNT_PREFIX,
)
from ultrastake.runtime.apply import staking
from ultrastake.runtime.apply.admin import params, require_non_negative_int, require_owner
from ultrastake.runtime.apply.fees import add_fee_exempt
from ultrastake.runtime.apply.pools import get_pool, now_of, require_fee_bps
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


def vault_account(pid: int) -> str:
    return f"{VAULT_ACCOUNT_PREFIX}{int(pid)}"


def _vaults_root(state: Json) -> Json:
    v = state.get("vaults")
    if not isinstance(v, dict):
        v = {}
        state["vaults"] = v
    return v


def get_vault(state: Json, pid: Any) -> Json:
    pool = get_pool(state, pid)
    vault = _vaults_root(state).get(str(pool["pid"]))
    if not isinstance(vault, dict):
        raise ValidationError("vault_not_found", {"pid": pool["pid"]})
    return vault


def vault_totals(state: Json, vault: Json) -> Json:
    """Accounting snapshot of a vault. Pure read."""
    pid = _as_int(vault.get("pid"), 0)
    acct = str(vault.get("account") or vault_account(pid))
    pools = state.get("pools") if isinstance(state.get("pools"), list) else []
    stake_token = pools[pid]["stake_token"] if pid < len(pools) else ""

    pos = _as_dict(_as_dict(_as_dict(state.get("positions")).get(str(pid))).get(acct))
    staked = _as_int(pos.get("amount"), 0)
    balance = token.balance_of(state, stake_token, acct) if stake_token else 0
    fees = _as_int(vault.get("fees"), 0)
    idle = max(0, balance - fees)
    return {
        "pid": pid,
        "account": acct,
        "staked": staked,
        "balance": balance,
        "fees": fees,
        "idle": idle,
        "total": staked + idle,
        "total_shares": _as_int(vault.get("total_shares"), 0),
    }


def _stake_idle(state: Json, vault: Json, amount: int, now: int) -> None:
    if amount <= 0:
        return
    pid = _as_int(vault["pid"], 0)
    pool = get_pool(state, pid)
    token.approve(state, pool["stake_token"], vault["account"], ENGINE_ACCOUNT, amount)
    staking.deposit(state, pid, vault["account"], amount, None, now)


def _apply_vault_create(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    pool = get_pool(state, _as_dict(env.payload).get("pid"))
    pid = pool["pid"]
    if pool.get("stake_token") != params(state).get("reward_token"):
        raise ValidationError("vault_requires_reward_token_pool", {"pid": pid, "stake_token": pool.get("stake_token")})

    root = _vaults_root(state)
    if isinstance(root.get(str(pid)), dict):
        raise ValidationError("vault_exists", {"pid": pid})

    acct = vault_account(pid)
    root[str(pid)] = {
        "pid": pid,
        "account": acct,
        "total_shares": 0,
        "shares": {},
        "fees": 0,
        "restake_reward_bps": DEFAULT_VAULT_RESTAKE_REWARD_BPS,
        "performance_fee_bps": DEFAULT_VAULT_PERFORMANCE_FEE_BPS,
        "withdraw_fee_bps": DEFAULT_VAULT_WITHDRAW_FEE_BPS,
    }
    add_fee_exempt(state, [acct])
    return {"applied": "VAULT_CREATE", "pid": pid, "account": acct}


def _apply_vault_set_params(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    payload = _as_dict(env.payload)
    vault = get_vault(state, payload.get("pid"))

    updated = dict(vault)
    for key in ("restake_reward_bps", "performance_fee_bps", "withdraw_fee_bps"):
        if payload.get(key) is not None:
            updated[key] = require_fee_bps(payload.get(key), field=key)

    cut = _as_int(updated["restake_reward_bps"]) + _as_int(updated["performance_fee_bps"])
    if cut > BPS_BASE:
        raise ValidationError("vault_fees_out_of_range", {"restake_plus_performance_bps": cut, "max": BPS_BASE})

    vault.update(updated)
    return {
        "applied": "VAULT_SET_PARAMS",
        "pid": vault["pid"],
        "restake_reward_bps": vault["restake_reward_bps"],
        "performance_fee_bps": vault["performance_fee_bps"],
        "withdraw_fee_bps": vault["withdraw_fee_bps"],
    }


def _apply_vault_deposit(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    vault = get_vault(state, payload.get("pid"))
    amount = require_non_negative_int(payload.get("amount"), field="amount")
    if amount == 0:
        raise ValidationError("zero_amount", {"field": "amount"})
    now = now_of(state)
    pool = get_pool(state, vault["pid"])

    totals = vault_totals(state, vault)
    total_shares = totals["total_shares"]
    if total_shares == 0 or totals["total"] == 0:
        minted = amount
    else:
        minted = amount * total_shares // totals["total"]

    token.transfer_from(state, pool["stake_token"], vault["account"], env.signer, vault["account"], amount)
    _stake_idle(state, vault, amount, now)

    shares = vault.setdefault("shares", {})
    shares[env.signer] = _as_int(shares.get(env.signer), 0) + minted
    vault["total_shares"] = total_shares + minted
    return {"applied": "VAULT_DEPOSIT", "pid": vault["pid"], "amount": amount, "shares": minted}


def _apply_vault_withdraw(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    vault = get_vault(state, payload.get("pid"))
    burn_shares = require_non_negative_int(payload.get("shares"), field="shares")
    if burn_shares == 0:
        raise ValidationError("zero_amount", {"field": "shares"})

    shares = vault.setdefault("shares", {})
    held = _as_int(shares.get(env.signer), 0)
    if burn_shares > held:
        raise ValidationError("insufficient_shares", {"held": held, "shares": burn_shares})

    now = now_of(state)
    pool = get_pool(state, vault["pid"])
    totals = vault_totals(state, vault)
    amount = burn_shares * totals["total"] // totals["total_shares"]

    left = held - burn_shares
    if left:
        shares[env.signer] = left
    else:
        shares.pop(env.signer, None)
    vault["total_shares"] = totals["total_shares"] - burn_shares

    needed = max(0, amount - totals["idle"])
    if needed > 0:
        staking.withdraw(state, vault["pid"], vault["account"], needed, None, now, enforce_lock=False)

    fee = amount * _as_int(vault.get("withdraw_fee_bps"), 0) // BPS_BASE
    vault["fees"] = _as_int(vault.get("fees"), 0) + fee
    token.transfer(state, pool["stake_token"], vault["account"], env.signer, amount - fee)
    return {"applied": "VAULT_WITHDRAW", "pid": vault["pid"], "shares": burn_shares, "amount": amount - fee, "fee": fee}


def _apply_vault_restake(state: Json, env: TxEnvelope) -> Json:
    vault = get_vault(state, _as_dict(env.payload).get("pid"))
    now = now_of(state)
    pool = get_pool(state, vault["pid"])

    # A zero deposit realises pending reward into the vault account.
    staking.deposit(state, vault["pid"], vault["account"], 0, None, now)

    idle = vault_totals(state, vault)["idle"]
    bounty = idle * _as_int(vault.get("restake_reward_bps"), 0) // BPS_BASE
    perf_fee = idle * _as_int(vault.get("performance_fee_bps"), 0) // BPS_BASE
    compounded = idle - bounty - perf_fee

    if bounty > 0:
        token.transfer(state, pool["stake_token"], vault["account"], env.signer, bounty)
    vault["fees"] = _as_int(vault.get("fees"), 0) + perf_fee
    _stake_idle(state, vault, compounded, now)

    return {
        "applied": "VAULT_RESTAKE",
        "pid": vault["pid"],
        "bounty": bounty,
        "performance_fee": perf_fee,
        "compounded": compounded,
    }


def _apply_vault_sweep_fees(state: Json, env: TxEnvelope) -> Json:
    owner = require_owner(state, env)
    vault = get_vault(state, _as_dict(env.payload).get("pid"))
    pool = get_pool(state, vault["pid"])
    amount = _as_int(vault.get("fees"), 0)
    if amount > 0:
        token.transfer(state, pool["stake_token"], vault["account"], owner, amount)
    vault["fees"] = 0
    return {"applied": "VAULT_SWEEP_FEES", "pid": vault["pid"], "to": owner, "amount": amount}


VAULT_TX_TYPES: Set[str] = {
    "VAULT_CREATE",
    "VAULT_SET_PARAMS",
    "VAULT_DEPOSIT",
    "VAULT_WITHDRAW",
    "VAULT_RESTAKE",
    "VAULT_SWEEP_FEES",
}


def apply_vault(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = str(env.tx_type or "").strip()
    if t not in VAULT_TX_TYPES:
        return None

    if t == "VAULT_CREATE":
        return _apply_vault_create(state, env)
    if t == "VAULT_SET_PARAMS":
        return _apply_vault_set_params(state, env)
    if t == "VAULT_DEPOSIT":
        return _apply_vault_deposit(state, env)
    if t == "VAULT_WITHDRAW":
        return _apply_vault_withdraw(state, env)
    if t == "VAULT_RESTAKE":
        return _apply_vault_restake(state, env)
    if t == "VAULT_SWEEP_FEES":
        return _apply_vault_sweep_fees(state, env)
    return None


__all__ = ["VAULT_TX_TYPES", "apply_vault", "get_vault", "vault_account", "vault_totals"]
