# src/ultrastake/runtime/apply/fees.py
from __future__ import annotations

"""Fee vault and the reward payout pipeline.

Every realised reward goes through `route_payout`:

    fee      = gross * fee_bps // 10_000
    referral = gross * referral_percent_bps // 10_000   (minted on top of gross)
    net      = gross - fee

net is minted to the recipient, fee // 2 to the burn address and fee // 2 to
engine custody (tracked as fees.collected), so an odd fee unit is never minted.
Fee-exempt depositors receive gross untaxed and generate no referral bonus.
"""

from typing import Any, Dict, List, Optional, Set

from ultrastake.ledger import token
from ultrastake.ledger.constants import BPS_BASE, ENGINE_ACCOUNT
from ultrastake.ledger.referral_directory import referrer_lookup
from ultrastake.runtime.apply.admin import params, require_address, require_owner
from ultrastake.runtime.apply.referrals import credit_referral
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


def fees_root(state: Json) -> Json:
    f = state.get("fees")
    if not isinstance(f, dict):
        f = {}
        state["fees"] = f
    f.setdefault("collected", 0)
    f.setdefault("burned_total", 0)
    return f


def fee_exempt_list(state: Json) -> List[str]:
    cur = state.get("fee_exempt")
    if not isinstance(cur, list):
        cur = []
        state["fee_exempt"] = cur
    return cur


def is_fee_exempt(state: Json, account: str) -> bool:
    cur = state.get("fee_exempt")
    return isinstance(cur, list) and account in cur


def add_fee_exempt(state: Json, accounts: List[str]) -> List[str]:
    cur = set(fee_exempt_list(state))
    cur.update(accounts)
    state["fee_exempt"] = sorted(cur)
    return state["fee_exempt"]


def reward_token_of(state: Json) -> str:
    t = params(state).get("reward_token")
    if not isinstance(t, str) or not t:
        raise ValidationError("reward_token_not_configured", {})
    return t


def route_payout(state: Json, pool: Json, *, depositor: str, recipient: str, gross: int, now: int) -> Json:
    """Mint a realised reward through the fee/referral pipeline.

    Returns the breakdown of where `gross` (and the referral bonus) went.
    """
    out: Json = {"gross": int(gross), "net": 0, "fee": 0, "burned": 0, "collected": 0, "referral": 0, "referrer": None}
    if gross <= 0:
        return out

    p = params(state)
    rtoken = reward_token_of(state)

    if is_fee_exempt(state, depositor):
        token.mint(state, rtoken, recipient, gross, minter=ENGINE_ACCOUNT)
        out["net"] = int(gross)
        out["exempt"] = True
        return out

    fee = gross * _as_int(pool.get("fee_bps"), 0) // BPS_BASE
    referral = gross * _as_int(p.get("referral_percent_bps"), 0) // BPS_BASE
    net = gross - fee
    half = fee // 2

    token.mint(state, rtoken, recipient, net, minter=ENGINE_ACCOUNT)
    if half > 0:
        burn_address = require_address(p.get("burn_address"), field="burn_address")
        token.mint(state, rtoken, burn_address, half, minter=ENGINE_ACCOUNT)
        token.mint(state, rtoken, ENGINE_ACCOUNT, half, minter=ENGINE_ACCOUNT)
        f = fees_root(state)
        f["collected"] = _as_int(f.get("collected"), 0) + half
        f["burned_total"] = _as_int(f.get("burned_total"), 0) + half

    referrer: Optional[str] = None
    if referral > 0:
        referrer = referrer_lookup(state)(depositor)
        token.mint(state, rtoken, ENGINE_ACCOUNT, referral, minter=ENGINE_ACCOUNT)
        credit_referral(state, referrer, _as_int(pool.get("pid"), 0), referral, now)

    out.update({"net": net, "fee": fee, "burned": half, "collected": half, "referral": referral, "referrer": referrer})
    return out


def _apply_get_fees(state: Json, env: TxEnvelope) -> Json:
    owner = require_owner(state, env)
    f = fees_root(state)
    amount = _as_int(f.get("collected"), 0)
    if amount > 0:
        token.transfer(state, reward_token_of(state), ENGINE_ACCOUNT, owner, amount)
    f["collected"] = 0
    return {"applied": "GET_FEES", "to": owner, "amount": amount}


def _addresses(env: TxEnvelope) -> List[str]:
    raw = _as_dict(env.payload).get("addresses")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("missing_addresses", {})
    return [require_address(a, field="addresses") for a in raw]


def _apply_exclude_from_fee(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    exempt = add_fee_exempt(state, _addresses(env))
    return {"applied": "EXCLUDE_FROM_FEE", "fee_exempt": list(exempt)}


def _apply_include_in_fee(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    drop = set(_addresses(env))
    state["fee_exempt"] = sorted(a for a in fee_exempt_list(state) if a not in drop)
    return {"applied": "INCLUDE_IN_FEE", "fee_exempt": list(state["fee_exempt"])}


FEE_TX_TYPES: Set[str] = {"GET_FEES", "EXCLUDE_FROM_FEE", "INCLUDE_IN_FEE"}


def apply_fees(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = str(env.tx_type or "").strip()
    if t not in FEE_TX_TYPES:
        return None
    if t == "GET_FEES":
        return _apply_get_fees(state, env)
    if t == "EXCLUDE_FROM_FEE":
        return _apply_exclude_from_fee(state, env)
    if t == "INCLUDE_IN_FEE":
        return _apply_include_in_fee(state, env)
    return None


__all__ = [
    "FEE_TX_TYPES",
    "add_fee_exempt",
    "apply_fees",
    "fees_root",
    "is_fee_exempt",
    "reward_token_of",
    "route_payout",
]
