# src/ultrastake/ledger/token.py
from __future__ import annotations

"""Fungible token ledger (external collaborator).

The engine does not own token accounting; it only calls the capabilities an
ERC20-style token exposes. Tokens live under state["tokens"][token_id]:

    {
      "total_supply": int,
      "balances": {account: int},
      "allowances": {owner: {spender: int}},
      "minters": [account, ...],
      "admin": account          (TOKEN_CREATE signer)
    }

Minting is role-gated by the `minters` list; the staking engine account is
granted the minter role on the reward token at genesis.
"""

from typing import Any, Dict, List, Optional

from ultrastake.ledger.constants import ZERO_ADDRESS
from ultrastake.runtime.errors import AuthorizationError, ValidationError

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount_not_int", {"amount": repr(amount)})
    if amount < 0:
        raise ValidationError("negative_amount", {"amount": amount})
    return amount


def _require_account(account: Any, *, field: str) -> str:
    a = _as_str(account)
    if not a or a == ZERO_ADDRESS:
        raise ValidationError("zero_address", {"field": field})
    return a


def _tokens_root(state: Json) -> Json:
    root = state.get("tokens")
    if not isinstance(root, dict):
        root = {}
        state["tokens"] = root
    return root


def ensure_token(state: Json, token: str) -> Json:
    """Return the token record, creating an empty one on first touch."""
    t = _as_str(token)
    if not t:
        raise ValidationError("missing_token", {})
    root = _tokens_root(state)
    rec = root.get(t)
    if not isinstance(rec, dict):
        rec = {}
        root[t] = rec
    rec.setdefault("total_supply", 0)
    rec.setdefault("balances", {})
    rec.setdefault("allowances", {})
    rec.setdefault("minters", [])
    return rec


def create_token(state: Json, token: str, *, admin: str, minters_: Optional[List[str]] = None) -> Json:
    """Register a new token. `admin` may later grant the minter role."""
    if token_exists(state, token):
        raise ValidationError("token_exists", {"token": token})
    rec = ensure_token(state, token)
    rec["admin"] = _require_account(admin, field="admin")
    for m in minters_ or []:
        grant_minter(state, token, m)
    return rec


def token_admin(state: Json, token: str) -> str:
    root = state.get("tokens")
    rec = root.get(_as_str(token)) if isinstance(root, dict) else None
    if not isinstance(rec, dict):
        return ""
    return _as_str(rec.get("admin"))


def token_exists(state: Json, token: str) -> bool:
    root = state.get("tokens")
    return isinstance(root, dict) and isinstance(root.get(_as_str(token)), dict)


def balance_of(state: Json, token: str, account: str) -> int:
    root = state.get("tokens")
    if not isinstance(root, dict):
        return 0
    rec = root.get(_as_str(token))
    if not isinstance(rec, dict):
        return 0
    bals = rec.get("balances")
    if not isinstance(bals, dict):
        return 0
    return _as_int(bals.get(_as_str(account)), 0)


def allowance(state: Json, token: str, owner: str, spender: str) -> int:
    root = state.get("tokens")
    if not isinstance(root, dict):
        return 0
    rec = root.get(_as_str(token))
    if not isinstance(rec, dict):
        return 0
    per_owner = rec.get("allowances", {}).get(_as_str(owner))
    if not isinstance(per_owner, dict):
        return 0
    return _as_int(per_owner.get(_as_str(spender)), 0)


def minters(state: Json, token: str) -> List[str]:
    root = state.get("tokens")
    if not isinstance(root, dict):
        return []
    rec = root.get(_as_str(token))
    if not isinstance(rec, dict):
        return []
    return [m for m in rec.get("minters", []) if isinstance(m, str)]


def _credit(rec: Json, account: str, amount: int) -> None:
    bals = rec["balances"]
    bals[account] = _as_int(bals.get(account), 0) + int(amount)


def _debit(rec: Json, token: str, account: str, amount: int) -> None:
    bals = rec["balances"]
    have = _as_int(bals.get(account), 0)
    if have < amount:
        raise ValidationError(
            "insufficient_balance",
            {"token": token, "account": account, "balance": have, "amount": amount},
        )
    left = have - int(amount)
    if left:
        bals[account] = left
    else:
        bals.pop(account, None)


def grant_minter(state: Json, token: str, account: str) -> None:
    rec = ensure_token(state, token)
    acct = _require_account(account, field="minter")
    ms = [m for m in rec.get("minters", []) if isinstance(m, str)]
    if acct not in ms:
        ms.append(acct)
        ms.sort()
    rec["minters"] = ms


def mint(state: Json, token: str, to: str, amount: int, *, minter: str) -> int:
    """Mint `amount` to `to`. Only accounts holding the minter role may mint."""
    amt = _require_amount(amount)
    rec = ensure_token(state, token)
    if _as_str(minter) not in rec.get("minters", []):
        raise AuthorizationError("not_minter", {"token": token, "minter": minter})
    dst = _require_account(to, field="to")
    if amt == 0:
        return 0
    _credit(rec, dst, amt)
    rec["total_supply"] = _as_int(rec.get("total_supply"), 0) + amt
    return amt


def burn(state: Json, token: str, account: str, amount: int) -> int:
    amt = _require_amount(amount)
    rec = ensure_token(state, token)
    src = _require_account(account, field="account")
    if amt == 0:
        return 0
    _debit(rec, token, src, amt)
    rec["total_supply"] = _as_int(rec.get("total_supply"), 0) - amt
    return amt


def transfer(state: Json, token: str, sender: str, to: str, amount: int) -> int:
    amt = _require_amount(amount)
    rec = ensure_token(state, token)
    src = _require_account(sender, field="from")
    dst = _require_account(to, field="to")
    if amt == 0:
        return 0
    _debit(rec, token, src, amt)
    _credit(rec, dst, amt)
    return amt


def approve(state: Json, token: str, owner: str, spender: str, amount: int) -> int:
    amt = _require_amount(amount)
    rec = ensure_token(state, token)
    own = _require_account(owner, field="owner")
    sp = _require_account(spender, field="spender")
    allowances = rec["allowances"]
    per_owner = allowances.get(own)
    if not isinstance(per_owner, dict):
        per_owner = {}
        allowances[own] = per_owner
    if amt:
        per_owner[sp] = amt
    else:
        per_owner.pop(sp, None)
        if not per_owner:
            allowances.pop(own, None)
    return amt


def transfer_from(state: Json, token: str, spender: str, owner: str, to: str, amount: int) -> int:
    """Move `amount` from `owner` to `to`, consuming `spender`'s allowance."""
    amt = _require_amount(amount)
    if amt == 0:
        return 0
    ensure_token(state, token)
    own = _require_account(owner, field="from")
    sp = _require_account(spender, field="spender")

    allowed = allowance(state, token, own, sp)
    if allowed < amt:
        raise ValidationError(
            "insufficient_allowance",
            {"token": token, "owner": own, "spender": sp, "allowance": allowed, "amount": amt},
        )
    transfer(state, token, own, to, amt)
    approve(state, token, own, sp, allowed - amt)
    return amt


__all__ = [
    "allowance",
    "approve",
    "balance_of",
    "burn",
    "create_token",
    "ensure_token",
    "grant_minter",
    "mint",
    "minters",
    "token_admin",
    "token_exists",
    "transfer",
    "transfer_from",
]
