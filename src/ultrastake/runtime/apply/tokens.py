# src/ultrastake/runtime/apply/tokens.py
from __future__ import annotations

"""Collaborator txs: token ledger, referral directory and signer keys.

These are the operations the staking engine consumes but does not own. They
are exposed as txs so a single executor can drive a complete local system.
"""

from typing import Any, Dict, Optional, Set

from ultrastake.ledger import token
from ultrastake.ledger.referral_directory import register_referrer
from ultrastake.runtime.errors import AuthorizationError, StateGateError, ValidationError
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_str(x: Any) -> str:
    return x.strip() if isinstance(x, str) else ""


def _token_id(payload: Json) -> str:
    t = _as_str(payload.get("token"))
    if not t:
        raise ValidationError("missing_token", {})
    return t


def _require_known_token(state: Json, t: str) -> str:
    if not token.token_exists(state, t):
        raise ValidationError("token_not_found", {"token": t})
    return t


def _apply_token_create(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    t = _token_id(p)
    minters = [m for m in p.get("minters", []) if isinstance(m, str)]
    token.create_token(state, t, admin=env.signer, minters_=minters)
    return {"applied": "TOKEN_CREATE", "token": t, "admin": env.signer, "minters": token.minters(state, t)}


def _apply_token_mint(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    t = _require_known_token(state, _token_id(p))
    amt = token.mint(state, t, _as_str(p.get("to")), p.get("amount"), minter=env.signer)
    return {"applied": "TOKEN_MINT", "token": t, "to": p.get("to"), "amount": amt}


def _apply_token_burn(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    t = _require_known_token(state, _token_id(p))
    amt = token.burn(state, t, env.signer, p.get("amount"))
    return {"applied": "TOKEN_BURN", "token": t, "amount": amt}


def _apply_token_transfer(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    t = _require_known_token(state, _token_id(p))
    amt = token.transfer(state, t, env.signer, _as_str(p.get("to")), p.get("amount"))
    return {"applied": "TOKEN_TRANSFER", "token": t, "to": p.get("to"), "amount": amt}


def _apply_token_approve(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    t = _require_known_token(state, _token_id(p))
    amt = token.approve(state, t, env.signer, _as_str(p.get("spender")), p.get("amount"))
    return {"applied": "TOKEN_APPROVE", "token": t, "spender": p.get("spender"), "amount": amt}


def _apply_token_grant_minter(state: Json, env: TxEnvelope) -> Json:
    p = _as_dict(env.payload)
    t = _require_known_token(state, _token_id(p))
    if env.signer != token.token_admin(state, t):
        raise AuthorizationError("not_token_admin", {"token": t, "signer": env.signer})
    token.grant_minter(state, t, _as_str(p.get("minter")))
    return {"applied": "TOKEN_GRANT_MINTER", "token": t, "minters": token.minters(state, t)}


def _apply_referral_register(state: Json, env: TxEnvelope) -> Json:
    referrer = _as_str(_as_dict(env.payload).get("referrer"))
    register_referrer(state, env.signer, referrer)
    return {"applied": "REFERRAL_REGISTER", "user": env.signer, "referrer": referrer}


def _apply_key_register(state: Json, env: TxEnvelope) -> Json:
    pubkey = _as_str(_as_dict(env.payload).get("pubkey"))
    if not pubkey:
        raise ValidationError("missing_pubkey", {})

    accounts = state.get("accounts")
    if not isinstance(accounts, dict):
        accounts = {}
        state["accounts"] = accounts
    acct = accounts.get(env.signer)
    if not isinstance(acct, dict):
        acct = {"nonce": 0}
        accounts[env.signer] = acct
    if _as_str(acct.get("pubkey")):
        raise StateGateError("key_already_registered", {"signer": env.signer})
    acct["pubkey"] = pubkey
    return {"applied": "KEY_REGISTER", "signer": env.signer, "pubkey": pubkey}


COLLABORATOR_TX_TYPES: Set[str] = {
    "TOKEN_CREATE",
    "TOKEN_MINT",
    "TOKEN_BURN",
    "TOKEN_TRANSFER",
    "TOKEN_APPROVE",
    "TOKEN_GRANT_MINTER",
    "REFERRAL_REGISTER",
    "KEY_REGISTER",
}


def apply_tokens(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = str(env.tx_type or "").strip()
    if t not in COLLABORATOR_TX_TYPES:
        return None

    if t == "TOKEN_CREATE":
        return _apply_token_create(state, env)
    if t == "TOKEN_MINT":
        return _apply_token_mint(state, env)
    if t == "TOKEN_BURN":
        return _apply_token_burn(state, env)
    if t == "TOKEN_TRANSFER":
        return _apply_token_transfer(state, env)
    if t == "TOKEN_APPROVE":
        return _apply_token_approve(state, env)
    if t == "TOKEN_GRANT_MINTER":
        return _apply_token_grant_minter(state, env)
    if t == "REFERRAL_REGISTER":
        return _apply_referral_register(state, env)
    if t == "KEY_REGISTER":
        return _apply_key_register(state, env)
    return None


__all__ = ["COLLABORATOR_TX_TYPES", "apply_tokens"]
