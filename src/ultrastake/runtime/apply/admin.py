# src/ultrastake/runtime/apply/admin.py
from __future__ import annotations

"""Admin domain: ownership and protocol-wide knobs that belong to no other domain.

Every admin tx in the engine (pool registry, fees, referrals, vault) goes
through `require_owner` before touching state.
"""

from typing import Any, Dict, Optional, Set

from ultrastake.ledger.constants import ZERO_ADDRESS
from ultrastake.runtime.errors import AuthorizationError, ValidationError
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_str(x: Any) -> str:
    return x.strip() if isinstance(x, str) else ""


def params(state: Json) -> Json:
    p = state.get("params")
    if not isinstance(p, dict):
        p = {}
        state["params"] = p
    return p


def owner_of(state: Json) -> str:
    return _as_str(params(state).get("owner"))


def require_owner(state: Json, env: TxEnvelope) -> str:
    owner = owner_of(state)
    if not owner or env.signer != owner:
        raise AuthorizationError("not_owner", {"tx_type": env.tx_type, "signer": env.signer})
    return owner


def require_address(v: Any, *, field: str) -> str:
    a = _as_str(v)
    if not a or a == ZERO_ADDRESS:
        raise ValidationError("zero_address", {"field": field})
    return a


def require_non_negative_int(v: Any, *, field: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValidationError("not_an_integer", {"field": field, "value": repr(v)})
    if v < 0:
        raise ValidationError("negative_amount", {"field": field, "value": v})
    return v


def _apply_transfer_ownership(state: Json, env: TxEnvelope) -> Json:
    old = require_owner(state, env)
    new_owner = require_address(_as_dict(env.payload).get("new_owner"), field="new_owner")
    params(state)["owner"] = new_owner
    return {"applied": "TRANSFER_OWNERSHIP", "previous_owner": old, "owner": new_owner}


def _apply_set_lock_duration(state: Json, env: TxEnvelope) -> Json:
    require_owner(state, env)
    seconds = require_non_negative_int(_as_dict(env.payload).get("seconds"), field="seconds")
    params(state)["lock_duration"] = seconds
    return {"applied": "SET_LOCK_DURATION", "lock_duration": seconds}


ADMIN_TX_TYPES: Set[str] = {"TRANSFER_OWNERSHIP", "SET_LOCK_DURATION"}


def apply_admin(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = str(env.tx_type or "").strip()
    if t not in ADMIN_TX_TYPES:
        return None
    if t == "TRANSFER_OWNERSHIP":
        return _apply_transfer_ownership(state, env)
    if t == "SET_LOCK_DURATION":
        return _apply_set_lock_duration(state, env)
    return None


__all__ = [
    "ADMIN_TX_TYPES",
    "apply_admin",
    "owner_of",
    "params",
    "require_address",
    "require_non_negative_int",
    "require_owner",
]
