# src/ultrastake/ledger/referral_directory.py
from __future__ import annotations

"""Referral graph (external collaborator).

Stored under state["referral_directory"] as {user: referrer}. The staking
engine never writes here; it only consumes a `ReferrerOf` function built by
`referrer_lookup(state)`. Registration is the directory's own operation
(REFERRAL_REGISTER): first-write-wins, no self-referral, no cycles.
"""

from typing import Any, Callable, Dict, Optional

from ultrastake.ledger.constants import ZERO_ADDRESS
from ultrastake.runtime.errors import StateGateError, ValidationError

Json = Dict[str, Any]

ReferrerOf = Callable[[str], Optional[str]]


def _as_str(v: Any) -> str:
    return v.strip() if isinstance(v, str) else ""


def _directory(state: Json) -> Json:
    d = state.get("referral_directory")
    if not isinstance(d, dict):
        d = {}
        state["referral_directory"] = d
    return d


def register_referrer(state: Json, user: str, referrer: str) -> None:
    u = _as_str(user)
    r = _as_str(referrer)
    if not u or u == ZERO_ADDRESS:
        raise ValidationError("zero_address", {"field": "user"})
    if not r or r == ZERO_ADDRESS:
        raise ValidationError("zero_address", {"field": "referrer"})
    if u == r:
        raise ValidationError("self_referral", {"user": u})

    d = _directory(state)
    if u in d:
        raise StateGateError("referrer_already_set", {"user": u, "referrer": d[u]})

    # Walk up from the new referrer; reaching the user would close a loop.
    hop, steps = r, 0
    while hop and steps <= len(d):
        if hop == u:
            raise ValidationError("referral_cycle", {"user": u, "referrer": r})
        hop, steps = _as_str(d.get(hop)), steps + 1
    d[u] = r


def referrer_lookup(state: Json) -> ReferrerOf:
    """Return a read-only `referrerOf(user)` bound to the current directory."""
    d = state.get("referral_directory")
    snapshot: Dict[str, str] = dict(d) if isinstance(d, dict) else {}

    def referrer_of(user: str) -> Optional[str]:
        r = snapshot.get(_as_str(user))
        if not isinstance(r, str) or not r or r == ZERO_ADDRESS:
            return None
        return r

    return referrer_of


__all__ = ["ReferrerOf", "referrer_lookup", "register_referrer"]
