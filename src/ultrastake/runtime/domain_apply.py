# src/ultrastake/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict

from ultrastake.runtime.domain_dispatch import apply_tx
from ultrastake.runtime.errors import ApplyError
from ultrastake.runtime.sigverify import signatures_required
from ultrastake.runtime.state_invariants import check_staking_invariants
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _record_nonce(state: Json, env: TxEnvelope) -> None:
    """Advance the signer's nonce. Only tracked while signatures are enforced."""
    if not signatures_required(state):
        return
    accounts = state.setdefault("accounts", {})
    acct = accounts.get(env.signer)
    if not isinstance(acct, dict):
        acct = {"nonce": 0}
        accounts[env.signer] = acct
    acct["nonce"] = int(env.nonce)


def apply_tx_atomic(state: Json, env: Any, *, now: int, strict: bool = True) -> Json:
    """Apply a tx at time `now` with fail-atomic semantics.

    On success `state` is updated as if apply_tx() ran directly. On any
    ApplyError (including a post-apply InvariantViolation when `strict`)
    `state` is left untouched.
    """
    env_norm = TxEnvelope.from_json(env)

    # Apply on a deep copy to guarantee atomicity.
    snapshot = copy.deepcopy(state)
    snapshot["time"] = int(now)

    meta = apply_tx(snapshot, env_norm)
    if strict:
        check_staking_invariants(snapshot, prev=state)
    _record_nonce(snapshot, env_norm)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "Json"]
