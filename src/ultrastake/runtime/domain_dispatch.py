# src/ultrastake/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ultrastake.ledger.constants import ENGINE_ACCOUNT, VAULT_ACCOUNT_PREFIX, ZERO_ADDRESS
from ultrastake.runtime.errors import ApplyError, AuthorizationError
from ultrastake.runtime.state_invariants import ensure_state
from ultrastake.runtime.tx_admission_types import TxEnvelope

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from ultrastake.runtime.apply.admin import apply_admin
from ultrastake.runtime.apply.fees import apply_fees
from ultrastake.runtime.apply.pools import apply_pools
from ultrastake.runtime.apply.referrals import apply_referrals
from ultrastake.runtime.apply.staking import apply_staking
from ultrastake.runtime.apply.tokens import apply_tokens
from ultrastake.runtime.apply.vault import apply_vault

Json = Dict[str, Any]
ApplyFn = Callable[[Json, TxEnvelope], Optional[Json]]


def _enforce_signer(env: TxEnvelope) -> None:
    """Protocol-held accounts never sign; their tokens move only through appliers."""
    signer = env.signer
    if not signer:
        raise ApplyError("invalid", "missing_signer", {"tx_type": env.tx_type})
    if signer in {ENGINE_ACCOUNT, ZERO_ADDRESS} or signer.startswith(VAULT_ACCOUNT_PREFIX):
        raise AuthorizationError("reserved_account", {"signer": signer, "tx_type": env.tx_type})


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_tokens,
    apply_pools,
    apply_staking,
    apply_fees,
    apply_referrals,
    apply_admin,
    apply_vault,
)


def apply_tx(state: Json, env: Any) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it."""

    ensure_state(state)

    env_norm = TxEnvelope.from_json(env)

    t = env_norm.tx_type
    if not t:
        raise ApplyError("invalid", "missing_tx_type", {"tx_type": t})

    _enforce_signer(env_norm)

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm)
        except ApplyError:
            raise
        except Exception as e:
            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("invalid", "tx_type_not_implemented", {"tx_type": t})


__all__ = ["apply_tx"]
