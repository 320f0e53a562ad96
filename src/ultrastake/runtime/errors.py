from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class _CodedApplyError(ApplyError):
    """ApplyError whose `code` is fixed by the subclass.

    Callers only pick a stable `reason`; the taxonomy decides the code.
    """

    CODE = "apply_error"

    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__(self.CODE, reason, details)


class ValidationError(_CodedApplyError):
    """Bad input: unknown pool, zero address, amount over balance/allowance/stake."""

    CODE = "invalid"


class AuthorizationError(_CodedApplyError):
    """Signer is not allowed to perform the operation."""

    CODE = "forbidden"


class StateGateError(_CodedApplyError):
    """Operation is valid but the ledger is not in a state that permits it yet."""

    CODE = "gated"


class LockedError(StateGateError):
    CODE = "locked"


class TooEarlyError(StateGateError):
    CODE = "too_early"


class BelowThresholdError(StateGateError):
    CODE = "below_threshold"


class InvariantViolation(_CodedApplyError):
    CODE = "invariant_violation"


__all__ = [
    "ApplyError",
    "AuthorizationError",
    "BelowThresholdError",
    "InvariantViolation",
    "LockedError",
    "StateGateError",
    "TooEarlyError",
    "ValidationError",
]
