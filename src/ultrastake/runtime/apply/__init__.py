# src/ultrastake/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module implements deterministic ledger state transitions for a subset of
tx types and exposes one `apply_<domain>(state, env) -> Optional[Json]`
entrypoint; returning None means "not mine". domain_dispatch chains them.

NOTE: Keep this package import-safe (no imports of domain_dispatch).
"""

from __future__ import annotations

__all__ = [
    "admin",
    "fees",
    "pools",
    "referrals",
    "staking",
    "tokens",
    "vault",
]
