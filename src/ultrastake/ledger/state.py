from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ultrastake.ledger import token
from ultrastake.ledger.accumulator import pending_for, preview_acc
from ultrastake.runtime.apply.staking import unlock_time
from ultrastake.runtime.apply.vault import vault_totals
from ultrastake.runtime.errors import ValidationError

Json = Dict[str, Any]


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


@dataclass(frozen=True, slots=True)
class StakingView:
    """
    Immutable read-only view of the staking ledger.

    Queries never mutate; `pending_reward` previews settlement at `now` and
    agrees exactly with what a harvest at the same instant would pay (gross,
    before fees).
    """

    state: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "StakingView":
        return cls(state=copy.deepcopy(state) if isinstance(state, dict) else {})

    @property
    def params(self) -> Json:
        p = self.state.get("params")
        return p if isinstance(p, dict) else {}

    @property
    def now(self) -> int:
        return _as_int(self.state.get("time"), 0)

    def _pools(self) -> List[Json]:
        p = self.state.get("pools")
        return p if isinstance(p, list) else []

    def _pool(self, pid: int) -> Json:
        pools = self._pools()
        if isinstance(pid, bool) or not isinstance(pid, int) or pid < 0 or pid >= len(pools):
            raise ValidationError("pool_not_found", {"pid": pid, "pool_length": len(pools)})
        return pools[pid]

    def _position(self, pid: int, user: str) -> Json:
        per_pool = (self.state.get("positions") or {}).get(str(pid))
        pos = per_pool.get(user) if isinstance(per_pool, dict) else None
        if not isinstance(pos, dict):
            return {"amount": 0, "reward_debt": 0, "last_action_time": 0}
        return pos

    def pool_length(self) -> int:
        return len(self._pools())

    def total_alloc_point(self) -> int:
        return _as_int(self.params.get("total_alloc_point"), 0)

    def pool_info(self, pid: int) -> Json:
        return dict(self._pool(pid))

    def user_info(self, pid: int, user: str) -> Json:
        self._pool(pid)
        pos = self._position(pid, user)
        return {
            "amount": _as_int(pos.get("amount"), 0),
            "reward_debt": _as_int(pos.get("reward_debt"), 0),
            "last_action_time": _as_int(pos.get("last_action_time"), 0),
        }

    def pending_reward(self, pid: int, user: str, now: Optional[int] = None) -> int:
        pool = self._pool(pid)
        at = self.now if now is None else int(now)
        acc = preview_acc(pool, self.params, at)
        return max(0, pending_for(self._position(pid, user), acc))

    def is_locked(self, pid: int, user: str, now: Optional[int] = None) -> bool:
        self._pool(pid)
        at = self.now if now is None else int(now)
        return at < unlock_time(self.state, self._position(pid, user))

    def unlock_time(self, pid: int, user: str) -> int:
        self._pool(pid)
        return unlock_time(self.state, self._position(pid, user))

    def referral_details(self, referrer: str, pid: int) -> int:
        per_ref = (self.state.get("referral_rewards") or {}).get(referrer)
        rec = per_ref.get(str(pid)) if isinstance(per_ref, dict) else None
        return _as_int(rec.get("amount"), 0) if isinstance(rec, dict) else 0

    def referral_record(self, referrer: str, pid: int) -> Json:
        per_ref = (self.state.get("referral_rewards") or {}).get(referrer)
        rec = per_ref.get(str(pid)) if isinstance(per_ref, dict) else None
        if not isinstance(rec, dict):
            return {"amount": 0, "last_accrual_time": 0}
        return {"amount": _as_int(rec.get("amount"), 0), "last_accrual_time": _as_int(rec.get("last_accrual_time"), 0)}

    def fees_collected(self) -> int:
        return _as_int((self.state.get("fees") or {}).get("collected"), 0)

    def fee_exempt(self) -> List[str]:
        cur = self.state.get("fee_exempt")
        return list(cur) if isinstance(cur, list) else []

    def balance_of(self, token_id: str, account: str) -> int:
        return token.balance_of(self.state, token_id, account)

    def referrer_of(self, user: str) -> Optional[str]:
        r = (self.state.get("referral_directory") or {}).get(user)
        return r if isinstance(r, str) and r else None

    def vault_info(self, pid: int) -> Json:
        self._pool(pid)
        vault = (self.state.get("vaults") or {}).get(str(pid))
        if not isinstance(vault, dict):
            raise ValidationError("vault_not_found", {"pid": pid})
        out = vault_totals(self.state, vault)
        out.update(
            {
                "restake_reward_bps": _as_int(vault.get("restake_reward_bps"), 0),
                "performance_fee_bps": _as_int(vault.get("performance_fee_bps"), 0),
                "withdraw_fee_bps": _as_int(vault.get("withdraw_fee_bps"), 0),
            }
        )
        return out

    def vault_shares(self, pid: int, user: str) -> int:
        vault = (self.state.get("vaults") or {}).get(str(pid))
        if not isinstance(vault, dict):
            return 0
        return _as_int((vault.get("shares") or {}).get(user), 0)
