# src/ultrastake/runtime/genesis_config.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ultrastake.ledger import token
from ultrastake.ledger.constants import (
    DEFAULT_LOCK_DURATION,
    DEFAULT_REFERRAL_OWNER_WITHDRAW_AWAIT,
    ENGINE_ACCOUNT,
    ZERO_ADDRESS,
)
from ultrastake.ledger.migrations import migrate_state_dict
from ultrastake.ledger.referral_directory import register_referrer
from ultrastake.runtime.domain_dispatch import apply_tx
from ultrastake.runtime.state_invariants import check_staking_invariants, ensure_state
from ultrastake.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


def _as_str(v: Any) -> str:
    return v.strip() if isinstance(v, str) else ""


@dataclass(frozen=True, slots=True)
class GenesisPool:
    stake_token: str
    alloc_point: int
    fee_bps: int = 0


@dataclass(frozen=True, slots=True)
class GenesisConfig:
    reward_token: str
    owner: str
    reward_per_second: int
    start_time: int
    burn_address: str
    pools: List[GenesisPool] = field(default_factory=list)
    genesis_time: int = 0
    referral_percent_bps: int = 0
    min_referral_reward: int = 0
    referral_owner_withdraw_await: int = DEFAULT_REFERRAL_OWNER_WITHDRAW_AWAIT
    lock_duration: int = DEFAULT_LOCK_DURATION
    require_signatures: bool = False
    # token -> {account: amount}
    allocations: Dict[str, Dict[str, int]] = field(default_factory=dict)
    # token -> [minter, ...], on top of the engine for the reward token
    minters: Dict[str, List[str]] = field(default_factory=dict)
    # user -> referrer
    referrals: Dict[str, str] = field(default_factory=dict)
    # account -> ed25519 pubkey
    keys: Dict[str, str] = field(default_factory=dict)
    fee_exempt: List[str] = field(default_factory=list)


def genesis_from_dict(obj: Any) -> GenesisConfig:
    """Build a GenesisConfig from a parsed JSON object.

    Shape:
      { "reward_token": "ULTRA", "owner": "alice", "reward_per_second": 10,
        "start_time": 0, "burn_address": "burn",
        "first_pool_alloc_point": 1000, "first_pool_fee_bps": 400,
        "pools": [ {"stake_token": "LP", "alloc_point": 500, "fee_bps": 0} ],
        "allocations": {"ULTRA": {"bob": 1000}}, "minters": {"ULTRA": ["alice"]},
        "referrals": {"bob": "carol"}, "keys": {"alice": "<hex pubkey>"},
        "require_signatures": false, ... }

    The first pool always stakes the reward token (as the deployed contract
    does); `pools` are added after it, in order.
    """
    if not isinstance(obj, dict):
        raise ValueError("genesis config must be a JSON object")

    reward_token = _as_str(obj.get("reward_token"))
    owner = _as_str(obj.get("owner"))
    burn_address = _as_str(obj.get("burn_address"))
    for name, v in (("reward_token", reward_token), ("owner", owner), ("burn_address", burn_address)):
        if not v:
            raise ValueError(f"genesis {name} must be a non-empty string")
    if burn_address == ZERO_ADDRESS:
        raise ValueError("genesis burn_address must not be the zero address")

    pools: List[GenesisPool] = [
        GenesisPool(
            stake_token=reward_token,
            alloc_point=_as_int(obj.get("first_pool_alloc_point"), 1000),
            fee_bps=_as_int(obj.get("first_pool_fee_bps"), 0),
        )
    ]
    extra = obj.get("pools")
    if isinstance(extra, list):
        for rec in extra:
            if not isinstance(rec, dict):
                continue
            st = _as_str(rec.get("stake_token"))
            if not st:
                continue
            pools.append(
                GenesisPool(
                    stake_token=st,
                    alloc_point=_as_int(rec.get("alloc_point"), 0),
                    fee_bps=_as_int(rec.get("fee_bps"), 0),
                )
            )

    allocations: Dict[str, Dict[str, int]] = {}
    raw_alloc = obj.get("allocations")
    if isinstance(raw_alloc, dict):
        for t, per in raw_alloc.items():
            if isinstance(t, str) and t.strip() and isinstance(per, dict):
                allocations[t.strip()] = {str(a): _as_int(n, 0) for a, n in per.items() if str(a).strip()}

    minters: Dict[str, List[str]] = {}
    raw_minters = obj.get("minters")
    if isinstance(raw_minters, dict):
        for t, ms in raw_minters.items():
            if isinstance(t, str) and t.strip() and isinstance(ms, list):
                minters[t.strip()] = [m.strip() for m in ms if isinstance(m, str) and m.strip()]

    def _str_map(key: str) -> Dict[str, str]:
        raw = obj.get(key)
        if not isinstance(raw, dict):
            return {}
        return {str(k).strip(): _as_str(v) for k, v in raw.items() if str(k).strip() and _as_str(v)}

    fee_exempt = obj.get("fee_exempt")
    return GenesisConfig(
        reward_token=reward_token,
        owner=owner,
        reward_per_second=_as_int(obj.get("reward_per_second"), 0),
        start_time=_as_int(obj.get("start_time"), 0),
        burn_address=burn_address,
        pools=pools,
        genesis_time=_as_int(obj.get("genesis_time"), 0),
        referral_percent_bps=_as_int(obj.get("referral_percent_bps"), 0),
        min_referral_reward=_as_int(obj.get("min_referral_reward"), 0),
        referral_owner_withdraw_await=_as_int(
            obj.get("referral_owner_withdraw_await"), DEFAULT_REFERRAL_OWNER_WITHDRAW_AWAIT
        ),
        lock_duration=_as_int(obj.get("lock_duration"), DEFAULT_LOCK_DURATION),
        require_signatures=bool(obj.get("require_signatures", False)),
        allocations=allocations,
        minters=minters,
        referrals=_str_map("referrals"),
        keys=_str_map("keys"),
        fee_exempt=[a.strip() for a in fee_exempt if isinstance(a, str) and a.strip()]
        if isinstance(fee_exempt, list)
        else [],
    )


def load_genesis(path: str) -> GenesisConfig:
    """Load GenesisConfig from a JSON file."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(str(p))

    with p.open("r", encoding="utf-8") as f:
        obj = json.load(f)

    return genesis_from_dict(obj)


def build_genesis_state(cfg: GenesisConfig) -> Json:
    """Materialize a fresh ledger state from a genesis config.

    Pools are added through the regular ADD_POOL applier so genesis pools are
    indistinguishable from pools added later. Signature enforcement is only
    switched on at the very end.
    """
    st: Json = migrate_state_dict({})
    ensure_state(st)
    st["time"] = int(cfg.genesis_time)

    st["params"].update(
        {
            "owner": cfg.owner,
            "reward_token": cfg.reward_token,
            "reward_per_second": int(cfg.reward_per_second),
            "start_time": int(cfg.start_time),
            "total_alloc_point": 0,
            "burn_address": cfg.burn_address,
            "referral_percent_bps": int(cfg.referral_percent_bps),
            "min_referral_reward": int(cfg.min_referral_reward),
            "referral_owner_withdraw_await": int(cfg.referral_owner_withdraw_await),
            "lock_duration": int(cfg.lock_duration),
            "require_signatures": False,
        }
    )

    # The engine is the only minter of the reward token unless genesis says otherwise.
    token.create_token(
        st,
        cfg.reward_token,
        admin=cfg.owner,
        minters_=[ENGINE_ACCOUNT] + list(cfg.minters.get(cfg.reward_token, [])),
    )
    for t, ms in cfg.minters.items():
        if t == cfg.reward_token:
            continue
        if not token.token_exists(st, t):
            token.create_token(st, t, admin=cfg.owner)
        for m in ms:
            token.grant_minter(st, t, m)

    for t, per in cfg.allocations.items():
        if not token.token_exists(st, t):
            token.create_token(st, t, admin=cfg.owner)
        rec = token.ensure_token(st, t)
        for account, amount in sorted(per.items()):
            if amount <= 0:
                continue
            # Genesis issuance bypasses the minter role.
            bals = rec["balances"]
            bals[account] = _as_int(bals.get(account), 0) + int(amount)
            rec["total_supply"] = _as_int(rec.get("total_supply"), 0) + int(amount)

    for p in cfg.pools:
        apply_tx(
            st,
            TxEnvelope(
                tx_type="ADD_POOL",
                signer=cfg.owner,
                nonce=0,
                payload={"stake_token": p.stake_token, "alloc_point": int(p.alloc_point), "fee_bps": int(p.fee_bps)},
            ),
        )

    for user, referrer in sorted(cfg.referrals.items()):
        register_referrer(st, user, referrer)

    accounts = st["accounts"]
    for account, pubkey in sorted(cfg.keys.items()):
        accounts[account] = {"nonce": 0, "pubkey": pubkey}

    if cfg.fee_exempt:
        st["fee_exempt"] = sorted(set(cfg.fee_exempt))

    st["params"]["require_signatures"] = bool(cfg.require_signatures)
    check_staking_invariants(st)
    return st


def genesis_state_from_path(path: Optional[str]) -> Optional[Json]:
    p = _as_str(path)
    if not p:
        return None
    return build_genesis_state(load_genesis(p))


__all__ = [
    "GenesisConfig",
    "GenesisPool",
    "build_genesis_state",
    "genesis_from_dict",
    "genesis_state_from_path",
    "load_genesis",
]
