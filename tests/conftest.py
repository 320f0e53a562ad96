from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest

# Ensure local "src/" takes precedence over any globally-installed "ultrastake" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from ultrastake.runtime import metrics  # noqa: E402
from ultrastake.runtime.clock import ManualClock  # noqa: E402
from ultrastake.runtime.executor import StakingExecutor  # noqa: E402
from ultrastake.runtime.genesis_config import genesis_from_dict  # noqa: E402

E = 10**18
DAY = 86_400
START = 1_000_000


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for k in (
        "ULTRASTAKE_NODE_CONFIG_PATH",
        "ULTRASTAKE_DB_PATH",
        "ULTRASTAKE_GENESIS_PATH",
        "ULTRASTAKE_MODE",
        "ULTRASTAKE_ENGINE_ID",
        "ULTRASTAKE_API_HOST",
        "ULTRASTAKE_API_PORT",
        "ULTRASTAKE_LOG_LEVEL",
        "ULTRASTAKE_STRICT_INVARIANTS",
        "ULTRASTAKE_METRICS_ENABLED",
        "ULTRASTAKE_API_EXPOSE_STATE",
        "ULTRASTAKE_CORS_ORIGINS",
        "ULTRASTAKE_MAX_REQUEST_BYTES",
        "ULTRASTAKE_SIZE_LIMIT_DISABLE",
    ):
        monkeypatch.delenv(k, raising=False)
    metrics.reset()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START - DAY)


def base_genesis(**overrides: Any) -> Dict[str, Any]:
    """Reference deployment: 1 token/s, pool 0 alloc 2 / fee 3%, referral 4%, one-day lock."""
    g: Dict[str, Any] = {
        "reward_token": "ULTRA",
        "owner": "owner",
        "reward_per_second": E,
        "start_time": START,
        "burn_address": "burn",
        "first_pool_alloc_point": 2,
        "first_pool_fee_bps": 300,
        "referral_percent_bps": 400,
        "min_referral_reward": 0,
        "referral_owner_withdraw_await": DAY,
        "lock_duration": DAY,
        "allocations": {
            "ULTRA": {"user1": 75 * E, "user2": 75 * E, "user3": 50 * E},
            "TKN": {"user1": 100 * E, "user2": 100 * E, "user3": 100 * E},
        },
        "referrals": {"user2": "user1", "user3": "user2"},
    }
    g.update(overrides)
    return g


@pytest.fixture
def make_engine(clock: ManualClock) -> Callable[..., StakingExecutor]:
    def _make(db_path: str = "", **overrides: Any) -> StakingExecutor:
        return StakingExecutor(db_path=db_path, clock=clock, genesis=genesis_from_dict(base_genesis(**overrides)))

    return _make


@pytest.fixture
def engine(make_engine) -> StakingExecutor:
    return make_engine()


def tx(tx_type: str, signer: str, nonce: int = 0, **payload: Any) -> Dict[str, Any]:
    return {"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": payload}


def approve_all(ex: StakingExecutor, spender: str = "ultrastake:engine", users: Optional[list] = None) -> None:
    for user in users or ["user1", "user2", "user3"]:
        for token in ("ULTRA", "TKN"):
            if not ex.view().state.get("tokens", {}).get(token):
                continue
            ex.apply(tx("TOKEN_APPROVE", user, token=token, spender=spender, amount=1000 * E))
