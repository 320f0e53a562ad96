from __future__ import annotations

from ultrastake.ledger.accumulator import accrued, pending_for, pool_reward_since, preview_acc, settle
from ultrastake.ledger.constants import ACC_PRECISION

E = 10**18


def _pool(**kw):
    p = {"pid": 0, "alloc_point": 1, "last_reward_time": 100, "acc_reward_per_share": 0, "total_staked": 10 * E}
    p.update(kw)
    return p


def _params(**kw):
    p = {"reward_per_second": E, "total_alloc_point": 2}
    p.update(kw)
    return p


def test_pool_reward_is_prorated_by_alloc_point() -> None:
    assert pool_reward_since(_pool(), _params(), 200) == 100 * E // 2


def test_no_reward_when_clock_did_not_advance() -> None:
    assert pool_reward_since(_pool(), _params(), 100) == 0
    assert pool_reward_since(_pool(), _params(), 50) == 0


def test_no_reward_when_total_alloc_is_zero() -> None:
    assert pool_reward_since(_pool(alloc_point=0), _params(total_alloc_point=0), 500) == 0


def test_settle_empty_pool_only_moves_time() -> None:
    pool = _pool(total_staked=0)
    assert settle(pool, _params(), 150) is True
    assert pool["acc_reward_per_share"] == 0
    assert pool["last_reward_time"] == 150


def test_settle_is_idempotent_at_same_instant() -> None:
    pool = _pool()
    assert settle(pool, _params(), 200) is True
    acc = pool["acc_reward_per_share"]
    assert acc == (50 * E) * ACC_PRECISION // (10 * E)
    assert settle(pool, _params(), 200) is False
    assert pool["acc_reward_per_share"] == acc


def test_preview_does_not_mutate() -> None:
    pool = _pool()
    before = dict(pool)
    assert preview_acc(pool, _params(), 300) == 10 * ACC_PRECISION
    assert pool == before


def test_pending_against_debt() -> None:
    pos = {"amount": 4 * E, "reward_debt": accrued(4 * E, 3 * ACC_PRECISION)}
    assert pending_for(pos, 3 * ACC_PRECISION) == 0
    assert pending_for(pos, 5 * ACC_PRECISION) == 8 * E
    assert pending_for(pos, 2 * ACC_PRECISION) < 0
