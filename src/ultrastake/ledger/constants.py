# src/ultrastake/ledger/constants.py
from __future__ import annotations

"""Protocol constants for the staking engine.

Anchors:
- Reward token has 18 decimals (1 token = 1e18 units)
- accRewardPerShare is a 1e12 fixed-point accumulator
- Percentages are basis points (10_000 == 100%)
"""

TOKEN_DECIMALS: int = 18
ONE_TOKEN: int = 10**TOKEN_DECIMALS

# Fixed-point scale of pool.acc_reward_per_share
ACC_PRECISION: int = 10**12

BPS_BASE: int = 10_000

DAY_SECONDS: int = 86_400

# Cooldown between principal/reward-realizing actions on one position.
DEFAULT_LOCK_DURATION: int = DAY_SECONDS

# Exclusive window a real referrer has before the owner may sweep its bonus.
DEFAULT_REFERRAL_OWNER_WITHDRAW_AWAIT: int = DAY_SECONDS

# "No address". Also the protocol-owned referral bucket.
ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

# Custody account holding staked principal, collected fees and unclaimed referral bonus.
ENGINE_ACCOUNT: str = "ultrastake:engine"

# Vault accounts are derived per pool: vault:<pid>
VAULT_ACCOUNT_PREFIX: str = "vault:"

# AutoCompounder defaults (bps)
DEFAULT_VAULT_RESTAKE_REWARD_BPS: int = 25
DEFAULT_VAULT_PERFORMANCE_FEE_BPS: int = 200
DEFAULT_VAULT_WITHDRAW_FEE_BPS: int = 10
