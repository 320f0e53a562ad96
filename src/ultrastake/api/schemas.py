from __future__ import annotations

"""Pydantic request/response schemas for the public API.

Tx payload schemas live in ultrastake.runtime.tx_schema; these exist only
for HTTP input validation and stable response shapes.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., description="Tx type, e.g. DEPOSIT")
    signer: str = Field(..., description="Account submitting the tx")
    nonce: int = Field(default=0, description="Signer nonce; checked only when signatures are required")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: str = Field(default="", description="Hex/base64 ed25519 signature")

    model_config = {"extra": "forbid"}


class TxSubmitResponse(BaseModel):
    ok: bool
    seq: int
    result: Dict[str, Any]


class PoolInfo(BaseModel):
    pid: int
    stake_token: str
    alloc_point: int
    last_reward_time: int
    acc_reward_per_share: int
    total_staked: int
    fee_bps: int


class UserInfo(BaseModel):
    pid: int
    user: str
    amount: int
    reward_debt: int
    last_action_time: int
    locked: bool
    unlock_time: int


class PendingReward(BaseModel):
    pid: int
    user: str
    pending: int
    time: int


class ReferralDetails(BaseModel):
    referrer: str
    pid: int
    amount: int
    last_accrual_time: int


class FeesInfo(BaseModel):
    collected: int
    burned_total: int
    fee_exempt: list[str]


class TokenBalance(BaseModel):
    token: str
    account: str
    balance: int


class VaultInfo(BaseModel):
    pid: int
    account: str
    staked: int
    balance: int
    fees: int
    idle: int
    total: int
    total_shares: int
    restake_reward_bps: int
    performance_fee_bps: int
    withdraw_fee_bps: int
    shares: Optional[int] = None
