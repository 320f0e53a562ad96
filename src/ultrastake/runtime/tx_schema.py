from __future__ import annotations

"""Transaction payload schemas.

Every tx type the engine understands has a strict pydantic model here
(unknown keys rejected, integers strict so booleans and numeric strings do not
slip through). tx_admission runs `validate_payload` before a tx reaches the
appliers; the appliers still enforce semantics (pool exists, caller is owner,
balances suffice).
"""

from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ultrastake.ledger.constants import BPS_BASE

Json = Dict[str, Any]


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid")


def _amount() -> Any:
    return Field(..., ge=0, strict=True)


def _pid() -> Any:
    return Field(..., ge=0, strict=True)


def _bps() -> Any:
    return Field(..., ge=0, le=BPS_BASE, strict=True)


def _addr() -> Any:
    return Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Admin: pool registry
# ---------------------------------------------------------------------------


class AddPoolPayload(_StrictModel):
    stake_token: str = _addr()
    alloc_point: int = _amount()
    fee_bps: int = _bps()
    mass_update: bool = False


class SetPoolAllocPointPayload(_StrictModel):
    pid: int = _pid()
    alloc_point: int = _amount()
    mass_update: bool = False


class SetPoolFeePercentagePayload(_StrictModel):
    pid: int = _pid()
    fee_bps: int = _bps()


class SetRewardPerSecondPayload(_StrictModel):
    reward_per_second: int = _amount()
    mass_update: bool = False


# ---------------------------------------------------------------------------
# Admin: referral / fee / ownership
# ---------------------------------------------------------------------------


class SetReferralPercentPayload(_StrictModel):
    bps: int = _bps()


class SetMinReferralRewardPayload(_StrictModel):
    amount: int = _amount()


class SetSecondsPayload(_StrictModel):
    seconds: int = _amount()


class EmptyPayload(_StrictModel):
    pass


class GetReferralRewardForPayload(_StrictModel):
    referrer: str = _addr()
    pid: Optional[int] = Field(default=None, ge=0, strict=True)


class AddressListPayload(_StrictModel):
    addresses: List[str] = Field(..., min_length=1)


class TransferOwnershipPayload(_StrictModel):
    new_owner: str = _addr()


# ---------------------------------------------------------------------------
# User: staking
# ---------------------------------------------------------------------------


class DepositPayload(_StrictModel):
    pid: int = _pid()
    amount: int = _amount()
    recipient: Optional[str] = Field(default=None, min_length=1)


class WithdrawPayload(_StrictModel):
    pid: int = _pid()
    amount: int = _amount()
    recipient: Optional[str] = Field(default=None, min_length=1)


class HarvestPayload(_StrictModel):
    pid: int = _pid()
    recipient: Optional[str] = Field(default=None, min_length=1)


class OptionalPidPayload(_StrictModel):
    pid: Optional[int] = Field(default=None, ge=0, strict=True)


class PidPayload(_StrictModel):
    pid: int = _pid()


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------


class VaultSetParamsPayload(_StrictModel):
    pid: int = _pid()
    restake_reward_bps: Optional[int] = Field(default=None, ge=0, le=BPS_BASE, strict=True)
    performance_fee_bps: Optional[int] = Field(default=None, ge=0, le=BPS_BASE, strict=True)
    withdraw_fee_bps: Optional[int] = Field(default=None, ge=0, le=BPS_BASE, strict=True)


class VaultDepositPayload(_StrictModel):
    pid: int = _pid()
    amount: int = _amount()


class VaultWithdrawPayload(_StrictModel):
    pid: int = _pid()
    shares: int = _amount()


# ---------------------------------------------------------------------------
# Collaborators: token ledger, referral directory, keys
# ---------------------------------------------------------------------------


class TokenCreatePayload(_StrictModel):
    token: str = _addr()
    minters: List[str] = Field(default_factory=list)


class TokenMintPayload(_StrictModel):
    token: str = _addr()
    to: str = _addr()
    amount: int = _amount()


class TokenBurnPayload(_StrictModel):
    token: str = _addr()
    amount: int = _amount()


class TokenTransferPayload(_StrictModel):
    token: str = _addr()
    to: str = _addr()
    amount: int = _amount()


class TokenApprovePayload(_StrictModel):
    token: str = _addr()
    spender: str = _addr()
    amount: int = _amount()


class TokenGrantMinterPayload(_StrictModel):
    token: str = _addr()
    minter: str = _addr()


class ReferralRegisterPayload(_StrictModel):
    referrer: str = _addr()


class KeyRegisterPayload(_StrictModel):
    pubkey: str = Field(..., min_length=32)


Schema = Type[BaseModel]

_SCHEMA_BY_TX_TYPE: Dict[str, Schema] = {
    # Admin
    "ADD_POOL": AddPoolPayload,
    "SET_POOL_ALLOC_POINT": SetPoolAllocPointPayload,
    "SET_POOL_FEE_PERCENTAGE": SetPoolFeePercentagePayload,
    "SET_REWARD_PER_SECOND": SetRewardPerSecondPayload,
    "SET_REFERRAL_PERCENT": SetReferralPercentPayload,
    "SET_MIN_REFERRAL_REWARD": SetMinReferralRewardPayload,
    "SET_REFERRAL_OWNER_WITHDRAW_AWAIT": SetSecondsPayload,
    "SET_LOCK_DURATION": SetSecondsPayload,
    "GET_FEES": EmptyPayload,
    "GET_REFERRAL_REWARD_FOR": GetReferralRewardForPayload,
    "EXCLUDE_FROM_FEE": AddressListPayload,
    "INCLUDE_IN_FEE": AddressListPayload,
    "TRANSFER_OWNERSHIP": TransferOwnershipPayload,
    "VAULT_CREATE": PidPayload,
    "VAULT_SET_PARAMS": VaultSetParamsPayload,
    "VAULT_SWEEP_FEES": PidPayload,
    # User
    "DEPOSIT": DepositPayload,
    "WITHDRAW": WithdrawPayload,
    "HARVEST": HarvestPayload,
    "GET_REFERRAL_REWARD": OptionalPidPayload,
    "UPDATE_POOL": PidPayload,
    "MASS_UPDATE_POOLS": EmptyPayload,
    "VAULT_DEPOSIT": VaultDepositPayload,
    "VAULT_WITHDRAW": VaultWithdrawPayload,
    "VAULT_RESTAKE": PidPayload,
    # Collaborators
    "TOKEN_CREATE": TokenCreatePayload,
    "TOKEN_MINT": TokenMintPayload,
    "TOKEN_BURN": TokenBurnPayload,
    "TOKEN_TRANSFER": TokenTransferPayload,
    "TOKEN_APPROVE": TokenApprovePayload,
    "TOKEN_GRANT_MINTER": TokenGrantMinterPayload,
    "REFERRAL_REGISTER": ReferralRegisterPayload,
    "KEY_REGISTER": KeyRegisterPayload,
}

SUPPORTED_TX_TYPES = frozenset(_SCHEMA_BY_TX_TYPE)


def schema_for(tx_type: str) -> Optional[Schema]:
    return _SCHEMA_BY_TX_TYPE.get(str(tx_type or "").strip().upper())


def validate_payload(*, tx_type: str, payload: Any) -> Tuple[bool, str, str, Optional[Dict[str, Any]]]:
    """Validate payload against its schema.

    Returns: (ok, code, reason, details)
    """
    sch = schema_for(tx_type)
    if sch is None:
        return False, "schema:unknown_tx_type", "unknown_tx_type", {"tx_type": tx_type}

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return False, "schema:payload_not_object", "payload_must_be_object", None

    try:
        sch.model_validate(payload)
        return True, "", "", None
    except ValidationError as ve:
        errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in ve.errors()]
        return False, "schema:validation_error", "payload_schema_mismatch", {"errors": errors}


__all__ = ["SUPPORTED_TX_TYPES", "schema_for", "validate_payload"]
