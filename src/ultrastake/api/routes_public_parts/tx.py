from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from ultrastake.api.errors import ApiError
from ultrastake.api.routes_public_parts.common import _executor
from ultrastake.api.schemas import TxSubmitRequest, TxSubmitResponse
from ultrastake.runtime.tx_admission import expected_nonce

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit", response_model=TxSubmitResponse)
def tx_submit(request: Request, body: TxSubmitRequest) -> TxSubmitResponse:
    """Admit and apply a tx envelope immediately.

    Engine rejections surface as JSON error bodies whose `error.code` is the
    stable rejection reason (e.g. `withdraw_locked`, `not_owner`).
    """
    ex = _executor(request)
    meta = ex.apply(body.model_dump())
    if not isinstance(meta, dict):
        raise ApiError.internal("bad_result", "applier returned a non-object result", {})
    return TxSubmitResponse(ok=True, seq=int(ex.view().state.get("seq") or 0), result=meta)


@router.get("/accounts/{signer}/nonce")
def account_nonce(request: Request, signer: str) -> Json:
    """Nonce the next tx from `signer` must carry when signatures are required."""
    st = _executor(request).view().state
    return {"ok": True, "signer": signer, "next_nonce": expected_nonce(st, signer)}
