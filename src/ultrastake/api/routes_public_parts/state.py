# src/ultrastake/api/routes_public_parts/state.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from ultrastake.api.errors import ApiError
from ultrastake.api.routes_public_parts.common import _executor, _int_param

router = APIRouter()

Json = Dict[str, Any]


@router.get("/params")
def params(request: Request) -> Json:
    ex = _executor(request)
    view = ex.view()
    return {
        "ok": True,
        "params": dict(view.params),
        "time": ex.now(),
        "seq": int(view.state.get("seq") or 0),
        "pool_length": view.pool_length(),
        "total_alloc_point": view.total_alloc_point(),
    }


@router.get("/receipts")
def receipts(request: Request, limit: int = 50) -> Json:
    cap = request.app.state.cfg.max_receipts
    lim = max(1, min(_int_param(limit, 50), cap))
    return {"ok": True, "receipts": _executor(request).receipts(lim)}


@router.get("/state/snapshot")
def state_snapshot(request: Request) -> Json:
    """Full ledger snapshot. Disabled in prod unless ULTRASTAKE_API_EXPOSE_STATE=1."""
    if not request.app.state.cfg.expose_state:
        raise ApiError.not_found("not_found", "state snapshot is disabled", {})
    return {"ok": True, "state": _executor(request).read_state()}
