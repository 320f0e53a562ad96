from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health() -> Json:
    return {"ok": True, "service": "ultrastake"}


@router.get("/healthz")
def healthz() -> Json:
    return {"ok": True}


@router.get("/readyz")
def readyz(request: Request):
    """Ready once an executor is attached and its ledger is readable."""
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return JSONResponse(status_code=503, content={"ok": False, "ready": False, "reason": "no_executor"})
    view = ex.view()
    return {
        "ok": True,
        "ready": True,
        "engine_id": ex.engine_id,
        "persistent": bool(ex.persistent),
        "seq": int(view.state.get("seq") or 0),
        "time": view.now,
        "pool_length": view.pool_length(),
    }
