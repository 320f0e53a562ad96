from __future__ import annotations

from fastapi import APIRouter, Request

from ultrastake.api.routes_public_parts.common import _view
from ultrastake.api.schemas import FeesInfo

router = APIRouter()


@router.get("/fees", response_model=FeesInfo)
def fees(request: Request) -> FeesInfo:
    view = _view(request)
    root = view.state.get("fees") or {}
    return FeesInfo(
        collected=view.fees_collected(),
        burned_total=int(root.get("burned_total") or 0),
        fee_exempt=view.fee_exempt(),
    )
