from __future__ import annotations

from fastapi import APIRouter, Request

from ultrastake.api.routes_public_parts.common import _view
from ultrastake.api.schemas import ReferralDetails

router = APIRouter()


@router.get("/referrals/{referrer}/{pid}", response_model=ReferralDetails)
def referral_details(request: Request, referrer: str, pid: int) -> ReferralDetails:
    rec = _view(request).referral_record(referrer, pid)
    return ReferralDetails(referrer=referrer, pid=pid, **rec)
