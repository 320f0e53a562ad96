from __future__ import annotations

from fastapi import APIRouter, Request

from ultrastake.api.routes_public_parts.common import _view
from ultrastake.api.schemas import TokenBalance

router = APIRouter()


@router.get("/tokens/{token}/balances/{account}", response_model=TokenBalance)
def token_balance(request: Request, token: str, account: str) -> TokenBalance:
    return TokenBalance(token=token, account=account, balance=_view(request).balance_of(token, account))
