from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request

from ultrastake.api.routes_public_parts.common import _view
from ultrastake.api.schemas import VaultInfo

router = APIRouter()


@router.get("/vaults/{pid}", response_model=VaultInfo)
def vault_info(request: Request, pid: int, user: Optional[str] = None) -> VaultInfo:
    """Vault totals; pass ?user=<account> to include that account's shares."""
    view = _view(request)
    info = view.vault_info(pid)
    shares = view.vault_shares(pid, user) if user else None
    return VaultInfo(shares=shares, **info)
