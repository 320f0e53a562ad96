# src/ultrastake/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from ultrastake.api.routes_public_parts.fees import router as fees_router
from ultrastake.api.routes_public_parts.health import router as health_router
from ultrastake.api.routes_public_parts.metrics import router as metrics_router
from ultrastake.api.routes_public_parts.pools import router as pools_router
from ultrastake.api.routes_public_parts.referrals import router as referrals_router
from ultrastake.api.routes_public_parts.state import router as state_router
from ultrastake.api.routes_public_parts.tokens import router as tokens_router
from ultrastake.api.routes_public_parts.tx import router as tx_router
from ultrastake.api.routes_public_parts.vaults import router as vaults_router

public_router = APIRouter()

# Liveness probes live at the root as well as under /v1.
public_router.include_router(health_router, prefix="", tags=["health"])
public_router.include_router(health_router, prefix="/v1", tags=["health"])

public_router.include_router(state_router, prefix="/v1", tags=["state"])
public_router.include_router(pools_router, prefix="/v1", tags=["pools"])
public_router.include_router(referrals_router, prefix="/v1", tags=["referrals"])
public_router.include_router(fees_router, prefix="/v1", tags=["fees"])
public_router.include_router(tokens_router, prefix="/v1", tags=["tokens"])
public_router.include_router(vaults_router, prefix="/v1", tags=["vaults"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
