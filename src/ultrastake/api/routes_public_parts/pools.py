from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from ultrastake.api.routes_public_parts.common import _executor
from ultrastake.api.schemas import PendingReward, PoolInfo, UserInfo

router = APIRouter()

Json = Dict[str, Any]


@router.get("/pools")
def list_pools(request: Request) -> Json:
    view = _executor(request).view()
    pools = [PoolInfo(**view.pool_info(pid)).model_dump() for pid in range(view.pool_length())]
    return {"ok": True, "pools": pools, "total_alloc_point": view.total_alloc_point()}


@router.get("/pools/{pid}", response_model=PoolInfo)
def get_pool(request: Request, pid: int) -> PoolInfo:
    return PoolInfo(**_executor(request).view().pool_info(pid))


@router.get("/pools/{pid}/users/{user}", response_model=UserInfo)
def get_user(request: Request, pid: int, user: str) -> UserInfo:
    ex = _executor(request)
    view = ex.view()
    info = view.user_info(pid, user)
    return UserInfo(
        pid=pid,
        user=user,
        locked=view.is_locked(pid, user, now=ex.now()),
        unlock_time=view.unlock_time(pid, user),
        **info,
    )


@router.get("/pools/{pid}/pending/{user}", response_model=PendingReward)
def get_pending(request: Request, pid: int, user: str) -> PendingReward:
    ex = _executor(request)
    now = ex.now()
    return PendingReward(pid=pid, user=user, pending=ex.view().pending_reward(pid, user, now=now), time=now)
