from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from ultrastake.api.errors import ApiError
from ultrastake.ledger.state import StakingView
from ultrastake.runtime.executor import StakingExecutor

Json = Dict[str, Any]


def _executor(request: Request) -> StakingExecutor:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.unavailable("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> StakingView:
    return _executor(request).view()


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except ValueError:
        return int(default)
