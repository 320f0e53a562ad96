from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ultrastake.api.config import load_api_config
from ultrastake.api.errors import ApiError, api_error_from_apply
from ultrastake.api.routes_public import public_router
from ultrastake.api.security import RequestSizeLimitMiddleware
from ultrastake.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from ultrastake.runtime.errors import ApplyError
from ultrastake.runtime.executor import StakingExecutor
from ultrastake.runtime.executor_boot import build_executor as _build_executor
from ultrastake.runtime.log_events import log_event

log = logging.getLogger("ultrastake.api")


def build_executor() -> StakingExecutor:
    """Build a StakingExecutor for the API runtime.

    Tests monkeypatch `ultrastake.api.app.build_executor` through this wrapper.
    """
    return _build_executor()


def _parse_cors_origins() -> List[str]:
    """Parse CORS origins.

    Policy:
      - ULTRASTAKE_CORS_ORIGINS unset/empty -> CORS disabled
      - wildcard "*" is rejected in ULTRASTAKE_MODE=prod
    """
    raw = os.environ.get("ULTRASTAKE_CORS_ORIGINS", "").strip()
    mode = os.environ.get("ULTRASTAKE_MODE", "dev").strip().lower()

    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]

    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in ULTRASTAKE_CORS_ORIGINS."
            )
        return ["*"]

    return origins


def create_app(*, boot_runtime: bool = True, executor: Optional[StakingExecutor] = None) -> FastAPI:
    """Create the FastAPI application.

    executor:
      - given: attached as-is (tests, embedding)
      - None and boot_runtime=True: built from node config / env
      - None and boot_runtime=False: no executor; only health routes work
    """
    cfg = load_api_config()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        yield
        ex = getattr(app.state, "executor", None)
        if ex is not None and getattr(app.state, "owns_executor", False):
            ex.close()

    if cfg.mode == "prod":
        app = FastAPI(
            title="UltraStake Engine API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )
    else:
        app = FastAPI(title="UltraStake Engine API", lifespan=_lifespan)

    app.state.cfg = cfg

    if executor is not None:
        app.state.executor = executor
        app.state.owns_executor = False
    elif boot_runtime:
        configure_structured_logging()
        app.state.executor = build_executor()
        app.state.owns_executor = True
    else:
        app.state.executor = None
        app.state.owns_executor = False

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(ApplyError)
    async def _apply_error_handler(request: Request, exc: ApplyError) -> JSONResponse:
        err = api_error_from_apply(exc)
        return JSONResponse(status_code=err.status_code, content=err.to_body())

    # --- Middleware ---
    app.add_middleware(RequestSizeLimitMiddleware)

    cors_origins = _parse_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=cors_origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.add_middleware(RequestLogMiddleware)

    # --- Routers ---
    app.include_router(public_router)

    log_event(log, "api_created", mode=cfg.mode, executor=app.state.executor is not None, cors=cors_origins)
    return app
