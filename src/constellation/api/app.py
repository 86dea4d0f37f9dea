from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from constellation.api.config import ApiConfig, load_api_config
from constellation.api.errors import ApiError, api_error_handler, validation_error_handler
from constellation.api.routes_public import public_router
from constellation.api.security import RateLimitMiddleware, RequestSizeLimitMiddleware
from constellation.api.structured_logging import RequestLogMiddleware, configure_structured_logging, log_event
from constellation.runtime.block_loop import BlockProducerLoop
from constellation.runtime.executor_boot import build_executor as _build_executor

log = logging.getLogger("constellation.api")


def build_executor():
    """Build the executor for the API runtime.

    Kept as a module-level wrapper so tests can monkeypatch
    `constellation.api.app.build_executor`.
    """
    return _build_executor()


def _parse_cors_origins(cfg: ApiConfig) -> List[str]:
    """CORS is off unless CONSTELLATION_CORS_ORIGINS is set; "*" is refused in prod."""
    if not cfg.cors_origins:
        return []

    origins = [o.strip() for o in cfg.cors_origins.split(",") if o.strip()]
    if "*" in origins:
        if cfg.mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in CONSTELLATION_CORS_ORIGINS."
            )
        return ["*"]
    return origins


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load chain config and attach the executor
      - False: no executor; routes that need one answer 500 not_ready
    """
    configure_structured_logging()
    cfg = load_api_config()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        loop = None
        ex = getattr(app.state, "executor", None)
        if cfg.block_loop_autostart and ex is not None and hasattr(ex, "produce_block"):
            loop = BlockProducerLoop(executor=ex)
            if loop.start():
                log_event(log, "block_loop_started")
            else:
                loop = None

        app.state.block_loop = loop
        yield
        if loop is not None:
            loop.stop()
            log_event(log, "block_loop_stopped")

    if cfg.docs_enabled:
        app = FastAPI(title="Block Constellation Node API", lifespan=_lifespan)
    else:
        app = FastAPI(
            title="Block Constellation Node API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )

    app.state.cfg = cfg
    app.state.executor = build_executor() if boot_runtime else None
    app.state.block_loop = None

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Starlette runs the last-added middleware first: CORS, then logging,
    # then the size cap, then the rate limiter.
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins(cfg)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=cors_origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.include_router(public_router)
    return app
