from __future__ import annotations

from fastapi import APIRouter

from constellation.api.routes_public_parts.accounts import router as accounts_router
from constellation.api.routes_public_parts.config import router as config_router
from constellation.api.routes_public_parts.cycles import router as cycles_router
from constellation.api.routes_public_parts.health import router as health_router
from constellation.api.routes_public_parts.metrics import router as metrics_router
from constellation.api.routes_public_parts.status import router as status_router
from constellation.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter(prefix="/v1")

public_router.include_router(health_router)
public_router.include_router(status_router)
public_router.include_router(metrics_router)
public_router.include_router(config_router)
public_router.include_router(cycles_router)
public_router.include_router(accounts_router)
public_router.include_router(tx_router)
