from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    """Liveness. Never touches the database, so it answers even when the
    executor is absent or the block loop has tripped."""
    ex = getattr(request.app.state, "executor", None)
    unhealthy = bool(getattr(ex, "block_loop_unhealthy", False)) if ex is not None else False
    return {
        "ok": not unhealthy,
        "service": "constellation-node",
        "executor_ready": ex is not None,
        "block_loop_unhealthy": unhealthy,
    }
