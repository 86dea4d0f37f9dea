from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def too_large(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(413, code, message, details or {})

    @staticmethod
    def too_many(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(429, code, message, details or {})

    @staticmethod
    def unavailable(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(503, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=int(exc.status_code), content=exc.to_json())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Wrap FastAPI's 422 in the same error envelope as ApiError."""
    errors = [
        {
            "loc": [str(p) for p in (e.get("loc") or ())],
            "msg": str(e.get("msg") or ""),
            "type": str(e.get("type") or ""),
        }
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={"ok": False, "error": {"code": "invalid_request", "message": "request validation failed", "details": {"errors": errors}}},
    )
