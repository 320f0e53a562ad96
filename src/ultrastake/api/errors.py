from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ultrastake.runtime.errors import ApplyError


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

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
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def unavailable(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(503, code, message, details or {})

    def to_body(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


_STATUS_BY_CODE = {
    "invalid": 400,
    "forbidden": 403,
    "gated": 409,
    "locked": 409,
    "too_early": 409,
    "below_threshold": 409,
    "invariant_violation": 500,
}


def api_error_from_apply(e: ApplyError) -> ApiError:
    """Map an engine rejection onto an HTTP error. The engine reason becomes the error code."""
    details: Dict[str, Any] = {"error_class": e.code}
    if isinstance(e.details, dict):
        details.update(e.details)
    elif e.details is not None:
        details["details"] = e.details
    if e.reason == "pool_not_found" or e.reason == "vault_not_found":
        return ApiError.not_found(e.reason, "not found", details)
    return ApiError(_STATUS_BY_CODE.get(e.code, 400), e.reason, "tx rejected" if e.code != "invalid" else "invalid request", details)
