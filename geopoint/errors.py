from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def user_not_found() -> ApiError:
    return ApiError(status_code=404, code="USER_NOT_FOUND", message="User not found.")


def request_not_found() -> ApiError:
    return ApiError(status_code=404, code="NOT_FOUND", message="Request not found.")


def already_finalized() -> ApiError:
    return ApiError(
        status_code=409,
        code="ALREADY_FINALIZED",
        message="Request has already been reviewed and can no longer change.",
    )


def forbidden(message: str) -> ApiError:
    return ApiError(status_code=403, code="FORBIDDEN", message=message)


def dependency_unavailable(message: str) -> ApiError:
    return ApiError(status_code=503, code="DEPENDENCY_UNAVAILABLE", message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": get_request_id(request),
    }
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})
