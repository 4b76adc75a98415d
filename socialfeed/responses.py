"""Response envelopes.

Turns operation results and raised errors into the ``{status_code, body}``
envelope handed back to callers.

Success body::

    {"success": true, "data": ...}

Error body::

    {"success": false, "error": "<code>", "message": "...", "details": {...},
     "timestamp": "2024-01-15T10:30:00.000000Z"}
"""

from typing import Any

from pydantic import BaseModel, ValidationError

from socialfeed.errors import AppError
from socialfeed.logging import logger
from socialfeed.utils import utc_now_iso


class APIResponse(BaseModel):
    """Status code and JSON-ready body."""

    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_jsonable(value) for value in data]
    if isinstance(data, dict):
        return {key: _jsonable(value) for key, value in data.items()}
    return data


def success_response(data: Any, status_code: int = 200) -> APIResponse:
    return APIResponse(status_code=status_code, body={"success": True, "data": _jsonable(data)})


def error_response(
    status_code: int,
    error: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> APIResponse:
    return APIResponse(
        status_code=status_code,
        body={
            "success": False,
            "error": error,
            "message": message,
            "details": details or {},
            "timestamp": utc_now_iso(),
        },
    )


def handle_error(exc: BaseException) -> APIResponse:
    """Map any exception to an error envelope.

    ``AppError`` keeps its status and code, pydantic validation errors become
    ``400 validation_error`` and anything else ``500 internal_server_error``
    (logged with traceback).
    """
    if isinstance(exc, AppError):
        details = dict(exc.details)
        if exc.retryable:
            details["retryable"] = True
            logger.error(f"Dependency failure [{exc.code}]: {exc.message}")
        else:
            logger.info(f"Request refused [{exc.status_code} {exc.code}]: {exc.message}")
        return error_response(exc.status_code, exc.code, exc.message, details)

    if isinstance(exc, ValidationError):
        errors = [
            {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
            for error in exc.errors()
        ]
        logger.info(f"Invalid payload: {len(errors)} error(s)")
        return error_response(400, "validation_error", "Invalid request payload", {"errors": errors})

    logger.opt(exception=exc).error(f"Unhandled error: {exc}")
    return error_response(500, "internal_server_error", "An unexpected error occurred")


__all__ = ["APIResponse", "error_response", "handle_error", "success_response"]
