"""Mapping from engine error codes to HTTP responses."""

from fastapi import Request
from fastapi.responses import JSONResponse

from hostelly.domain.errors import EngineError
from hostelly.observability.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE = {
    "validation_error": 422,
    "hold_not_found": 404,
    "hold_expired": 409,
    "capacity_conflict": 409,
    "status_regression": 409,
    "conversion_conflict": 409,
    "duplicate_guest": 409,
    "lock_contention": 503,
    "store_unavailable": 503,
}


def status_for(code: str) -> int:
    return STATUS_BY_CODE.get(code, 500)


def result_response(result: dict, success_status: int = 200) -> JSONResponse:
    """Render an engine result dict, choosing the status from its error code."""
    if result.get("ok", True):
        return JSONResponse(status_code=success_status, content=result)
    return JSONResponse(status_code=status_for(result["error"]), content=result)


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status = status_for(exc.code)
    if status >= 500:
        logger.error(
            "engine error",
            extra={"extra_fields": {"code": exc.code, "path": request.url.path}},
        )
    return JSONResponse(
        status_code=status,
        content={"ok": False, "error": exc.code, "message": exc.message},
    )
