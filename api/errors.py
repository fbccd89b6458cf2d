"""Mapping of engine errors to HTTP responses.

Routes unwrap service results and let EngineError propagate; the handler
registered in create_app() turns it into a JSON body keyed by error code.
Request bodies that fail model parsing get the same VALIDATION_ERROR body.
"""

from typing import Dict

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.observability.logging import get_logger
from reconciliation.errors import EngineError, ErrorCode, ValidationError

logger = get_logger(__name__)


HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.SERIAL_REQUIRED: 400,
    ErrorCode.INVALID_ODOMETER: 400,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.WORK_ORDER_NOT_FOUND: 404,
    ErrorCode.PART_NOT_ISSUED_OR_FULLY_INSTALLED: 409,
    ErrorCode.SERIAL_ALREADY_INSTALLED: 409,
    ErrorCode.QUANTITY_EXCEEDS_REMAINING: 409,
    ErrorCode.NOT_RECONCILED_OR_QA_PENDING: 409,
    ErrorCode.ALREADY_TERMINAL: 409,
    ErrorCode.DATA_INTEGRITY_ERROR: 500,
}


def status_for(error: EngineError) -> int:
    return HTTP_STATUS_BY_CODE.get(error.code, 400)


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Render an EngineError as {"error": {code, message, details}}."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.message}",
            extra_fields={"error_code": exc.code.value},
        )
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Unparseable request bodies (e.g. qty "abc" or "Infinity") as a VALIDATION_ERROR."""
    fields = [
        {"loc": [str(part) for part in error.get("loc", ())], "message": error.get("msg", "")}
        for error in exc.errors()
    ]
    error = ValidationError("Request body failed validation", {"fields": fields})
    return JSONResponse(status_code=status_for(error), content={"error": error.to_dict()})
