"""
Map the error taxonomy onto HTTP responses.
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

from ...domain.errors import ContextServiceError, ErrorType

logger = structlog.get_logger(__name__)


async def context_service_error_handler(request: Request, exc: ContextServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message, error_type=exc.error_type.value)
    else:
        logger.info("Request rejected", path=request.url.path, error=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Request validation failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalid request",
            "errorType": ErrorType.INVALID_INPUT.value,
            "retryable": False,
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ContextServiceError, context_service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
