"""
Mapping of engine errors to HTTP responses.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from job_engine.errors import (
    InvalidJobStateError,
    JobEngineError,
    JobNotFoundError,
    JobValidationError,
    StoreError,
)
from job_engine.types.api import ErrorResponse

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[JobEngineError], tuple[int, str]] = {
    JobValidationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error"),
    JobNotFoundError: (status.HTTP_404_NOT_FOUND, "not_found"),
    InvalidJobStateError: (status.HTTP_409_CONFLICT, "invalid_state"),
    StoreError: (status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable"),
}


async def job_engine_error_handler(request: Request, exc: JobEngineError) -> JSONResponse:
    """Render an engine error as an ErrorResponse."""
    status_code, error = _STATUS_CODES.get(
        type(exc),
        (status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"),
    )
    if status_code >= 500:
        logger.warning(
            "Request failed",
            extra={"path": request.url.path, "error": exc.message},
        )
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=exc.message).model_dump(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the engine error handlers on the application."""
    app.add_exception_handler(JobEngineError, job_engine_error_handler)
