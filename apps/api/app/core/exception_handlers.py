from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.core.errors import (
    ERROR_CODES,
    ConflictError,
    DomainError,
    domain_error_payload,
    format_validation_details,
    http_error_payload,
    make_error_payload,
)
from app.core.logging import get_logger, log_structured

logger = get_logger("errors")


def _with_detail(payload: dict) -> dict:
    return {**payload, "detail": payload["error"]["message"]}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = format_validation_details(exc)
        payload = make_error_payload(ERROR_CODES["validation"], "Invalid request", details)
        return JSONResponse(status_code=422, content=_with_detail(payload))

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        if isinstance(exc, ConflictError):
            log_structured(logging.ERROR, "conflict_exhausted", path=request.url.path, message=exc.message)
        return JSONResponse(status_code=exc.status_code, content=_with_detail(domain_error_payload(exc)))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        payload = http_error_payload(exc)
        return JSONResponse(status_code=exc.status_code, content=_with_detail(payload), headers=exc.headers)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error during request handling", exc_info=exc)
        payload = make_error_payload(ERROR_CODES["internal"], "Unexpected error", None)
        return JSONResponse(status_code=500, content=_with_detail(payload))
