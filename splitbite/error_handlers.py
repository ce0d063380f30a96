"""
FastAPI exception handlers.

Every domain error is rendered as ``{"error": kind, "message": ...}``.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from splitbite.errors import ConflictError, SplitBiteError, ValidationError

logger = logging.getLogger(__name__)


def splitbite_exception_handler(request: Request, exc: SplitBiteError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind)
    else:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def stale_data_exception_handler(request: Request, exc: StaleDataError):
    logger.warning("Concurrent modification on %s %s", request.method, request.url.path)
    conflict = ConflictError("Receipt was modified concurrently, reload and retry")
    return JSONResponse(status_code=conflict.status_code, content=conflict.to_dict())


def validation_exception_handler(request: Request, exc: RequestValidationError):
    body = ValidationError("Request validation failed").to_dict()
    body["details"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=ValidationError.status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SplitBiteError, splitbite_exception_handler)
    app.add_exception_handler(StaleDataError, stale_data_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
