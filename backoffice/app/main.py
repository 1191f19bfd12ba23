import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backoffice.app.api.v1.router import router as v1_router
from backoffice.app.core.config import settings
from backoffice.app.core.logging import configure_logging
from backoffice.services.errors import (
    BackofficeError,
    ExtractionError,
    NegativeStock,
    NotFound,
    ResolutionConflict,
    ValidationFailed,
)
from backoffice.services.units import UnrecognizedUnit

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)
app.include_router(v1_router, prefix="/v1")


def _error(status_code: int, exc: Exception, fields: list[dict] | None = None) -> JSONResponse:
    body = {"error": str(exc), "type": type(exc).__name__}
    if fields is not None:
        body["fields"] = fields
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(ValidationFailed)
def validation_failed_handler(request: Request, exc: ValidationFailed):
    return _error(422, exc, [{"field": e.field, "message": e.message} for e in exc.errors])


@app.exception_handler(UnrecognizedUnit)
def unrecognized_unit_handler(request: Request, exc: UnrecognizedUnit):
    return _error(422, exc, [{"field": "unit", "message": str(exc)}])


@app.exception_handler(ExtractionError)
def extraction_error_handler(request: Request, exc: ExtractionError):
    return _error(422, exc)


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound):
    return _error(404, exc)


@app.exception_handler(NegativeStock)
def negative_stock_handler(request: Request, exc: NegativeStock):
    logger.info("conflict on %s %s: %s", request.method, request.url.path, exc)
    field = {"field": exc.field or "quantity", "message": str(exc), "product_id": exc.product_id}
    return _error(409, exc, [field])


@app.exception_handler(ResolutionConflict)
def conflict_handler(request: Request, exc: ResolutionConflict):
    logger.info("conflict on %s %s: %s", request.method, request.url.path, exc)
    return _error(409, exc)


@app.exception_handler(BackofficeError)
def backoffice_error_handler(request: Request, exc: BackofficeError):
    logger.error("unhandled business error on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, exc)
