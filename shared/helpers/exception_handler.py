import logging
import re
import traceback

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from shared.core.errors import AppError
from shared.core.schemas import ErrorOut

logger = logging.getLogger(__name__)

# named constraint, or the bare expression on older sqlite
CHECK_FIELD_PATTERN = re.compile(r"ck_[a-z]+_(\w+?)_non_negative|failed: (\w+) >= 0")
NOT_NULL_COLUMN_PATTERN = re.compile(r'column "(\w+)"')


def _error_body(request: Request, message: str, details=None, field=None, exc: Exception = None) -> dict:
    body = ErrorOut(message=message, details=details, field=field)
    if exc is not None and not request.app.state.settings.is_production:
        body.stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body.model_dump(exclude_none=True)


def _duplicate_field(exc: IntegrityError) -> str | None:
    # "UNIQUE constraint failed: items.sku" (sqlite) / 'Key (sku)=(A1) already exists' (postgres)
    text = str(exc.orig)
    if "UNIQUE constraint failed:" in text:
        return text.rsplit(".", 1)[-1].strip()
    if "Key (" in text:
        return text.split("Key (", 1)[1].split(")", 1)[0]
    return None


def _invalid_field(exc: IntegrityError) -> tuple[bool, str | None]:
    """
    CHECK and NOT NULL violations are bad input, not conflicts.
    Returns (is_invalid, field).
    """
    text = str(exc.orig)
    lowered = text.lower()
    if "check constraint" in lowered:
        # "CHECK constraint failed: ck_items_quantity_non_negative" / 'violates check constraint "ck_..."'
        match = CHECK_FIELD_PATTERN.search(text)
        return True, (match.group(1) or match.group(2)) if match else None
    if "not null constraint failed:" in lowered:
        return True, text.rsplit(".", 1)[-1].strip()
    if "not-null constraint" in lowered:
        match = NOT_NULL_COLUMN_PATTERN.search(text)
        return True, match.group(1) if match else None
    return False, None


def setup_exception_handlers(app: FastAPI):

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.exception("Request %s %s failed", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            content=_error_body(request, exc.message, exc.details, exc.field,
                                exc if exc.status_code >= 500 else None),
            status_code=exc.status_code,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            content=_error_body(request, str(exc.detail)),
            status_code=exc.status_code or 400,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field = None
        if errors:
            loc = [str(part) for part in errors[0].get("loc", ()) if part not in ("body", "query", "path")]
            field = ".".join(loc) or None
        return JSONResponse(
            content=_error_body(request, "Invalid request data",
                                details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
                                field=field),
            status_code=400,
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        invalid, field = _invalid_field(exc)
        if invalid:
            message = f"Invalid value for {field}" if field else "Value violates a data constraint"
            return JSONResponse(
                content=_error_body(request, message, field=field),
                status_code=400,
            )

        field = _duplicate_field(exc)
        message = f"Duplicate value for {field}" if field else "Duplicate value violates a unique constraint"
        return JSONResponse(
            content=_error_body(request, message, field=field),
            status_code=409,
        )

    # Catch all unhandled exceptions
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
        message = "Internal server error" if request.app.state.settings.is_production else str(exc)
        return JSONResponse(
            content=_error_body(request, message, exc=exc),
            status_code=500,
        )
