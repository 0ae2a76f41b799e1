from __future__ import annotations

import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import (
    CatalogError,
    PersistenceError,
    StoreDivergenceError,
    UploadError,
    ValidationError,
)

log = structlog.get_logger()


def _payload(code: str, message: str, field: str | None = None) -> dict:
    err = {"code": code, "message": message}
    if field:
        err["field"] = field
    return {"error": err}


def status_for(exc: CatalogError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, UploadError):
        return 502
    if isinstance(exc, StoreDivergenceError):
        return 409
    if isinstance(exc, PersistenceError) and exc.code == "not_found":
        return 404
    return 500


async def catalog_exception_handler(request: Request, exc: CatalogError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500 or isinstance(exc, StoreDivergenceError):
        log.error("catalog_error", path=request.url.path, code=exc.code, message=exc.message)
    else:
        log.info("catalog_error", path=request.url.path, code=exc.code, message=exc.message)
    return JSONResponse(status_code=code, content={"error": exc.to_dict()})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "http_error"
    return JSONResponse(status_code=exc.status_code, content=_payload(detail, detail), headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path", "header")]
    return JSONResponse(
        status_code=422,
        content=_payload("invalid_request", str(first.get("msg") or "invalid request"), loc[-1] if loc else None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content=_payload("internal_error", "unexpected error"))
