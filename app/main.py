from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from app.api.errors import (
    catalog_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)
from app.core.config import settings
from app.core.errors import CatalogError
from app.core.logging import configure_logging
from app.api.routes.admin_catalog import router as admin_catalog_router
from app.api.routes.admin_media import router as admin_media_router
from app.repositories.db import Base, engine

import app.domain.catalog.models  # noqa: F401 - registers the models on the metadata
from contextlib import asynccontextmanager
from pathlib import Path
import structlog
import traceback
import uuid
from fastapi.responses import JSONResponse

configure_logging()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if (settings.APP_ENV or "").lower() == "test":
        # Clean schema per run in tests
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    log.info("startup", env=settings.APP_ENV, read_only=settings.READ_ONLY)
    yield


tags_metadata = [
    {"name": "admin-catalog", "description": "Catalog items (news/products) and categories."},
    {"name": "admin-media", "description": "Ads and image galleries."},
]

app = FastAPI(
    title="Catalog Admin API",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)


@app.middleware("http")
async def _http_logger(request, call_next):
    # Correlation id travels through the logs and back in the response
    cid = request.headers.get("x-correlation-id") or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(correlation_id=cid)
    try:
        log.info(
            "http_request_start",
            method=request.method,
            path=request.url.path,
            content_type=request.headers.get("content-type"),
            content_length=request.headers.get("content-length"),
        )
        response = await call_next(request)
        response.headers["X-Correlation-Id"] = cid
        log.info(
            "http_request_end",
            method=request.method,
            path=request.url.path,
            status=getattr(response, "status_code", None),
        )
        return response
    except Exception as e:
        log.error(
            "http_request_exception",
            method=request.method,
            path=request.url.path,
            error=str(e),
            traceback=traceback.format_exc(),
        )
        return JSONResponse(status_code=500, content={"error": {"code": "internal_error", "message": "unexpected error"}})
    finally:
        structlog.contextvars.unbind_contextvars("correlation_id")


app.include_router(admin_catalog_router, prefix="/admin", tags=["admin-catalog"])
app.include_router(admin_media_router, prefix="/admin", tags=["admin-media"])

# Local object store is served by the app (MVP). Production should use a CDN/bucket.
uploads_path = Path(settings.UPLOAD_ROOT)
uploads_path.mkdir(parents=True, exist_ok=True)
app.mount("/static/uploads", StaticFiles(directory=str(uploads_path), html=False), name="static-uploads")

# Uniform error payloads
app.add_exception_handler(CatalogError, catalog_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/")
async def root():
    return {"service": "catalog-admin", "status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
