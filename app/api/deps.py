from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.repositories.db import SessionLocal
from app.services.ads_service import AdsService, GalleryService
from app.services.catalog_repository import CatalogItemRepository
from app.services.image_upload import ImageUploadPipeline
from app.services.object_store import LocalObjectStore, ObjectStore
from app.services.query_cache import QueryCache

# Process-wide singletons, swapped out by tests through dependency_overrides
_object_store: LocalObjectStore | None = None
_query_cache = QueryCache()


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_object_store() -> ObjectStore:
    global _object_store
    if _object_store is None:
        _object_store = LocalObjectStore()
        _object_store.ensure_root()
    return _object_store


def get_query_cache() -> QueryCache:
    return _query_cache


def get_pipeline(store: Annotated[ObjectStore, Depends(get_object_store)]) -> ImageUploadPipeline:
    return ImageUploadPipeline(store)


def get_repository(
    store: Annotated[ObjectStore, Depends(get_object_store)],
    factory: Annotated[sessionmaker, Depends(get_session_factory)],
) -> CatalogItemRepository:
    return CatalogItemRepository(store, session_factory=factory)


def get_ads_service(
    pipeline: Annotated[ImageUploadPipeline, Depends(get_pipeline)],
    factory: Annotated[sessionmaker, Depends(get_session_factory)],
) -> AdsService:
    return AdsService(pipeline, session_factory=factory)


def get_gallery_service(factory: Annotated[sessionmaker, Depends(get_session_factory)]) -> GalleryService:
    return GalleryService(session_factory=factory)


def require_actor_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Actor performing a mutation. Authentication itself happens upstream."""
    uid = (x_user_id or "").strip()
    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_actor")
    return uid


def require_writable() -> None:
    if settings.READ_ONLY:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="read_only_mode")
