from __future__ import annotations

from typing import Callable, TypeVar

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import PersistenceError, StoreDivergenceError, ValidationError
from app.domain.catalog.models import Ad, Gallery
from app.domain.catalog.schema import AdOut, AdPage, AdUpdate, GalleryOut, to_ad_out, to_gallery_out
from app.repositories.db import LIKE_ESCAPE, SessionLocal, contains_pattern, run_in_session
from app.services.image_upload import ImageFile, ImageUploadPipeline

log = structlog.get_logger()

T = TypeVar("T")


class AdsService:
    """Banner ads: one image each, same delete ordering as catalog items."""

    def __init__(self, pipeline: ImageUploadPipeline, session_factory: sessionmaker = SessionLocal):
        self.pipeline = pipeline
        self.store = pipeline.store
        self.session_factory = session_factory

    async def _run(self, fn: Callable[[Session], T]) -> T:
        try:
            return await run_in_session(self.session_factory, fn)
        except SQLAlchemyError as e:
            log.error("ads.db.error", error=str(e))
            raise PersistenceError("ads store unavailable") from e

    def _check_image(self, image: ImageFile) -> None:
        result = self.pipeline.validate([image], existing_count=0)
        if result.rejected:
            reason = result.rejected[0].reason
            raise ValidationError(reason, code=reason, field="image")

    async def list(self, page: int = 1, page_size: int = 8, search: str | None = None) -> AdPage:
        page = max(1, int(page))
        page_size = max(1, int(page_size))
        term = (search or "").strip()

        def _q(db: Session) -> AdPage:
            stmt = select(Ad)
            if term:
                like = contains_pattern(term)
                stmt = stmt.where(
                    or_(Ad.title_ar.ilike(like, escape=LIKE_ESCAPE), Ad.title_en.ilike(like, escape=LIKE_ESCAPE))
                )
            total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            rows = (
                db.execute(
                    stmt.order_by(Ad.created_at.desc(), Ad.id.desc()).limit(page_size).offset((page - 1) * page_size)
                )
                .scalars()
                .all()
            )
            return AdPage(items=[to_ad_out(r) for r in rows], total=int(total))

        return await self._run(_q)

    async def get(self, ad_id: int) -> AdOut:
        def _q(db: Session) -> AdOut | None:
            row = db.get(Ad, int(ad_id))
            return to_ad_out(row) if row else None

        ad = await self._run(_q)
        if ad is None:
            raise PersistenceError("ad not found", code="not_found")
        return ad

    async def create(self, title_ar: str, title_en: str, image: ImageFile, link: str | None = None) -> AdOut:
        self._check_image(image)
        urls = await self.pipeline.upload([image])

        def _insert(db: Session) -> AdOut:
            row = Ad(title_ar=title_ar, title_en=title_en, link=link, image_url=urls[0])
            db.add(row)
            db.commit()
            db.refresh(row)
            return to_ad_out(row)

        try:
            ad = await self._run(_insert)
        except PersistenceError:
            await self._discard(urls[0])
            raise
        log.info("ads.create.ok", ad_id=ad.id)
        return ad

    async def update(self, ad_id: int, data: AdUpdate, image: ImageFile | None = None) -> AdOut:
        current = await self.get(ad_id)
        if image is not None:
            self._check_image(image)

        new_url = None
        if image is not None:
            new_url = (await self.pipeline.upload([image]))[0]

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if new_url:
            changes["image_url"] = new_url

        def _update(db: Session) -> AdOut | None:
            row = db.get(Ad, int(ad_id))
            if row is None:
                return None
            for k, v in changes.items():
                setattr(row, k, v)
            db.add(row)
            db.commit()
            db.refresh(row)
            return to_ad_out(row)

        try:
            ad = await self._run(_update)
        except PersistenceError:
            if new_url:
                await self._discard(new_url)
            raise
        if ad is None:
            if new_url:
                await self._discard(new_url)
            raise PersistenceError("ad not found", code="not_found")

        if new_url and current.image_url != new_url:
            await self._discard(current.image_url)
        log.info("ads.update.ok", ad_id=ad.id, image_replaced=bool(new_url))
        return ad

    async def delete(self, ad_id: int) -> None:
        ad = await self.get(ad_id)
        key = self.store.key_from_url(ad.image_url)
        if key:
            try:
                await self.store.remove([key])
            except Exception as e:
                log.error("ads.delete.image_error", ad_id=ad.id, key=key, error=str(e))
                raise PersistenceError("could not delete the ad image", code="image_delete_failed") from e

        def _delete(db: Session) -> None:
            row = db.get(Ad, int(ad_id))
            if row is not None:
                db.delete(row)
                db.commit()

        try:
            await self._run(_delete)
        except PersistenceError as e:
            if key:
                log.error("ads.delete.divergence", ad_id=ad.id, key=key)
                raise StoreDivergenceError(
                    "ad image was deleted but the ad record was not", code="store_divergence"
                ) from e
            raise
        log.info("ads.delete.ok", ad_id=ad.id)

    async def _discard(self, url: str) -> None:
        key = self.store.key_from_url(url)
        if not key:
            return
        try:
            await self.store.remove([key])
        except Exception as e:
            log.warning("ads.image.cleanup_failed", key=key, error=str(e))


class GalleryService:
    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    async def list(self) -> list[GalleryOut]:
        def _q(db: Session) -> list[GalleryOut]:
            rows = db.execute(select(Gallery).order_by(Gallery.created_at.desc(), Gallery.id.desc())).scalars().all()
            return [to_gallery_out(r) for r in rows]

        try:
            return await run_in_session(self.session_factory, _q)
        except SQLAlchemyError as e:
            log.error("galleries.list.error", error=str(e))
            raise PersistenceError("could not load galleries") from e
