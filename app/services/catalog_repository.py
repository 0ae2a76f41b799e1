from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, TypeVar

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import PersistenceError, StoreDivergenceError, ValidationError
from app.domain.catalog.models import Category, DateBucket, NewsItem, utcnow
from app.domain.catalog.pricing import classify, validate_pricing
from app.domain.catalog.schema import (
    CatalogItemCreate,
    CatalogItemOut,
    CatalogPage,
    CategoryOut,
    NewsFilters,
    to_item_out,
)
from app.repositories.db import LIKE_ESCAPE, SessionLocal, contains_pattern, run_in_session
from app.services.object_store import ObjectStore

log = structlog.get_logger()

T = TypeVar("T")


def bucket_start(bucket: DateBucket | str | None, now: datetime) -> datetime | None:
    b = DateBucket(bucket or DateBucket.any)
    if b == DateBucket.today:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if b == DateBucket.week:
        return now - timedelta(days=7)
    if b == DateBucket.month:
        return now - relativedelta(months=1)
    if b == DateBucket.year:
        return now - relativedelta(years=1)
    return None


def total_pages(total: int, page_size: int) -> int:
    return max(1, -(-int(total) // int(page_size)))


class CatalogItemRepository:
    """Catalog items against the relational store, plus image cleanup on delete.

    Blocking database work runs in a worker thread; every call opens its own
    session so concurrent calls never share one.
    """

    def __init__(
        self,
        store: ObjectStore,
        session_factory: sessionmaker = SessionLocal,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.session_factory = session_factory
        self.clock = clock

    async def _run(self, fn: Callable[[Session], T]) -> T:
        return await run_in_session(self.session_factory, fn)

    # ----- categories -----

    async def list_categories(self) -> list[CategoryOut]:
        def _q(db: Session) -> list[CategoryOut]:
            rows = db.execute(select(Category).order_by(Category.id.asc())).scalars().all()
            return [CategoryOut.model_validate(r) for r in rows]

        try:
            return await self._run(_q)
        except SQLAlchemyError as e:
            log.error("categories.list.error", error=str(e))
            raise PersistenceError("could not load categories") from e

    async def get_category(self, category_id: int) -> CategoryOut | None:
        def _q(db: Session) -> CategoryOut | None:
            row = db.get(Category, int(category_id))
            return CategoryOut.model_validate(row) if row else None

        try:
            return await self._run(_q)
        except SQLAlchemyError as e:
            raise PersistenceError("could not load category") from e

    # ----- items -----

    async def create(self, payload: CatalogItemCreate, actor_id: str) -> CatalogItemOut:
        if not str(actor_id or "").strip():
            raise ValidationError("missing actor", code="actor_required", field="user_id")

        def _insert(db: Session) -> CatalogItemOut:
            category = db.get(Category, int(payload.category_id))
            if category is None:
                raise ValidationError("category not found", code="category_not_found", field="category_id")
            variant = classify(category.name_en)
            validate_pricing(variant, payload.pricing)

            row = NewsItem(
                user_id=str(actor_id),
                category_id=int(category.id),
                title_ar=payload.title_ar,
                title_en=payload.title_en,
                status=payload.status.value,
                content_ar=payload.content_ar,
                content_en=payload.content_en,
                yt_code=(payload.yt_code or None),
                images=list(payload.images),
                pricing_variant=variant.value,
                created_at=self.clock(),
                **payload.pricing,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return to_item_out(row)

        try:
            item = await self._run(_insert)
        except SQLAlchemyError as e:
            log.error("news.create.error", error=str(e))
            raise PersistenceError("could not save the item", code="create_failed") from e
        log.info("news.create.ok", item_id=item.id, category_id=item.category_id, variant=item.pricing_variant)
        return item

    async def get(self, item_id: int) -> CatalogItemOut:
        def _q(db: Session) -> CatalogItemOut | None:
            row = db.get(NewsItem, int(item_id))
            return to_item_out(row) if row else None

        try:
            item = await self._run(_q)
        except SQLAlchemyError as e:
            raise PersistenceError("could not load the item") from e
        if item is None:
            raise PersistenceError("item not found", code="not_found")
        return item

    async def list(self, page: int, page_size: int, filters: NewsFilters | None = None) -> CatalogPage:
        f = filters or NewsFilters()
        page = max(1, int(page))
        page_size = max(1, int(page_size))
        now = self.clock()

        def _q(db: Session) -> CatalogPage:
            stmt = select(NewsItem)
            if f.category_id is not None:
                stmt = stmt.where(NewsItem.category_id == int(f.category_id))
            if f.status is not None:
                stmt = stmt.where(NewsItem.status == f.status.value)
            term = (f.search or "").strip()
            if term:
                like = contains_pattern(term)
                stmt = stmt.where(
                    or_(
                        NewsItem.title_ar.ilike(like, escape=LIKE_ESCAPE),
                        NewsItem.title_en.ilike(like, escape=LIKE_ESCAPE),
                    )
                )
            start = bucket_start(f.date, now)
            if start is not None:
                stmt = stmt.where(NewsItem.created_at >= start, NewsItem.created_at <= now)

            total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            rows = (
                db.execute(
                    stmt.order_by(NewsItem.created_at.desc(), NewsItem.id.desc())
                    .limit(page_size)
                    .offset((page - 1) * page_size)
                )
                .scalars()
                .all()
            )
            return CatalogPage(items=[to_item_out(r) for r in rows], total=int(total))

        try:
            return await self._run(_q)
        except SQLAlchemyError as e:
            log.error("news.list.error", error=str(e))
            raise PersistenceError("could not load items", code="list_failed") from e

    async def delete(self, item_id: int) -> None:
        item = await self.get(item_id)

        # Image first: a failure here leaves both stores untouched
        primary = item.images[0] if item.images else None
        key = self.store.key_from_url(primary) if primary else None
        if key:
            try:
                await self.store.remove([key])
            except Exception as e:
                log.error("news.delete.image_error", item_id=item.id, key=key, error=str(e))
                raise PersistenceError("could not delete the item image", code="image_delete_failed") from e

        def _delete(db: Session) -> None:
            row = db.get(NewsItem, int(item_id))
            if row is not None:
                db.delete(row)
                db.commit()

        try:
            await self._run(_delete)
        except SQLAlchemyError as e:
            if key:
                log.error("news.delete.divergence", item_id=item.id, key=key, error=str(e))
                raise StoreDivergenceError(
                    "item image was deleted but the item record was not", code="store_divergence"
                ) from e
            raise PersistenceError("could not delete the item", code="delete_failed") from e
        log.info("news.delete.ok", item_id=item.id, image_removed=bool(key))
