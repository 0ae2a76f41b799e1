from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Sequence

import structlog
from pydantic import ValidationError as SchemaError

from app.core.errors import CatalogError, PersistenceError, UploadError, ValidationError
from app.domain.catalog.models import ItemStatus
from app.domain.catalog.pricing import PriceField, Variant, build_pricing, classify, required_fields
from app.domain.catalog.schema import (
    CONTENT_AR_PLACEHOLDER,
    CONTENT_EN_PLACEHOLDER,
    CatalogItemCreate,
    CatalogItemOut,
    CategoryOut,
)
from app.services.catalog_repository import CatalogItemRepository
from app.services.image_upload import ImageFile, ImageUploadPipeline, ValidationResult
from app.services.query_cache import QueryCache

log = structlog.get_logger()

SessionProvider = Callable[[], Awaitable[Mapping[str, Any] | None]]


class FormState(str, Enum):
    editing = "editing"
    validating = "validating"
    uploading_images = "uploading_images"
    persisting = "persisting"
    done = "done"
    failed = "failed"


_BUSY = (FormState.validating, FormState.uploading_images, FormState.persisting)


def _is_blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


class ItemFormController:
    """Drives the create-item form: live pricing fields, image selection, submit."""

    def __init__(
        self,
        pipeline: ImageUploadPipeline,
        repository: CatalogItemRepository,
        cache: QueryCache | None = None,
        session_provider: SessionProvider | None = None,
        *,
        resource: str = "news",
    ):
        self.pipeline = pipeline
        self.repository = repository
        self.cache = cache
        self.session_provider = session_provider
        self.resource = resource

        self.state = FormState.editing
        self.history: list[FormState] = [FormState.editing]
        self.actor_id: str | None = None
        self.categories: list[CategoryOut] = []
        self.category: CategoryOut | None = None
        self.images: list[ImageFile] = []
        self.last_error: CatalogError | None = None
        self._task: asyncio.Task | None = None

    # ----- setup -----

    async def mount(self) -> None:
        if self.session_provider is not None:
            user = await self.session_provider()
            uid = (user or {}).get("id")
            self.actor_id = str(uid) if uid else None
        self.categories = await self.repository.list_categories()

    # ----- editing -----

    @property
    def variant(self) -> Variant:
        return classify(self.category.name_en if self.category else None)

    @property
    def price_fields(self) -> tuple[PriceField, ...]:
        return required_fields(self.variant)

    def select_category(self, category_id: Any) -> tuple[PriceField, ...]:
        if _is_blank(category_id):
            self.category = None
        else:
            self.category = next((c for c in self.categories if str(c.id) == str(category_id)), None)
        return self.price_fields

    def add_images(self, files: Sequence[ImageFile]) -> ValidationResult:
        result = self.pipeline.validate(files, existing_count=len(self.images))
        self.images.extend(result.accepted)
        if result.rejected:
            log.info(
                "news.form.images_rejected",
                reasons=[r.reason for r in result.rejected],
                files=[r.file.filename for r in result.rejected],
            )
        return result

    def remove_image(self, index: int) -> None:
        if 0 <= index < len(self.images):
            del self.images[index]

    # ----- submit -----

    def _transition(self, state: FormState) -> None:
        self.state = state
        self.history.append(state)

    def _fail(self, err: CatalogError) -> None:
        self.last_error = err
        self._transition(FormState.failed)
        self._transition(FormState.editing)

    async def _resolve_category(self, category_id: Any) -> CategoryOut:
        for c in self.categories:
            if str(c.id) == str(category_id):
                return c
        try:
            cid = int(category_id)
        except (TypeError, ValueError):
            raise ValidationError("category not found", code="category_not_found", field="category_id")
        category = await self.repository.get_category(cid)
        if category is None:
            raise ValidationError("category not found", code="category_not_found", field="category_id")
        return category

    def _check_images(self, images: list[ImageFile]) -> None:
        if not images:
            raise ValidationError("image required", code="image_required", field="images")
        result = self.pipeline.validate(images, existing_count=0)
        if result.rejected:
            first = result.rejected[0]
            raise ValidationError(first.reason, code=first.reason, field="images")

    def _build_payload(self, values: Mapping[str, Any], category: CategoryOut, images: list[ImageFile]) -> CatalogItemCreate:
        pricing = build_pricing(classify(category.name_en), values)
        data = {
            "title_ar": values.get("title_ar") or "",
            "title_en": values.get("title_en") or "",
            "category_id": category.id,
            "status": values.get("status") or ItemStatus.none,
            "content_ar": values.get("content_ar") or CONTENT_AR_PLACEHOLDER,
            "content_en": values.get("content_en") or CONTENT_EN_PLACEHOLDER,
            "yt_code": (values.get("yt_code") or "").strip() or None,
            # Replaced by the uploaded URLs once the upload succeeds
            "images": [f.filename for f in images],
            "pricing": pricing,
        }
        try:
            return CatalogItemCreate.model_validate(data)
        except SchemaError as e:
            err = e.errors()[0]
            field = str(err["loc"][0]) if err.get("loc") else None
            raise ValidationError(err.get("msg") or "invalid value", code="invalid_field", field=field)

    async def submit(
        self,
        values: Mapping[str, Any],
        images: Sequence[ImageFile] | None = None,
        actor_id: str | None = None,
    ) -> CatalogItemOut:
        if self.state in _BUSY:
            raise ValidationError("submission already in progress", code="busy")
        self._task = asyncio.current_task()
        try:
            return await self._submit(values, list(self.images if images is None else images), actor_id)
        finally:
            self._task = None

    async def _submit(self, values: Mapping[str, Any], images: list[ImageFile], actor_id: str | None) -> CatalogItemOut:
        self._transition(FormState.validating)
        try:
            actor = str(actor_id or self.actor_id or "").strip()
            if not actor:
                raise ValidationError("missing actor", code="actor_required", field="user_id")
            if _is_blank(values.get("category_id")):
                raise ValidationError("category required", code="category_required", field="category_id")
            self._check_images(images)
            category = await self._resolve_category(values["category_id"])
            payload = self._build_payload(values, category, images)
        except ValidationError as e:
            self._fail(e)
            raise
        except PersistenceError as e:
            self._fail(e)
            raise
        except asyncio.CancelledError:
            self._transition(FormState.editing)
            raise

        self._transition(FormState.uploading_images)
        try:
            urls = await self.pipeline.upload(images)
        except UploadError as e:
            # Selected images stay put for a retry
            self._fail(e)
            raise
        except asyncio.CancelledError:
            self._transition(FormState.editing)
            raise

        self._transition(FormState.persisting)
        try:
            item = await self.repository.create(payload.model_copy(update={"images": urls}), actor)
        except CatalogError as e:
            await self._discard_uploads(urls)
            self._fail(e)
            raise
        except asyncio.CancelledError:
            await self._discard_uploads(urls)
            self._transition(FormState.editing)
            raise
        except Exception as e:
            await self._discard_uploads(urls)
            err = PersistenceError("could not save the item", code="create_failed")
            self._fail(err)
            raise err from e

        self.images = []
        self.last_error = None
        if self.cache is not None:
            self.cache.invalidate((self.resource,))
        self._transition(FormState.done)
        log.info("news.form.submitted", item_id=item.id, images=len(urls), actor_id=actor)
        return item

    async def _discard_uploads(self, urls: list[str]) -> None:
        keys = [k for k in (self.pipeline.store.key_from_url(u) for u in urls) if k]
        if not keys:
            return
        try:
            await self.pipeline.store.remove(keys)
        except Exception as e:
            log.error("news.form.cleanup_failed", keys=keys, error=str(e))

    def reset(self) -> None:
        self.images = []
        self.category = None
        self.last_error = None
        self._transition(FormState.editing)

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
