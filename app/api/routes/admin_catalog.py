from __future__ import annotations

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from app.api.deps import (
    get_pipeline,
    get_query_cache,
    get_repository,
    require_actor_id,
    require_writable,
)
from app.core.config import settings
from app.domain.catalog.models import DateBucket, ItemStatus
from app.domain.catalog.pricing import classify, required_fields
from app.domain.catalog.schema import CatalogItemOut, CategoryOut, PriceFieldOut
from app.services.catalog_repository import CatalogItemRepository, total_pages
from app.services.image_upload import ImageFile, ImageUploadPipeline
from app.services.item_form import ItemFormController
from app.services.list_query import ListState, query_key, to_filters
from app.services.query_cache import QueryCache


class PricingFieldsOut(BaseModel):
    category_id: int
    variant: str
    fields: list[PriceFieldOut]


class NewsListOut(BaseModel):
    items: list[CatalogItemOut]
    total: int
    page: int
    page_size: int
    total_pages: int


router = APIRouter()


async def to_image_files(files: list[UploadFile] | None) -> list[ImageFile]:
    out: list[ImageFile] = []
    for f in files or []:
        data = await f.read()
        await f.close()
        out.append(ImageFile(filename=f.filename or "", content_type=f.content_type or "", data=data))
    return out


@router.get("/categories", response_model=List[CategoryOut])
async def list_categories(repo: Annotated[CatalogItemRepository, Depends(get_repository)]):
    return await repo.list_categories()


@router.get("/categories/{category_id}/pricing-fields", response_model=PricingFieldsOut)
async def category_pricing_fields(
    category_id: int,
    repo: Annotated[CatalogItemRepository, Depends(get_repository)],
):
    category = await repo.get_category(category_id)
    if category is None:
        raise HTTPException(status_code=404, detail="category_not_found")
    variant = classify(category.name_en)
    return PricingFieldsOut(
        category_id=category.id,
        variant=variant.value,
        fields=[PriceFieldOut(key=f.key, label=f.label, required=f.required) for f in required_fields(variant)],
    )


@router.get("/news", response_model=NewsListOut)
async def list_news(
    response: Response,
    repo: Annotated[CatalogItemRepository, Depends(get_repository)],
    cache: Annotated[QueryCache, Depends(get_query_cache)],
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    category_id: Optional[int] = Query(None),
    status: Optional[ItemStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    date: DateBucket = Query(DateBucket.any),
):
    size = int(page_size or settings.NEWS_PAGE_SIZE)
    state = ListState(
        page=page,
        category_id=category_id,
        status=status,
        effective_search=(search or "").strip(),
        date_bucket=date,
    )
    key = query_key(state) + (size,)
    # Date buckets move with the clock, so only unbounded listings are cached
    cacheable = date == DateBucket.any
    result = cache.get(key) if cacheable else None
    if result is None:
        generation = cache.generation
        result = await repo.list(page, size, to_filters(state))
        if cacheable and cache.generation == generation:
            cache.set(key, result)
    response.headers["X-Total-Count"] = str(result.total)
    return NewsListOut(
        items=result.items,
        total=result.total,
        page=page,
        page_size=size,
        total_pages=total_pages(result.total, size),
    )


@router.post("/news", response_model=CatalogItemOut, dependencies=[Depends(require_writable)])
async def create_news(
    actor_id: Annotated[str, Depends(require_actor_id)],
    repo: Annotated[CatalogItemRepository, Depends(get_repository)],
    pipeline: Annotated[ImageUploadPipeline, Depends(get_pipeline)],
    cache: Annotated[QueryCache, Depends(get_query_cache)],
    title_ar: str = Form(""),
    title_en: str = Form(""),
    category_id: str = Form(""),
    status: str = Form(""),
    content_ar: str = Form(""),
    content_en: str = Form(""),
    yt_code: str = Form(""),
    price: str = Form(""),
    price_medium: str = Form(""),
    price_large: str = Form(""),
    price_family: str = Form(""),
    offers: str = Form(""),
    images: Optional[List[UploadFile]] = File(None),
):
    """Multipart create: uploads the images, then stores the item."""
    form = ItemFormController(pipeline, repo, cache)
    values = {
        "title_ar": title_ar,
        "title_en": title_en,
        "category_id": category_id,
        "status": status,
        "content_ar": content_ar,
        "content_en": content_en,
        "yt_code": yt_code,
        "price": price,
        "price_medium": price_medium,
        "price_large": price_large,
        "price_family": price_family,
        "offers": offers,
    }
    return await form.submit(values, await to_image_files(images), actor_id=actor_id)


@router.get("/news/{item_id}", response_model=CatalogItemOut)
async def get_news(item_id: int, repo: Annotated[CatalogItemRepository, Depends(get_repository)]):
    return await repo.get(item_id)


@router.delete("/news/{item_id}", dependencies=[Depends(require_writable), Depends(require_actor_id)])
async def delete_news(
    item_id: int,
    repo: Annotated[CatalogItemRepository, Depends(get_repository)],
    cache: Annotated[QueryCache, Depends(get_query_cache)],
):
    await repo.delete(item_id)
    cache.invalidate(("news",))
    return {"deleted": True}
