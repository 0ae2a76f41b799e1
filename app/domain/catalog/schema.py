from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import field_validator

from app.core.config import settings
from app.domain.catalog.models import Ad, DateBucket, Gallery, ItemStatus, NewsItem
from app.domain.catalog.pricing import PRICE_KEYS

TITLE_MAX_LENGTH = 100

CONTENT_AR_PLACEHOLDER = "اكتب الخبر بالعربية..."
CONTENT_EN_PLACEHOLDER = "Write the news in English..."


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name_ar: str
    name_en: str


class PriceFieldOut(BaseModel):
    key: str
    label: str
    required: bool


class CatalogItemCreate(BaseModel):
    title_ar: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    title_en: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    category_id: int
    status: ItemStatus = ItemStatus.none
    content_ar: str = CONTENT_AR_PLACEHOLDER
    content_en: str = CONTENT_EN_PLACEHOLDER
    yt_code: str | None = None
    images: list[str] = Field(..., min_length=1)
    pricing: dict[str, float] = Field(default_factory=dict)

    @field_validator("title_ar", "title_en", mode="before")
    @classmethod
    def _strip_title(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("status", mode="before")
    @classmethod
    def _empty_status(cls, v: Any) -> Any:
        return ItemStatus.none if v in (None, "", "normal") else v

    @field_validator("images")
    @classmethod
    def _images_cap(cls, v: list[str]) -> list[str]:
        if len(v) > settings.MAX_IMAGES_PER_ITEM:
            raise ValueError(f"at most {settings.MAX_IMAGES_PER_ITEM} images")
        return v


class CatalogItemOut(BaseModel):
    id: int
    user_id: str
    category_id: int
    title_ar: str
    title_en: str
    status: ItemStatus
    content_ar: str | None = None
    content_en: str | None = None
    yt_code: str | None = None
    images: list[str] = []
    pricing_variant: str
    pricing: dict[str, float] = {}
    created_at: datetime


class NewsFilters(BaseModel):
    category_id: int | None = None
    status: ItemStatus | None = None
    search: str | None = None
    date: DateBucket = DateBucket.any


class CatalogPage(BaseModel):
    items: list[CatalogItemOut] = []
    total: int = 0


class AdOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title_ar: str
    title_en: str
    link: str | None = None
    image_url: str
    created_at: datetime


class AdUpdate(BaseModel):
    title_ar: str | None = Field(default=None, min_length=1, max_length=160)
    title_en: str | None = Field(default=None, min_length=1, max_length=160)
    link: str | None = None


class AdPage(BaseModel):
    items: list[AdOut] = []
    total: int = 0


class GalleryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title_ar: str
    title_en: str | None = None
    image_urls: list[str] = []
    created_at: datetime


def to_item_out(row: NewsItem) -> CatalogItemOut:
    pricing = {k: float(getattr(row, k)) for k in PRICE_KEYS if getattr(row, k) is not None}
    return CatalogItemOut(
        id=row.id,
        user_id=row.user_id,
        category_id=row.category_id,
        title_ar=row.title_ar,
        title_en=row.title_en,
        status=ItemStatus(row.status or ItemStatus.none.value),
        content_ar=row.content_ar,
        content_en=row.content_en,
        yt_code=row.yt_code,
        images=list(row.images or []),
        pricing_variant=row.pricing_variant,
        pricing=pricing,
        created_at=row.created_at,
    )


def to_ad_out(row: Ad) -> AdOut:
    return AdOut.model_validate(row)


def to_gallery_out(row: Gallery) -> GalleryOut:
    return GalleryOut.model_validate(row)
