from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.repositories.db import Base


def utcnow() -> datetime:
    # Stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ItemStatus(str, Enum):
    none = "none"
    important = "important"
    urgent = "urgent"
    trend = "trend"
    offer = "offer"
    most_sold = "most_sold"


class DateBucket(str, Enum):
    any = "any"
    today = "today"
    week = "week"
    month = "month"
    year = "year"


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name_ar: Mapped[str] = mapped_column(String(160))
    # Secondary name drives the pricing variant
    name_en: Mapped[str] = mapped_column(String(160), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class NewsItem(Base):
    """A sellable catalog item. The table keeps its historical name."""

    __tablename__ = "news"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), index=True)

    title_ar: Mapped[str] = mapped_column(String(100))
    title_en: Mapped[str] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(32), default=ItemStatus.none.value, index=True)

    content_ar: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    yt_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    images: Mapped[list] = mapped_column(JSON, default=list)

    pricing_variant: Mapped[str] = mapped_column(String(16), default="simple")
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_medium: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_large: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_family: Mapped[float | None] = mapped_column(Float, nullable=True)
    offers: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    category: Mapped[Category] = relationship()  # type: ignore

    __table_args__ = (
        Index("idx_news_category_status_created", "category_id", "status", "created_at"),
    )


class Ad(Base):
    __tablename__ = "ads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title_ar: Mapped[str] = mapped_column(String(160))
    title_en: Mapped[str] = mapped_column(String(160))
    link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    image_url: Mapped[str] = mapped_column(String(1000))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class Gallery(Base):
    __tablename__ = "galleries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title_ar: Mapped[str] = mapped_column(String(160))
    title_en: Mapped[str | None] = mapped_column(String(160), nullable=True)
    image_urls: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
