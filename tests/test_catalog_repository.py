from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import PersistenceError, StoreDivergenceError, ValidationError
from app.domain.catalog.models import DateBucket, ItemStatus, NewsItem
from app.domain.catalog.schema import CatalogItemCreate, NewsFilters
from app.services.catalog_repository import CatalogItemRepository, bucket_start, total_pages

pytestmark = pytest.mark.anyio

NOW = datetime(2026, 3, 15, 14, 30, 0)


def _payload(category_id: int, title: str = "Item", **pricing) -> CatalogItemCreate:
    return CatalogItemCreate(
        title_ar=title,
        title_en=title,
        category_id=category_id,
        images=["http://testserver/static/uploads/1.png"],
        pricing=pricing or {"price": 10.0},
    )


def _add_news(db, category_id: int, title: str, created_at: datetime, status: str = "none", images=None):
    row = NewsItem(
        user_id="u1",
        category_id=category_id,
        title_ar=title,
        title_en=title,
        status=status,
        images=images or ["http://testserver/static/uploads/x.png"],
        pricing_variant="simple",
        price=1.0,
        created_at=created_at,
    )
    db.add(row)
    db.commit()
    return row.id


def test_bucket_start():
    assert bucket_start(DateBucket.any, NOW) is None
    assert bucket_start(DateBucket.today, NOW) == datetime(2026, 3, 15)
    assert bucket_start(DateBucket.week, NOW) == NOW - timedelta(days=7)
    assert bucket_start(DateBucket.month, NOW) == datetime(2026, 2, 15, 14, 30)
    assert bucket_start("year", NOW) == datetime(2025, 3, 15, 14, 30)


def test_total_pages_is_never_zero():
    assert total_pages(0, 10) == 1
    assert total_pages(10, 10) == 1
    assert total_pages(21, 10) == 3


async def test_create_pizza_round_trip(repository, categories):
    created = await repository.create(
        _payload(categories["Pizza"], "Margherita", price=30.0, price_medium=40.0, price_large=50.0),
        actor_id="u-42",
    )
    assert created.id > 0
    assert created.user_id == "u-42"
    assert created.pricing_variant == "pizza"

    page = await repository.list(1, 10, NewsFilters(category_id=categories["Pizza"]))
    assert page.total == 1
    assert page.items[0].pricing == {"price": 30.0, "price_medium": 40.0, "price_large": 50.0}


async def test_create_rejects_pricing_from_another_variant(repository, categories):
    with pytest.raises(ValidationError) as ei:
        await repository.create(
            _payload(categories["Sandwiches"], price=25.0, price_medium=30.0, price_large=35.0), actor_id="u1"
        )
    assert ei.value.code == "unknown_price_field"

    with pytest.raises(ValidationError) as ei2:
        await repository.create(_payload(999), actor_id="u1")
    assert ei2.value.code == "category_not_found"

    with pytest.raises(ValidationError):
        await repository.create(_payload(categories["Drinks"]), actor_id=" ")


async def test_list_combines_filters(repository, categories, db_session):
    pizza, drinks = categories["Pizza"], categories["Drinks"]
    _add_news(db_session, pizza, "Pepperoni Special", NOW - timedelta(hours=1), status="offer")
    _add_news(db_session, pizza, "Cheese", NOW - timedelta(hours=2), status="offer")
    _add_news(db_session, drinks, "Special Lemonade", NOW - timedelta(hours=3), status="offer")
    _add_news(db_session, pizza, "Special Veggie", NOW - timedelta(hours=4), status="trend")

    repository.clock = lambda: NOW

    page = await repository.list(1, 10, NewsFilters(category_id=pizza, status=ItemStatus.offer, search="special"))
    assert [i.title_en for i in page.items] == ["Pepperoni Special"]
    assert page.total == 1

    everything = await repository.list(1, 10)
    assert everything.total == 4
    assert [i.title_en for i in everything.items][0] == "Pepperoni Special"


async def test_search_matches_either_title(repository, categories, db_session):
    row_id = _add_news(db_session, categories["Drinks"], "x", NOW)
    row = db_session.get(NewsItem, row_id)
    row.title_ar = "عصير برتقال"
    row.title_en = "Orange Juice"
    db_session.commit()

    repository.clock = lambda: NOW
    assert (await repository.list(1, 10, NewsFilters(search="ORANGE"))).total == 1
    assert (await repository.list(1, 10, NewsFilters(search="برتقال"))).total == 1
    assert (await repository.list(1, 10, NewsFilters(search="apple"))).total == 0


async def test_search_treats_like_wildcards_literally(repository, categories, db_session):
    cid = categories["Drinks"]
    for i, title in enumerate(["Cola", "50% off", "axb", "a_b", r"back\slash"]):
        _add_news(db_session, cid, title, NOW - timedelta(minutes=i))
    repository.clock = lambda: NOW

    async def titles(term):
        return [i.title_en for i in (await repository.list(1, 10, NewsFilters(search=term))).items]

    assert await titles("%") == ["50% off"]
    assert await titles("a_b") == ["a_b"]
    assert await titles("_") == ["a_b"]
    assert await titles("\\") == [r"back\slash"]
    assert await titles("ax") == ["axb"]


async def test_date_bucket_filters(repository, categories, db_session):
    cid = categories["Drinks"]
    _add_news(db_session, cid, "this morning", NOW.replace(hour=1))
    _add_news(db_session, cid, "three days ago", NOW - timedelta(days=3))
    _add_news(db_session, cid, "three weeks ago", NOW - timedelta(weeks=3))
    _add_news(db_session, cid, "six months ago", NOW - timedelta(days=180))
    _add_news(db_session, cid, "two years ago", NOW - timedelta(days=730))

    repository.clock = lambda: NOW

    async def count(bucket):
        return (await repository.list(1, 10, NewsFilters(date=bucket))).total

    assert await count(DateBucket.today) == 1
    assert await count(DateBucket.week) == 2
    assert await count(DateBucket.month) == 3
    assert await count(DateBucket.year) == 4
    assert await count(DateBucket.any) == 5


async def test_pagination_is_newest_first(repository, categories, db_session):
    for i in range(12):
        _add_news(db_session, categories["Drinks"], f"n{i}", NOW - timedelta(minutes=i))
    p1 = await repository.list(1, 5)
    p3 = await repository.list(3, 5)
    assert [i.title_en for i in p1.items] == ["n0", "n1", "n2", "n3", "n4"]
    assert [i.title_en for i in p3.items] == ["n10", "n11"]
    assert p1.total == p3.total == 12


async def test_delete_removes_primary_image_then_record(repository, store, categories, db_session):
    url = await store.upload("111.png", b"img")
    other = await store.upload("112.png", b"img")
    item_id = _add_news(db_session, categories["Drinks"], "gone", NOW, images=[url, other])

    await repository.delete(item_id)

    assert not (store.root / "111.png").exists()
    # Only the primary image is removed
    assert (store.root / "112.png").exists()
    with pytest.raises(PersistenceError) as ei:
        await repository.get(item_id)
    assert ei.value.code == "not_found"


class BrokenRemoveStore:
    def __init__(self, inner):
        self.inner = inner

    async def upload(self, key, data, content_type=None):
        return await self.inner.upload(key, data, content_type)

    async def remove(self, keys):
        raise OSError("permission denied")

    def get_public_url(self, key):
        return self.inner.get_public_url(key)

    def key_from_url(self, url):
        return self.inner.key_from_url(url)


async def test_delete_aborts_when_image_removal_fails(store, session_factory, categories, db_session):
    url = await store.upload("200.png", b"img")
    item_id = _add_news(db_session, categories["Drinks"], "stays", NOW, images=[url])
    repo = CatalogItemRepository(BrokenRemoveStore(store), session_factory=session_factory)

    with pytest.raises(PersistenceError) as ei:
        await repo.delete(item_id)
    assert ei.value.code == "image_delete_failed"

    assert (await repo.get(item_id)).title_en == "stays"
    assert (store.root / "200.png").exists()


class FailingDeleteRepository(CatalogItemRepository):
    async def _run(self, fn):
        if fn.__name__ == "_delete":
            raise OperationalError("DELETE", {}, Exception("database is locked"))
        return await super()._run(fn)


async def test_delete_reports_divergence_when_record_survives(store, session_factory, categories, db_session):
    url = await store.upload("300.png", b"img")
    item_id = _add_news(db_session, categories["Drinks"], "half", NOW, images=[url])
    repo = FailingDeleteRepository(store, session_factory=session_factory)

    with pytest.raises(StoreDivergenceError):
        await repo.delete(item_id)
    assert not (store.root / "300.png").exists()
    assert (await repo.get(item_id)).id == item_id


async def test_delete_with_foreign_image_url_skips_store(repository, categories, db_session):
    item_id = _add_news(db_session, categories["Drinks"], "ext", NOW, images=["https://elsewhere.example/a.png"])
    await repository.delete(item_id)
    assert (await repository.list(1, 10)).total == 0
