"""Filter state and fetch orchestration for the paged item listing.

Filter state is an immutable ``ListState``; the module-level functions are
the only way to derive a new one. ``ListQueryController`` wires them to a
repository, a query cache and a debounced search box.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Protocol

import structlog

from app.core.config import settings
from app.domain.catalog.models import DateBucket, ItemStatus
from app.domain.catalog.schema import CatalogItemOut, CatalogPage, NewsFilters
from app.services.catalog_repository import total_pages
from app.services.debounce import Debouncer
from app.services.query_cache import QueryCache, QueryKey

log = structlog.get_logger()

FILTER_FIELDS = ("category_id", "status", "date_bucket")


class ListSource(Protocol):
    async def list(self, page: int, page_size: int, filters: NewsFilters | None = None) -> CatalogPage: ...

    async def delete(self, item_id: int) -> None: ...


@dataclass(frozen=True)
class ListState:
    page: int = 1
    category_id: int | None = None
    status: ItemStatus | None = None
    search_text: str = ""
    effective_search: str = ""
    date_bucket: DateBucket = DateBucket.any


def _coerce(name: str, value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DateBucket.any if name == "date_bucket" else None
    if name == "category_id":
        return int(value)
    if name == "status":
        return ItemStatus(value)
    if name == "date_bucket":
        return DateBucket(value)
    return value


def on_filter_change(state: ListState, name: str, value: Any) -> ListState:
    if name == "page":
        return replace(state, page=max(1, int(value)))
    if name not in FILTER_FIELDS:
        raise ValueError(f"unknown_filter:{name}")
    return replace(state, **{name: _coerce(name, value)}, page=1)


def on_search_text_change(state: ListState, text: str) -> ListState:
    return replace(state, search_text=text or "")


def apply_effective_search(state: ListState, text: str) -> ListState:
    term = (text or "").strip()
    if term == state.effective_search:
        return state
    return replace(state, effective_search=term, page=1)


def query_key(state: ListState, resource: str = "news") -> QueryKey:
    return (
        resource,
        state.page,
        state.category_id,
        state.status.value if state.status else None,
        state.effective_search,
        state.date_bucket.value,
    )


def to_filters(state: ListState) -> NewsFilters:
    return NewsFilters(
        category_id=state.category_id,
        status=state.status,
        search=state.effective_search or None,
        date=state.date_bucket,
    )


@dataclass(frozen=True)
class ListView:
    key: QueryKey | None = None
    items: list[CatalogItemOut] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.page_size)


class ListQueryController:
    def __init__(
        self,
        repository: ListSource,
        cache: QueryCache | None = None,
        *,
        page_size: int | None = None,
        debounce_ms: int | None = None,
        resource: str = "news",
        on_view: Callable[[ListView], None] | None = None,
    ):
        self.repository = repository
        self.cache = cache if cache is not None else QueryCache()
        self.page_size = int(page_size or settings.NEWS_PAGE_SIZE)
        self.resource = resource
        self.on_view = on_view

        delay = (debounce_ms if debounce_ms is not None else settings.SEARCH_DEBOUNCE_MS) / 1000.0
        self._debouncer = Debouncer(delay, self._on_search_settled)

        self.state = ListState()
        self.view = ListView(page_size=self.page_size)
        self.fetch_count = 0
        self.last_error: Exception | None = None

        self._last_fetched_key: QueryKey | None = None
        self._seq = 0
        # key -> (task, cache generation when it started)
        self._inflight: dict[QueryKey, tuple[asyncio.Task, int]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def key(self) -> QueryKey:
        return query_key(self.state, self.resource)

    # ----- inputs -----

    def on_search_text_change(self, text: str) -> None:
        self.state = on_search_text_change(self.state, text)
        self._debouncer.trigger(self.state.search_text)

    def _on_search_settled(self, text: str) -> None:
        new_state = apply_effective_search(self.state, text)
        if new_state is self.state:
            return
        self.state = new_state
        log.debug("list.search.settled", term=new_state.effective_search)
        self._spawn(self.refresh())

    async def on_filter_change(self, name: str, value: Any) -> ListView:
        self.state = on_filter_change(self.state, name, value)
        return await self.refresh()

    async def set_page(self, page: int) -> ListView:
        return await self.on_filter_change("page", page)

    # ----- fetching -----

    async def refresh(self, force: bool = False) -> ListView:
        if self._closed:
            return self.view
        key = self.key
        if not force and key == self._last_fetched_key and self.cache.is_fresh(key):
            return self.view

        self._seq += 1
        seq = self._seq

        cached = None if force else self.cache.get(key)
        if cached is not None:
            return await self._apply(key, seq, cached)

        # A fetch started before the last invalidation may return pre-write data
        generation = self.cache.generation
        running = self._inflight.get(key)
        if running is not None and not force and running[1] == generation:
            task = running[0]
        else:
            task = self._spawn(self._fetch(key, self.state, generation))
            self._inflight[key] = (task, generation)
            task.add_done_callback(lambda t, k=key: self._forget_inflight(k, t))
        result = await asyncio.shield(task)
        return await self._apply(key, seq, result)

    def _forget_inflight(self, key: QueryKey, task: asyncio.Task) -> None:
        running = self._inflight.get(key)
        if running is not None and running[0] is task:
            del self._inflight[key]

    async def _fetch(self, key: QueryKey, state: ListState, generation: int) -> CatalogPage:
        self.fetch_count += 1
        log.debug("list.fetch", key=list(key))
        try:
            result = await self.repository.list(state.page, self.page_size, to_filters(state))
        except Exception as e:
            self.last_error = e
            log.warning("list.fetch.error", key=list(key), error=str(e))
            raise
        if self.cache.generation == generation:
            self.cache.set(key, result)
        return result

    async def _apply(self, key: QueryKey, seq: int, result: CatalogPage) -> ListView:
        # Only the most recently issued request may touch the view
        if self._closed or seq != self._seq:
            log.debug("list.fetch.discarded", key=list(key))
            return self.view

        pages = total_pages(result.total, self.page_size)
        if self.state.page > pages:
            # The page emptied out under us (e.g. after a delete); clamp and go again
            self.state = replace(self.state, page=pages)
            return await self.refresh()

        self.view = ListView(
            key=key,
            items=list(result.items),
            total=int(result.total),
            page=self.state.page,
            page_size=self.page_size,
        )
        self._last_fetched_key = key
        self.last_error = None
        if self.on_view is not None:
            self.on_view(self.view)
        return self.view

    # ----- mutations -----

    async def delete(self, item_id: int) -> ListView:
        await self.repository.delete(item_id)

        items = [i for i in self.view.items if i.id != item_id]
        new_total = max(0, self.view.total - 1)
        self.view = replace(self.view, items=items, total=new_total)
        if self.on_view is not None:
            self.on_view(self.view)

        # Invalidate before the refetch so it cannot be served stale
        self.cache.invalidate((self.resource,))
        pages = total_pages(new_total, self.page_size)
        if self.state.page > pages:
            self.state = replace(self.state, page=pages)
        return await self.refresh(force=True)

    # ----- lifecycle -----

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            # Already logged in _fetch; retrieving it keeps asyncio quiet
            self.last_error = task.exception()  # type: ignore[assignment]

    async def wait_idle(self) -> None:
        """Waits for the debounce timer and background refreshes (tests, shutdown)."""
        await self._debouncer.wait()
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    def close(self) -> None:
        self._closed = True
        self._debouncer.close()
        for t in list(self._tasks):
            t.cancel()
        self._tasks.clear()
        self._inflight.clear()
