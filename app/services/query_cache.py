from __future__ import annotations

from typing import Any, Hashable

import structlog

log = structlog.get_logger()

QueryKey = tuple[Hashable, ...]


class QueryCache:
    """Results keyed by query key.

    Keys are tuples whose first element names the resource (``"news"``);
    ``invalidate`` drops every entry under a prefix so the next read refetches,
    and bumps ``generation`` so a fetch started before it can tell its result
    is already outdated. Reads never block.
    """

    def __init__(self) -> None:
        self._entries: dict[QueryKey, Any] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        """Bumped on each invalidation."""
        return self._generation

    def get(self, key: QueryKey) -> Any | None:
        return self._entries.get(tuple(key))

    def is_fresh(self, key: QueryKey) -> bool:
        return tuple(key) in self._entries

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[tuple(key)] = value

    def invalidate(self, prefix: QueryKey = ()) -> int:
        prefix = tuple(prefix)
        stale = [k for k in self._entries if k[: len(prefix)] == prefix]
        for k in stale:
            del self._entries[k]
        n = len(stale)
        self._generation += 1
        log.debug("query_cache.invalidate", prefix=list(prefix), entries=n)
        return n

    def clear(self) -> None:
        self._entries.clear()
        self._generation += 1

    def __len__(self) -> int:
        return len(self._entries)
