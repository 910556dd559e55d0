from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace

from catalog_gateway.app.services.catalog_items import CatalogItem, ContentKind


@dataclass(frozen=True)
class CacheEpoch:
    generation: int
    created_at: float
    last_fetched_page: int = 0
    total_upstream_items: int = 0
    exhausted: bool = False


@dataclass
class _KindCache:
    epoch: CacheEpoch
    pages: dict[int, tuple[CatalogItem, ...]] = field(default_factory=dict)


class PageCacheRepository:
    """
    Process-local page cache for upstream discovery results, one epoch per kind.

    Pages are stored strictly in order within an epoch. Writes carry the
    generation they were fetched under, so a fetch that started before an
    epoch rollover cannot leak stale pages into the new epoch.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = max(0.0, ttl_seconds)
        self._clock = clock
        self._kinds: dict[ContentKind, _KindCache] = {}
        self._generation = 0

    def current_epoch(self, kind: ContentKind) -> CacheEpoch:
        now = self._clock()
        cached = self._kinds.get(kind)
        if cached is not None and now - cached.epoch.created_at < self._ttl_seconds:
            return cached.epoch
        return self._start_epoch(kind, now=now)

    def peek_epoch(self, kind: ContentKind) -> CacheEpoch | None:
        cached = self._kinds.get(kind)
        if cached is None:
            return None
        return cached.epoch

    def store_page(
        self,
        kind: ContentKind,
        *,
        generation: int,
        page_number: int,
        items: Sequence[CatalogItem],
        total_upstream_items: int,
        exhausted: bool,
    ) -> bool:
        cached = self._kinds.get(kind)
        if cached is None or cached.epoch.generation != generation:
            return False
        epoch = cached.epoch
        if page_number < 1 or page_number > epoch.last_fetched_page + 1:
            return False

        cached.pages[page_number] = tuple(items)
        cached.epoch = replace(
            epoch,
            last_fetched_page=max(epoch.last_fetched_page, page_number),
            total_upstream_items=max(0, total_upstream_items),
            exhausted=epoch.exhausted or exhausted,
        )
        return True

    def mark_exhausted(self, kind: ContentKind, *, generation: int) -> None:
        cached = self._kinds.get(kind)
        if cached is None or cached.epoch.generation != generation:
            return
        cached.epoch = replace(cached.epoch, exhausted=True)

    def list_items(self, kind: ContentKind) -> list[CatalogItem]:
        cached = self._kinds.get(kind)
        if cached is None:
            return []
        items: list[CatalogItem] = []
        for page_number in sorted(cached.pages):
            items.extend(cached.pages[page_number])
        return items

    def count_items(self, kind: ContentKind) -> int:
        cached = self._kinds.get(kind)
        if cached is None:
            return 0
        return sum(len(page) for page in cached.pages.values())

    def reset(self, kind: ContentKind | None = None) -> None:
        if kind is None:
            self._kinds.clear()
            return
        self._kinds.pop(kind, None)

    def _start_epoch(self, kind: ContentKind, *, now: float) -> CacheEpoch:
        self._generation += 1
        epoch = CacheEpoch(generation=self._generation, created_at=now)
        self._kinds[kind] = _KindCache(epoch=epoch)
        return epoch
