from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from time import perf_counter
from typing import Any

from catalog_gateway.app.repositories.page_cache_repository import PageCacheRepository
from catalog_gateway.app.services.catalog_items import (
    CatalogItem,
    CatalogPage,
    ContentKind,
    FilterCriteria,
    catalog_item_from_record,
)
from catalog_gateway.app.services.content_filters import SafetyPolicy
from catalog_gateway.app.services.fetch_throttle import FetchThrottle
from catalog_gateway.app.services.genre_catalog import GenreCatalog
from catalog_gateway.app.services.tmdb_client import CatalogSource, TmdbApiError
from catalog_gateway.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("catalog_gateway.catalog")

DEFAULT_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"


@dataclass(frozen=True)
class CatalogRequest:
    content_kind: str
    catalog_id: str
    search: str | None = None
    genre: str | None = None
    skip: int = 0


def catalog_request_from_extra(
    *,
    content_kind: str,
    catalog_id: str,
    extra: Mapping[str, str],
) -> CatalogRequest:
    return CatalogRequest(
        content_kind=content_kind.strip().lower(),
        catalog_id=catalog_id.strip(),
        search=_normalize_optional_text(extra.get("search")),
        genre=_normalize_optional_text(extra.get("genre")),
        skip=_parse_skip(extra.get("skip")),
    )


class CatalogService:
    """
    Windowed, filtered view over the upstream discovery listing.

    Discovery pages are fetched on demand in page order and memoized per
    content kind until the page cache epoch expires. Search requests go
    straight to the upstream search endpoint and never touch the cache.
    """

    def __init__(
        self,
        *,
        source: CatalogSource,
        page_cache: PageCacheRepository,
        genre_catalog: GenreCatalog,
        safety_policy: SafetyPolicy,
        throttle: FetchThrottle,
        catalogs: Mapping[str, ContentKind],
        original_languages: Sequence[str],
        image_base_url: str = DEFAULT_IMAGE_BASE_URL,
        page_size: int = 50,
        max_pages: int = 20,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._source = source
        self._page_cache = page_cache
        self._genre_catalog = genre_catalog
        self._safety_policy = safety_policy
        self._throttle = throttle
        self._catalogs = dict(catalogs)
        self._original_languages = tuple(original_languages)
        self._image_base_url = image_base_url
        self._page_size = max(1, page_size)
        self._max_pages = max(1, max_pages)
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def genre_catalog(self) -> GenreCatalog:
        return self._genre_catalog

    async def handle_catalog_request(self, request: CatalogRequest) -> CatalogPage:
        kind = self._catalogs.get(request.catalog_id)
        if kind is None or kind != request.content_kind:
            LOGGER.info(
                "catalog request ignored; unknown catalog catalog_id=%s type=%s",
                request.catalog_id,
                request.content_kind,
            )
            return CatalogPage.empty()

        started_at = perf_counter()
        if request.search is not None:
            page = await self.search(
                kind,
                request.search,
                skip=request.skip,
                genre=request.genre,
            )
        else:
            page = await self.query(
                kind,
                skip=request.skip,
                criteria=FilterCriteria(genre=request.genre),
            )

        self._telemetry.emit(
            "catalog.request",
            catalog_id=request.catalog_id,
            kind=kind,
            search=request.search is not None,
            genre=request.genre,
            skip=request.skip,
            returned=len(page.items),
            has_more=page.has_more,
            duration_ms=int((perf_counter() - started_at) * 1000),
        )
        return page

    async def query(
        self,
        kind: ContentKind,
        *,
        skip: int = 0,
        page_size: int | None = None,
        criteria: FilterCriteria | None = None,
    ) -> CatalogPage:
        window_start = max(0, skip)
        window_size = self._page_size if page_size is None else max(1, page_size)
        target_count = window_start + window_size

        try:
            epoch = self._page_cache.current_epoch(kind)
            await self._fill_pages(kind, generation=epoch.generation, target_count=target_count)
        except Exception:
            LOGGER.warning(
                "catalog query failed; returning empty page kind=%s skip=%s",
                kind,
                window_start,
                exc_info=True,
            )
            return CatalogPage.empty()

        filtered = self._apply_criteria(kind, self._page_cache.list_items(kind), criteria)
        current = self._page_cache.peek_epoch(kind)
        upstream_open = (
            current is not None
            and not current.exhausted
            and current.last_fetched_page < self._max_pages
        )
        return CatalogPage(
            items=filtered[window_start:target_count],
            has_more=len(filtered) > target_count or upstream_open,
        )

    async def search(
        self,
        kind: ContentKind,
        search_term: str,
        *,
        skip: int = 0,
        page_size: int | None = None,
        genre: str | None = None,
    ) -> CatalogPage:
        term = search_term.strip()
        if not term:
            return CatalogPage.empty()

        window_start = max(0, skip)
        window_size = self._page_size if page_size is None else max(1, page_size)

        try:
            upstream = await self._source.search(kind, term)
            accepted = await self._safety_policy.apply(
                self._map_records(kind, upstream.results),
                throttle=self._throttle,
            )
        except TmdbApiError as exc:
            LOGGER.warning(
                "upstream search failed kind=%s status=%s retryable=%s",
                kind,
                exc.status_code,
                exc.retryable,
            )
            self._telemetry.emit(
                "catalog.upstream.search.error",
                kind=kind,
                status_code=exc.status_code,
            )
            return CatalogPage.empty()
        except Exception:
            LOGGER.warning("catalog search failed kind=%s", kind, exc_info=True)
            return CatalogPage.empty()

        filtered = self._apply_criteria(kind, accepted, FilterCriteria(genre=genre))
        return CatalogPage(
            items=filtered[window_start : window_start + window_size],
            has_more=False,
        )

    def reset(self, kind: ContentKind | None = None) -> None:
        self._page_cache.reset(kind)

    async def _fill_pages(self, kind: ContentKind, *, generation: int, target_count: int) -> None:
        fetched_pages = 0
        while self._needs_page(kind, generation=generation, target_count=target_count):
            if fetched_pages > 0:
                await self._throttle.pause()
                # Another query may have filled the gap while this one slept.
                if not self._needs_page(kind, generation=generation, target_count=target_count):
                    return
            epoch = self._page_cache.peek_epoch(kind)
            if epoch is None:
                return
            fetched_pages += 1
            stored = await self._fetch_page(
                kind,
                generation=generation,
                page_number=epoch.last_fetched_page + 1,
            )
            if not stored:
                return

    def _needs_page(self, kind: ContentKind, *, generation: int, target_count: int) -> bool:
        epoch = self._page_cache.peek_epoch(kind)
        if epoch is None or epoch.generation != generation:
            return False
        if epoch.exhausted or epoch.last_fetched_page >= self._max_pages:
            return False
        return self._page_cache.count_items(kind) < target_count

    async def _fetch_page(self, kind: ContentKind, *, generation: int, page_number: int) -> bool:
        started_at = perf_counter()
        try:
            upstream = await self._source.discover(
                kind,
                page_number,
                original_languages=self._original_languages,
            )
            accepted = await self._safety_policy.apply(
                self._map_records(kind, upstream.results),
                throttle=self._throttle,
            )
        except TmdbApiError as exc:
            LOGGER.warning(
                "upstream page fetch failed; source marked exhausted kind=%s page=%s status=%s",
                kind,
                page_number,
                exc.status_code,
            )
            self._telemetry.emit(
                "catalog.upstream.page.error",
                kind=kind,
                page=page_number,
                status_code=exc.status_code,
                retryable=exc.retryable,
            )
            self._page_cache.mark_exhausted(kind, generation=generation)
            return False
        except Exception as exc:
            LOGGER.warning(
                "upstream page could not be processed; source marked exhausted kind=%s page=%s",
                kind,
                page_number,
                exc_info=True,
            )
            self._telemetry.emit(
                "catalog.upstream.page.error",
                kind=kind,
                page=page_number,
                error_type=type(exc).__name__,
            )
            self._page_cache.mark_exhausted(kind, generation=generation)
            return False

        exhausted = not upstream.results or (
            upstream.total_pages > 0 and page_number >= upstream.total_pages
        )
        stored = self._page_cache.store_page(
            kind,
            generation=generation,
            page_number=page_number,
            items=accepted,
            total_upstream_items=upstream.total_results,
            exhausted=exhausted,
        )
        if not stored:
            LOGGER.debug(
                "fetched page discarded; cache epoch moved on kind=%s page=%s generation=%s",
                kind,
                page_number,
                generation,
            )
            return False

        self._telemetry.emit(
            "catalog.upstream.page.fetch",
            kind=kind,
            page=page_number,
            raw_count=len(upstream.results),
            kept_count=len(accepted),
            exhausted=exhausted,
            duration_ms=int((perf_counter() - started_at) * 1000),
        )
        return True

    def _map_records(self, kind: ContentKind, records: Sequence[dict[str, Any]]) -> list[CatalogItem]:
        items: list[CatalogItem] = []
        for record in records:
            item = catalog_item_from_record(record, kind=kind, image_base_url=self._image_base_url)
            if item is None:
                LOGGER.debug("skipping upstream record without id kind=%s", kind)
                continue
            items.append(item)
        return items

    def _apply_criteria(
        self,
        kind: ContentKind,
        items: Sequence[CatalogItem],
        criteria: FilterCriteria | None,
    ) -> list[CatalogItem]:
        filtered = list(items)
        if criteria is None:
            return filtered

        genre_id = self._genre_catalog.resolve(kind, criteria.genre)
        if genre_id is not None:
            filtered = [item for item in filtered if genre_id in item.genre_ids]

        term = _normalize_optional_text(criteria.search_term)
        if term is not None:
            needle = term.casefold()
            filtered = [item for item in filtered if needle in item.title.casefold()]
        return filtered


def _parse_skip(value: str | None) -> int:
    if value is None:
        return 0
    try:
        parsed = int(value.strip())
    except ValueError:
        return 0
    return max(0, parsed)


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    if not stripped:
        return None
    return stripped
