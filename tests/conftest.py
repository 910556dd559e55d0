from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from catalog_gateway.app.dependencies import get_catalog_service, reset_cached_dependencies
from catalog_gateway.app.main import create_app
from catalog_gateway.app.repositories.page_cache_repository import PageCacheRepository
from catalog_gateway.app.services.catalog_items import ContentKind, UpstreamPage
from catalog_gateway.app.services.catalog_service import CatalogService
from catalog_gateway.app.services.content_filters import (
    ProviderAvailabilityFilter,
    build_safety_policy,
)
from catalog_gateway.app.services.fetch_throttle import FetchThrottle
from catalog_gateway.app.services.genre_catalog import GenreCatalog
from catalog_gateway.app.services.tmdb_client import TmdbApiError

RecordFactory = Callable[..., dict[str, Any]]


class FakeCatalogSource:
    def __init__(self) -> None:
        self.discover_pages: dict[str, list[list[dict[str, Any]]]] = {"movie": [], "series": []}
        self.search_results: dict[str, list[dict[str, Any]]] = {"movie": [], "series": []}
        self.providers: dict[int, list[int]] = {}
        self.total_pages_override: int | None = None
        self.failing_pages: set[tuple[str, int]] = set()
        self.failing_provider_ids: set[int] = set()
        self.fail_search = False
        self.discover_calls: list[tuple[str, int]] = []
        self.search_calls: list[tuple[str, str]] = []
        self.provider_calls: list[tuple[str, int, str]] = []

    async def discover(
        self,
        kind: ContentKind,
        page: int,
        *,
        original_languages: Sequence[str],
        genre_id: int | None = None,
    ) -> UpstreamPage:
        _ = (original_languages, genre_id)
        self.discover_calls.append((kind, page))
        await asyncio.sleep(0)
        if (kind, page) in self.failing_pages:
            raise TmdbApiError("upstream unavailable", status_code=503, retryable=True)

        pages = self.discover_pages[kind]
        results = pages[page - 1] if page <= len(pages) else []
        total_pages = (
            self.total_pages_override if self.total_pages_override is not None else len(pages)
        )
        return UpstreamPage(
            page=page,
            total_pages=total_pages,
            total_results=sum(len(raw_page) for raw_page in pages),
            results=[dict(record) for record in results],
        )

    async def search(self, kind: ContentKind, query: str, page: int = 1) -> UpstreamPage:
        _ = page
        self.search_calls.append((kind, query))
        await asyncio.sleep(0)
        if self.fail_search:
            raise TmdbApiError("search unavailable", status_code=500, retryable=True)
        results = self.search_results[kind]
        return UpstreamPage(
            page=1,
            total_pages=1,
            total_results=len(results),
            results=[dict(record) for record in results],
        )

    async def watch_providers(self, kind: ContentKind, tmdb_id: int, region: str) -> list[int]:
        self.provider_calls.append((kind, tmdb_id, region))
        await asyncio.sleep(0)
        if tmdb_id in self.failing_provider_ids:
            raise TmdbApiError("providers unavailable", status_code=502, retryable=True)
        return list(self.providers.get(tmdb_id, []))


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def _tmdb_record(
    tmdb_id: int,
    title: str | None = None,
    *,
    kind: ContentKind = "movie",
    language: str = "ko",
    adult: bool = False,
    genre_ids: Sequence[int] = (18,),
    poster_path: str | None = "/poster.jpg",
    release_date: str | None = "2019-05-30",
    vote_average: float | None = 7.5,
) -> dict[str, Any]:
    resolved_title = title if title is not None else f"Title {tmdb_id}"
    record: dict[str, Any] = {
        "id": tmdb_id,
        "overview": f"Overview for {resolved_title}",
        "poster_path": poster_path,
        "backdrop_path": "/backdrop.jpg",
        "vote_average": vote_average,
        "genre_ids": list(genre_ids),
        "original_language": language,
        "adult": adult,
    }
    if kind == "movie":
        record["title"] = resolved_title
        record["release_date"] = release_date
    else:
        record["name"] = resolved_title
        record["first_air_date"] = release_date
    return record


@pytest.fixture
def tmdb_record() -> RecordFactory:
    return _tmdb_record


@pytest.fixture
def fake_source() -> FakeCatalogSource:
    return FakeCatalogSource()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def build_catalog_service(
    fake_source: FakeCatalogSource,
    fake_clock: FakeClock,
    recording_sleep: RecordingSleep,
) -> Callable[..., CatalogService]:
    def _build(
        *,
        page_size: int = 10,
        max_pages: int = 20,
        ttl_seconds: float = 3_600,
        delay_seconds: float = 0.25,
        blocked_keywords: Sequence[str] = (),
        require_poster: bool = False,
        provider_region: str | None = None,
        allowed_provider_ids: Sequence[int] = (),
    ) -> CatalogService:
        availability: ProviderAvailabilityFilter | None = None
        if provider_region is not None:
            availability = ProviderAvailabilityFilter(
                source=fake_source,
                region=provider_region,
                allowed_provider_ids=allowed_provider_ids,
            )
        return CatalogService(
            source=fake_source,
            page_cache=PageCacheRepository(ttl_seconds=ttl_seconds, clock=fake_clock),
            genre_catalog=GenreCatalog.tmdb_default(),
            safety_policy=build_safety_policy(
                original_languages=["ko"],
                blocked_keywords=blocked_keywords,
                require_poster=require_poster,
                availability=availability,
            ),
            throttle=FetchThrottle(delay_seconds=delay_seconds, sleep=recording_sleep),
            catalogs={"korean-movies": "movie", "korean-series": "series"},
            original_languages=["ko"],
            page_size=page_size,
            max_pages=max_pages,
        )

    return _build


@pytest.fixture
def gateway_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("CATALOG_GATEWAY_TMDB_API_KEY", "test-tmdb-key")
    monkeypatch.setenv("CATALOG_GATEWAY_LOG_DIR", str(log_dir))
    monkeypatch.setenv("CATALOG_GATEWAY_TELEMETRY_ENABLED", "0")
    monkeypatch.delenv("CATALOG_GATEWAY_PORT", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    return log_dir


@pytest.fixture
def client(
    gateway_env: Path,
    build_catalog_service: Callable[..., CatalogService],
) -> Iterator[TestClient]:
    _ = gateway_env
    reset_cached_dependencies()
    service = build_catalog_service(page_size=10)

    app = create_app()
    app.dependency_overrides[get_catalog_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
