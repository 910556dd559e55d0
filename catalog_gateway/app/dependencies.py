from __future__ import annotations

import logging
from functools import lru_cache
from typing import cast

from fastapi import Request

from catalog_gateway.app.config import AppSettings, load_settings
from catalog_gateway.app.repositories.page_cache_repository import PageCacheRepository
from catalog_gateway.app.services.catalog_items import ContentKind
from catalog_gateway.app.services.catalog_service import CatalogService
from catalog_gateway.app.services.content_filters import (
    ProviderAvailabilityFilter,
    build_safety_policy,
)
from catalog_gateway.app.services.fetch_throttle import FetchThrottle
from catalog_gateway.app.services.genre_catalog import GenreCatalog
from catalog_gateway.app.services.tmdb_client import CatalogSource, TmdbClient
from catalog_gateway.app.telemetry import TelemetryClient, build_telemetry_client

LOGGER = logging.getLogger("catalog_gateway.app")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_genre_catalog() -> GenreCatalog:
    return GenreCatalog.tmdb_default()


def build_tmdb_client(settings: AppSettings) -> TmdbClient:
    return TmdbClient(
        api_key=settings.tmdb_api_key or "",
        base_url=settings.tmdb_base_url,
        language=settings.tmdb_language,
        timeout_seconds=settings.tmdb_http_timeout_seconds,
    )


def catalog_kinds(settings: AppSettings) -> dict[str, ContentKind]:
    return {
        settings.movie_catalog_id: "movie",
        settings.series_catalog_id: "series",
    }


def build_catalog_service(
    settings: AppSettings,
    *,
    source: CatalogSource,
    telemetry: TelemetryClient,
    genre_catalog: GenreCatalog,
) -> CatalogService:
    availability: ProviderAvailabilityFilter | None = None
    if settings.watch_provider_filter_enabled:
        availability = ProviderAvailabilityFilter(
            source=source,
            region=settings.watch_provider_region,
            allowed_provider_ids=settings.watch_provider_ids,
        )
    policy = build_safety_policy(
        original_languages=settings.original_languages,
        blocked_keywords=settings.blocked_keywords,
        require_poster=settings.require_poster,
        availability=availability,
    )
    throttle = FetchThrottle(delay_seconds=settings.upstream_fetch_delay_seconds)

    LOGGER.info(
        "catalog service configured filters=%s page_size=%s max_pages=%s fetch_delay=%s",
        ",".join(policy.filter_names()),
        settings.catalog_page_size,
        settings.max_upstream_pages,
        throttle.delay_seconds,
    )
    return CatalogService(
        source=source,
        page_cache=PageCacheRepository(ttl_seconds=settings.page_cache_ttl_seconds),
        genre_catalog=genre_catalog,
        safety_policy=policy,
        throttle=throttle,
        catalogs=catalog_kinds(settings),
        original_languages=settings.original_languages,
        image_base_url=settings.tmdb_image_base_url,
        page_size=settings.catalog_page_size,
        max_pages=settings.max_upstream_pages,
        telemetry=telemetry,
    )


def get_catalog_service(request: Request) -> CatalogService:
    return cast(CatalogService, request.app.state.catalog_service)


def reset_cached_dependencies() -> None:
    get_genre_catalog.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
