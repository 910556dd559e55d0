from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, cast

import httpx

from catalog_gateway.app.services.catalog_items import ContentKind, UpstreamPage, tmdb_media_type

LOGGER = logging.getLogger("catalog_gateway.tmdb")

DEFAULT_TMDB_BASE_URL = "https://api.themoviedb.org/3"
_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


class TmdbApiError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None, retryable: bool) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class CatalogSource(Protocol):
    async def discover(
        self,
        kind: ContentKind,
        page: int,
        *,
        original_languages: Sequence[str],
        genre_id: int | None = None,
    ) -> UpstreamPage:
        ...

    async def search(self, kind: ContentKind, query: str, page: int = 1) -> UpstreamPage:
        ...

    async def watch_providers(self, kind: ContentKind, tmdb_id: int, region: str) -> list[int]:
        ...


class TmdbClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_TMDB_BASE_URL,
        language: str = "en-US",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._language = language
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=max(0.5, timeout_seconds),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def discover(
        self,
        kind: ContentKind,
        page: int,
        *,
        original_languages: Sequence[str],
        genre_id: int | None = None,
    ) -> UpstreamPage:
        params: dict[str, str] = {
            "sort_by": "popularity.desc",
            "include_adult": "false",
            "language": self._language,
            "page": str(max(1, page)),
        }
        if original_languages:
            params["with_original_language"] = "|".join(original_languages)
        if genre_id is not None:
            params["with_genres"] = str(genre_id)
        payload = await self._get_json(f"/discover/{tmdb_media_type(kind)}", params)
        return _upstream_page_from_payload(payload, requested_page=page)

    async def search(self, kind: ContentKind, query: str, page: int = 1) -> UpstreamPage:
        params = {
            "query": query,
            "include_adult": "false",
            "language": self._language,
            "page": str(max(1, page)),
        }
        payload = await self._get_json(f"/search/{tmdb_media_type(kind)}", params)
        return _upstream_page_from_payload(payload, requested_page=page)

    async def watch_providers(self, kind: ContentKind, tmdb_id: int, region: str) -> list[int]:
        payload = await self._get_json(
            f"/{tmdb_media_type(kind)}/{tmdb_id}/watch/providers",
            {},
        )
        results = payload.get("results")
        if not isinstance(results, dict):
            return []
        region_offers = cast(dict[str, Any], results).get(region.upper())
        if not isinstance(region_offers, dict):
            return []
        flatrate = cast(dict[str, Any], region_offers).get("flatrate")
        if not isinstance(flatrate, list):
            return []

        provider_ids: list[int] = []
        for offer in cast(list[object], flatrate):
            if not isinstance(offer, dict):
                continue
            provider_id = cast(dict[str, Any], offer).get("provider_id")
            if isinstance(provider_id, int) and not isinstance(provider_id, bool):
                provider_ids.append(provider_id)
        return provider_ids

    async def _get_json(self, path: str, params: Mapping[str, str]) -> dict[str, Any]:
        query = {"api_key": self._api_key, **params}
        try:
            response = await self._http.get(path, params=query)
        except httpx.HTTPError as exc:
            raise TmdbApiError(
                f"TMDB request failed path={path} error={type(exc).__name__}",
                status_code=None,
                retryable=True,
            ) from exc

        if response.status_code >= 400:
            raise TmdbApiError(
                f"TMDB request returned status={response.status_code} path={path}",
                status_code=response.status_code,
                retryable=response.status_code in _RETRYABLE_STATUS_CODES,
            )

        try:
            parsed = response.json()
        except ValueError as exc:
            raise TmdbApiError(
                f"TMDB response was not valid JSON path={path}",
                status_code=response.status_code,
                retryable=False,
            ) from exc
        if not isinstance(parsed, dict):
            raise TmdbApiError(
                f"TMDB response was not a JSON object path={path}",
                status_code=response.status_code,
                retryable=False,
            )

        LOGGER.debug("tmdb request ok path=%s status=%s", path, response.status_code)
        return _normalize_object_dict(cast(dict[object, object], parsed))


def _upstream_page_from_payload(payload: dict[str, Any], *, requested_page: int) -> UpstreamPage:
    raw_results = payload.get("results")
    results: list[dict[str, Any]] = []
    if isinstance(raw_results, list):
        for raw in cast(list[object], raw_results):
            if isinstance(raw, dict):
                results.append(_normalize_object_dict(cast(dict[object, object], raw)))

    page = _as_positive_int(payload.get("page")) or max(1, requested_page)
    total_pages = _as_positive_int(payload.get("total_pages")) or 0
    total_results = _as_positive_int(payload.get("total_results")) or 0
    return UpstreamPage(
        page=page,
        total_pages=total_pages,
        total_results=total_results,
        results=results,
    )


def _as_positive_int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if value < 0:
        return None
    return value


def _normalize_object_dict(raw: dict[object, object]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(key, str):
            normalized[key] = value
    return normalized
