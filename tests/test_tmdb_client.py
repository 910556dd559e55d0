from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from catalog_gateway.app.services.catalog_items import UpstreamPage
from catalog_gateway.app.services.tmdb_client import TmdbApiError, TmdbClient


def _client(handler: Any) -> TmdbClient:
    return TmdbClient(
        api_key="test-key",
        base_url="https://api.example.test/3/",
        language="en-US",
        transport=httpx.MockTransport(handler),
    )


def _run(client: TmdbClient, call: Any) -> Any:
    async def scenario() -> Any:
        try:
            return await call(client)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def test_discover_sends_language_and_paging_params() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "page": 2,
                "total_pages": 7,
                "total_results": 140,
                "results": [{"id": 496243, "title": "Parasite"}, "not-a-record"],
            },
        )

    page = _run(
        _client(handler),
        lambda client: client.discover("movie", 2, original_languages=["ko"], genre_id=18),
    )

    assert page == UpstreamPage(
        page=2,
        total_pages=7,
        total_results=140,
        results=[{"id": 496243, "title": "Parasite"}],
    )
    request = seen[0]
    assert request.url.path == "/3/discover/movie"
    assert request.url.params["api_key"] == "test-key"
    assert request.url.params["with_original_language"] == "ko"
    assert request.url.params["sort_by"] == "popularity.desc"
    assert request.url.params["include_adult"] == "false"
    assert request.url.params["page"] == "2"
    assert request.url.params["with_genres"] == "18"


def test_discover_series_uses_tv_endpoint_and_joins_languages() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"page": 1, "total_pages": 1, "results": []})

    page = _run(
        _client(handler),
        lambda client: client.discover("series", 1, original_languages=["ko", "ja"]),
    )

    assert page.results == []
    assert page.total_results == 0
    assert seen[0].url.path == "/3/discover/tv"
    assert seen[0].url.params["with_original_language"] == "ko|ja"
    assert "with_genres" not in seen[0].url.params


def test_search_uses_search_endpoint_for_kind() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"page": 1, "total_pages": 1, "total_results": 1, "results": [{"id": 93405}]},
        )

    page = _run(_client(handler), lambda client: client.search("series", "Squid Game"))

    assert page.results == [{"id": 93405}]
    assert seen[0].url.path == "/3/search/tv"
    assert seen[0].url.params["query"] == "Squid Game"


def test_watch_providers_reads_flatrate_offers_for_region() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": 93405,
                "results": {
                    "KR": {
                        "flatrate": [
                            {"provider_id": 8, "provider_name": "Netflix"},
                            {"provider_name": "missing id"},
                        ],
                        "rent": [{"provider_id": 3}],
                    },
                    "US": {"flatrate": [{"provider_id": 9}]},
                },
            },
        )

    provider_ids = _run(
        _client(handler),
        lambda client: client.watch_providers("series", 93405, "kr"),
    )

    assert provider_ids == [8]
    assert seen[0].url.path == "/3/tv/93405/watch/providers"


def test_watch_providers_returns_empty_list_for_unknown_region() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(200, json={"id": 1, "results": {}})

    provider_ids = _run(_client(handler), lambda client: client.watch_providers("movie", 1, "US"))

    assert provider_ids == []


@pytest.mark.parametrize(
    ("status_code", "retryable"),
    [(401, False), (404, False), (429, True), (503, True)],
)
def test_error_status_maps_to_tmdb_api_error(status_code: int, retryable: bool) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(status_code, json={"status_message": "nope"})

    with pytest.raises(TmdbApiError) as exc_info:
        _run(_client(handler), lambda client: client.discover("movie", 1, original_languages=["ko"]))

    assert exc_info.value.status_code == status_code
    assert exc_info.value.retryable is retryable


def test_transport_failure_is_retryable_without_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TmdbApiError) as exc_info:
        _run(_client(handler), lambda client: client.search("movie", "Oldboy"))

    assert exc_info.value.status_code is None
    assert exc_info.value.retryable is True


def test_non_object_json_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(200, json=[1, 2, 3])

    with pytest.raises(TmdbApiError) as exc_info:
        _run(_client(handler), lambda client: client.search("movie", "Oldboy"))

    assert exc_info.value.retryable is False


def test_invalid_json_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        return httpx.Response(200, content=b"<html>maintenance</html>")

    with pytest.raises(TmdbApiError) as exc_info:
        _run(_client(handler), lambda client: client.search("movie", "Oldboy"))

    assert exc_info.value.status_code == 200
    assert exc_info.value.retryable is False
