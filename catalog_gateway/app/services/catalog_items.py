from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Literal

ContentKind = Literal["movie", "series"]
ID_NAMESPACE = "tmdb"

_POSTER_SIZE = "w500"
_BACKGROUND_SIZE = "w780"


@dataclass(frozen=True)
class CatalogItem:
    id: str
    tmdb_id: int
    kind: ContentKind
    title: str
    poster_url: str | None
    background_url: str | None
    synopsis: str | None
    release_year: str | None
    rating: float | None
    genre_ids: tuple[int, ...]
    original_language: str | None
    adult: bool


@dataclass(frozen=True)
class FilterCriteria:
    genre: str | None = None
    search_term: str | None = None


@dataclass(frozen=True)
class CatalogPage:
    items: list[CatalogItem]
    has_more: bool

    @classmethod
    def empty(cls) -> CatalogPage:
        return cls(items=[], has_more=False)


@dataclass(frozen=True)
class UpstreamPage:
    page: int
    total_pages: int
    total_results: int
    results: list[dict[str, Any]]


def tmdb_media_type(kind: ContentKind) -> Literal["movie", "tv"]:
    return "movie" if kind == "movie" else "tv"


def namespaced_id(tmdb_id: int) -> str:
    return f"{ID_NAMESPACE}:{tmdb_id}"


def catalog_item_from_record(
    record: dict[str, Any],
    *,
    kind: ContentKind,
    image_base_url: str,
) -> CatalogItem | None:
    """
    Map one TMDB list record to a catalog item.

    Missing optional fields stay absent. Records without a usable id are
    skipped because they cannot be addressed by the host app.
    """
    tmdb_id = _as_int(record.get("id"))
    if tmdb_id is None:
        return None

    title = (
        _as_str(record.get("title"))
        or _as_str(record.get("name"))
        or _as_str(record.get("original_title"))
        or _as_str(record.get("original_name"))
        or ""
    )
    release_date = _as_str(record.get("release_date")) or _as_str(record.get("first_air_date"))
    rating = _as_float(record.get("vote_average"))

    return CatalogItem(
        id=namespaced_id(tmdb_id),
        tmdb_id=tmdb_id,
        kind=kind,
        title=title,
        poster_url=_image_url(image_base_url, _POSTER_SIZE, record.get("poster_path")),
        background_url=_image_url(image_base_url, _BACKGROUND_SIZE, record.get("backdrop_path")),
        synopsis=_as_str(record.get("overview")),
        release_year=_parse_year(release_date),
        rating=rating if rating else None,
        genre_ids=_as_int_tuple(record.get("genre_ids")),
        original_language=_normalize_language(record.get("original_language")),
        adult=record.get("adult") is True,
    )


def _image_url(base_url: str, size: str, path: object) -> str | None:
    normalized = _as_str(path)
    if normalized is None:
        return None
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return f"{base_url.rstrip('/')}/{size}{normalized}"


def _parse_year(value: str | None) -> str | None:
    if value is None:
        return None
    match = re.match(r"\d{4}", value)
    if match is None:
        return None
    return match.group(0)


def _normalize_language(value: object) -> str | None:
    normalized = _as_str(value)
    if normalized is None:
        return None
    return normalized.lower()


def _as_int_tuple(value: object) -> tuple[int, ...]:
    if not isinstance(value, list):
        return ()
    ids: list[int] = []
    for raw in value:
        parsed = _as_int(raw)
        if parsed is not None:
            ids.append(parsed)
    return tuple(ids)


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return int(stripped)
        except ValueError:
            return None
    return None


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            value = float(stripped)
        except ValueError:
            return None
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


def _as_str(value: object) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None
