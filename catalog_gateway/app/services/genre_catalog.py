from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from catalog_gateway.app.services.catalog_items import ContentKind


@dataclass(frozen=True)
class GenreEntry:
    id: str
    display_name: str
    upstream_id: int


def _normalize_key(value: str) -> str:
    return " ".join(value.strip().lower().split())


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def _entries(rows: Iterable[tuple[str, int]]) -> tuple[GenreEntry, ...]:
    return tuple(
        GenreEntry(id=_slugify(display_name), display_name=display_name, upstream_id=upstream_id)
        for display_name, upstream_id in rows
    )


TMDB_MOVIE_GENRES: tuple[GenreEntry, ...] = _entries(
    (
        ("Action", 28),
        ("Adventure", 12),
        ("Animation", 16),
        ("Comedy", 35),
        ("Crime", 80),
        ("Documentary", 99),
        ("Drama", 18),
        ("Family", 10751),
        ("Fantasy", 14),
        ("History", 36),
        ("Horror", 27),
        ("Music", 10402),
        ("Mystery", 9648),
        ("Romance", 10749),
        ("Science Fiction", 878),
        ("TV Movie", 10770),
        ("Thriller", 53),
        ("War", 10752),
        ("Western", 37),
    )
)

TMDB_TV_GENRES: tuple[GenreEntry, ...] = _entries(
    (
        ("Action & Adventure", 10759),
        ("Animation", 16),
        ("Comedy", 35),
        ("Crime", 80),
        ("Documentary", 99),
        ("Drama", 18),
        ("Family", 10751),
        ("Kids", 10762),
        ("Mystery", 9648),
        ("News", 10763),
        ("Reality", 10764),
        ("Sci-Fi & Fantasy", 10765),
        ("Soap", 10766),
        ("Talk", 10767),
        ("War & Politics", 10768),
        ("Western", 37),
    )
)


class GenreCatalog:
    """Genre names per content kind, mapped to upstream genre ids."""

    def __init__(self, entries_by_kind: Mapping[ContentKind, Sequence[GenreEntry]]) -> None:
        self._entries: dict[ContentKind, tuple[GenreEntry, ...]] = {
            kind: tuple(entries) for kind, entries in entries_by_kind.items()
        }
        self._by_key: dict[ContentKind, dict[str, GenreEntry]] = {}
        self._by_upstream_id: dict[ContentKind, dict[int, GenreEntry]] = {}
        for kind, entries in self._entries.items():
            by_key: dict[str, GenreEntry] = {}
            by_upstream_id: dict[int, GenreEntry] = {}
            for entry in entries:
                by_key.setdefault(_normalize_key(entry.display_name), entry)
                by_key.setdefault(_normalize_key(entry.id), entry)
                by_upstream_id.setdefault(entry.upstream_id, entry)
            self._by_key[kind] = by_key
            self._by_upstream_id[kind] = by_upstream_id

    @classmethod
    def tmdb_default(cls) -> GenreCatalog:
        return cls({"movie": TMDB_MOVIE_GENRES, "series": TMDB_TV_GENRES})

    def entries(self, kind: ContentKind) -> tuple[GenreEntry, ...]:
        return self._entries.get(kind, ())

    def display_names(self, kind: ContentKind) -> list[str]:
        return [entry.display_name for entry in self.entries(kind)]

    def resolve(self, kind: ContentKind, name: str | None) -> int | None:
        if name is None:
            return None
        key = _normalize_key(name)
        if not key:
            return None
        entry = self._by_key.get(kind, {}).get(key)
        if entry is None:
            return None
        return entry.upstream_id

    def names_for(self, kind: ContentKind, upstream_ids: Iterable[int]) -> list[str]:
        lookup = self._by_upstream_id.get(kind, {})
        names: list[str] = []
        for upstream_id in upstream_ids:
            entry = lookup.get(upstream_id)
            if entry is not None:
                names.append(entry.display_name)
        return names

