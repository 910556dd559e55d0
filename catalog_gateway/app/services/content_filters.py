from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from catalog_gateway.app.services.catalog_items import CatalogItem
from catalog_gateway.app.services.fetch_throttle import FetchThrottle, run_throttled
from catalog_gateway.app.services.tmdb_client import CatalogSource, TmdbApiError

LOGGER = logging.getLogger("catalog_gateway.filters")


class ItemFilter(Protocol):
    name: str

    def __call__(self, item: CatalogItem) -> bool:
        ...


class OriginalLanguageFilter:
    name = "original_language"

    def __init__(self, languages: Iterable[str]) -> None:
        self._languages = frozenset(
            language.strip().lower() for language in languages if language.strip()
        )

    def __call__(self, item: CatalogItem) -> bool:
        if not self._languages:
            return True
        return item.original_language in self._languages


class AdultContentFilter:
    name = "adult"

    def __call__(self, item: CatalogItem) -> bool:
        return not item.adult


class KeywordBlocklistFilter:
    name = "keyword_blocklist"

    def __init__(self, keywords: Iterable[str]) -> None:
        normalized = sorted({keyword.strip().lower() for keyword in keywords if keyword.strip()})
        self._pattern: re.Pattern[str] | None = None
        if normalized:
            alternatives = "|".join(re.escape(keyword) for keyword in normalized)
            self._pattern = re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)

    def __call__(self, item: CatalogItem) -> bool:
        if self._pattern is None:
            return True
        for text in (item.title, item.synopsis):
            if text and self._pattern.search(text):
                return False
        return True


class PosterRequiredFilter:
    name = "poster_required"

    def __call__(self, item: CatalogItem) -> bool:
        return item.poster_url is not None


class ProviderAvailabilityFilter:
    """
    Keeps items currently offered on a flatrate streaming provider in one region.

    An empty allowlist accepts any flatrate provider. Lookup failures keep the
    item so a flaky secondary endpoint never empties the catalog.
    """

    name = "provider_availability"

    def __init__(
        self,
        *,
        source: CatalogSource,
        region: str,
        allowed_provider_ids: Iterable[int] = (),
    ) -> None:
        self._source = source
        self._region = region.strip().upper()
        self._allowed_provider_ids = frozenset(allowed_provider_ids)

    async def is_available(self, item: CatalogItem) -> bool:
        try:
            provider_ids = await self._source.watch_providers(
                item.kind,
                item.tmdb_id,
                self._region,
            )
        except TmdbApiError:
            LOGGER.warning(
                "watch provider lookup failed; keeping item item_id=%s region=%s",
                item.id,
                self._region,
                exc_info=True,
            )
            return True

        if not provider_ids:
            return False
        if not self._allowed_provider_ids:
            return True
        return any(provider_id in self._allowed_provider_ids for provider_id in provider_ids)


@dataclass(frozen=True)
class SafetyPolicy:
    filters: tuple[ItemFilter, ...]
    availability: ProviderAvailabilityFilter | None = None

    def accepts(self, item: CatalogItem) -> bool:
        return all(item_filter(item) for item_filter in self.filters)

    def filter_names(self) -> list[str]:
        names = [item_filter.name for item_filter in self.filters]
        if self.availability is not None:
            names.append(self.availability.name)
        return names

    async def apply(
        self,
        items: Sequence[CatalogItem],
        *,
        throttle: FetchThrottle,
    ) -> list[CatalogItem]:
        accepted = [item for item in items if self.accepts(item)]
        availability = self.availability
        if availability is None or not accepted:
            return accepted

        # Callers reach here straight after an upstream list call.
        await throttle.pause()
        verdicts = await run_throttled(
            (lambda item=item: availability.is_available(item) for item in accepted),
            throttle=throttle,
        )
        return [item for item, available in zip(accepted, verdicts, strict=True) if available]


def build_safety_policy(
    *,
    original_languages: Sequence[str],
    blocked_keywords: Sequence[str] = (),
    require_poster: bool = False,
    availability: ProviderAvailabilityFilter | None = None,
) -> SafetyPolicy:
    filters: list[ItemFilter] = [
        OriginalLanguageFilter(original_languages),
        AdultContentFilter(),
    ]
    if blocked_keywords:
        filters.append(KeywordBlocklistFilter(blocked_keywords))
    if require_poster:
        filters.append(PosterRequiredFilter())
    return SafetyPolicy(filters=tuple(filters), availability=availability)
