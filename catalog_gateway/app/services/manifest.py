from __future__ import annotations

from collections.abc import Mapping

from catalog_gateway.app.models.stremio_contracts import (
    CatalogResponse,
    Manifest,
    ManifestCatalog,
    ManifestCatalogExtra,
    MetaPreview,
)
from catalog_gateway.app.services.catalog_items import CatalogItem, CatalogPage, ContentKind
from catalog_gateway.app.services.genre_catalog import GenreCatalog

MANIFEST_RESOURCES: tuple[str, ...] = ("catalog",)
MANIFEST_ID_PREFIXES: tuple[str, ...] = ("tt", "tmdb")


def build_manifest(
    *,
    addon_id: str,
    version: str,
    name: str,
    description: str,
    catalog_names: Mapping[str, tuple[ContentKind, str]],
    genre_catalog: GenreCatalog,
) -> Manifest:
    catalogs: list[ManifestCatalog] = []
    for catalog_id, (kind, display_name) in catalog_names.items():
        catalogs.append(
            ManifestCatalog(
                type=kind,
                id=catalog_id,
                name=display_name,
                extra=[
                    ManifestCatalogExtra(name="search"),
                    ManifestCatalogExtra(name="genre", options=genre_catalog.display_names(kind)),
                    ManifestCatalogExtra(name="skip"),
                ],
            )
        )

    types: list[ContentKind] = []
    for catalog in catalogs:
        if catalog.type not in types:
            types.append(catalog.type)

    return Manifest(
        id=addon_id,
        version=version,
        name=name,
        description=description,
        resources=list(MANIFEST_RESOURCES),
        types=types,
        catalogs=catalogs,
        id_prefixes=list(MANIFEST_ID_PREFIXES),
    )


def meta_preview_from_item(item: CatalogItem, *, genre_catalog: GenreCatalog) -> MetaPreview:
    genres = genre_catalog.names_for(item.kind, item.genre_ids)
    return MetaPreview(
        id=item.id,
        type=item.kind,
        name=item.title,
        poster=item.poster_url,
        background=item.background_url,
        description=item.synopsis,
        release_info=item.release_year,
        imdb_rating=f"{item.rating:.1f}" if item.rating is not None else None,
        genres=genres or None,
    )


def catalog_response_from_page(page: CatalogPage, *, genre_catalog: GenreCatalog) -> CatalogResponse:
    return CatalogResponse(
        metas=[meta_preview_from_item(item, genre_catalog=genre_catalog) for item in page.items],
        has_more=page.has_more,
    )
