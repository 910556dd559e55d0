from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ContentType = Literal["movie", "series"]


def _default_metas() -> list[MetaPreview]:
    return []


def _default_extras() -> list[ManifestCatalogExtra]:
    return []


class MetaPreview(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    type: ContentType
    name: str
    poster: str | None = None
    background: str | None = None
    description: str | None = None
    release_info: str | None = Field(default=None, alias="releaseInfo")
    imdb_rating: str | None = Field(default=None, alias="imdbRating")
    genres: list[str] | None = None


class CatalogResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    metas: list[MetaPreview] = Field(default_factory=_default_metas)
    has_more: bool = Field(default=False, alias="hasMore")


class ManifestCatalogExtra(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: Literal["search", "genre", "skip"]
    is_required: bool = Field(default=False, alias="isRequired")
    options: list[str] | None = None


class ManifestCatalog(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: ContentType
    id: str
    name: str
    extra: list[ManifestCatalogExtra] = Field(default_factory=_default_extras)


class Manifest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    version: str
    name: str
    description: str
    resources: list[str]
    types: list[ContentType]
    catalogs: list[ManifestCatalog]
    id_prefixes: list[str] = Field(alias="idPrefixes")
