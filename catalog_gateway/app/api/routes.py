from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Annotated
from urllib.parse import parse_qsl, quote

from fastapi import APIRouter, Depends, Request
from structlog.contextvars import bind_contextvars, reset_contextvars

from catalog_gateway.app.config import AppSettings
from catalog_gateway.app.dependencies import get_catalog_service, get_genre_catalog, get_settings
from catalog_gateway.app.models.stremio_contracts import CatalogResponse, Manifest
from catalog_gateway.app.services.catalog_service import CatalogService, catalog_request_from_extra
from catalog_gateway.app.services.genre_catalog import GenreCatalog
from catalog_gateway.app.services.manifest import build_manifest, catalog_response_from_page

LOGGER = logging.getLogger("catalog_gateway.api")

router = APIRouter()

CATALOG_EXTRA_KEYS: frozenset[str] = frozenset({"search", "genre", "skip"})
_CATALOG_PATH_MARKER = "/catalog/"
_EXTRA_SUFFIX = ".json"


def parse_extra_segment(segment: str) -> dict[str, str]:
    """
    Parse the host's extra path segment, e.g. `search=Squid%20Game&skip=100`.
    """
    return _select_extra(parse_qsl(segment, keep_blank_values=False))


def raw_extra_segment(request: Request, decoded_extra: str) -> str:
    """
    Return the extra segment as the client sent it, still percent-encoded.

    The router only sees the decoded path, where an encoded `&` or `/` inside
    a search term is indistinguishable from a separator.
    """
    raw_path = request.scope.get("raw_path")
    if isinstance(raw_path, bytes):
        path = raw_path.decode("latin-1")
        marker = path.find(_CATALOG_PATH_MARKER)
        if marker >= 0:
            parts = path[marker + len(_CATALOG_PATH_MARKER) :].split("/", 2)
            if len(parts) == 3 and parts[2].endswith(_EXTRA_SUFFIX):
                return parts[2][: -len(_EXTRA_SUFFIX)]
    return quote(decoded_extra, safe="=&")


def _select_extra(pairs: Iterable[tuple[str, str]]) -> dict[str, str]:
    extra: dict[str, str] = {}
    for key, value in pairs:
        normalized_key = key.strip().lower()
        if normalized_key in CATALOG_EXTRA_KEYS and normalized_key not in extra:
            extra[normalized_key] = value
    return extra


async def _serve_catalog(
    *,
    content_type: str,
    catalog_id: str,
    extra: dict[str, str],
    service: CatalogService,
) -> CatalogResponse:
    catalog_request = catalog_request_from_extra(
        content_kind=content_type,
        catalog_id=catalog_id,
        extra=extra,
    )
    context_tokens = bind_contextvars(
        catalog_id=catalog_request.catalog_id,
        catalog_type=catalog_request.content_kind,
    )
    try:
        page = await service.handle_catalog_request(catalog_request)
        return catalog_response_from_page(page, genre_catalog=service.genre_catalog)
    except Exception:
        LOGGER.warning(
            "catalog handler failed; returning empty response catalog_id=%s type=%s",
            catalog_request.catalog_id,
            catalog_request.content_kind,
            exc_info=True,
        )
        return CatalogResponse()
    finally:
        reset_contextvars(**context_tokens)


@router.get(
    "/manifest.json",
    response_model=Manifest,
    response_model_exclude_none=True,
    tags=["addon"],
    operation_id="get_manifest",
)
def get_manifest(
    settings: Annotated[AppSettings, Depends(get_settings)],
    genre_catalog: Annotated[GenreCatalog, Depends(get_genre_catalog)],
) -> Manifest:
    return build_manifest(
        addon_id=settings.addon_id,
        version=settings.addon_version,
        name=settings.addon_name,
        description=settings.addon_description,
        catalog_names={
            settings.movie_catalog_id: ("movie", settings.movie_catalog_name),
            settings.series_catalog_id: ("series", settings.series_catalog_name),
        },
        genre_catalog=genre_catalog,
    )


@router.get(
    "/catalog/{content_type}/{catalog_id}.json",
    response_model=CatalogResponse,
    response_model_exclude_none=True,
    tags=["addon"],
    operation_id="get_catalog",
)
async def get_catalog(
    content_type: str,
    catalog_id: str,
    request: Request,
    service: Annotated[CatalogService, Depends(get_catalog_service)],
) -> CatalogResponse:
    return await _serve_catalog(
        content_type=content_type,
        catalog_id=catalog_id,
        extra=_select_extra(request.query_params.items()),
        service=service,
    )


@router.get(
    "/catalog/{content_type}/{catalog_id}/{extra:path}.json",
    response_model=CatalogResponse,
    response_model_exclude_none=True,
    tags=["addon"],
    operation_id="get_catalog_with_extra",
)
async def get_catalog_with_extra(
    content_type: str,
    catalog_id: str,
    extra: str,
    request: Request,
    service: Annotated[CatalogService, Depends(get_catalog_service)],
) -> CatalogResponse:
    return await _serve_catalog(
        content_type=content_type,
        catalog_id=catalog_id,
        extra=parse_extra_segment(raw_extra_segment(request, extra)),
        service=service,
    )
