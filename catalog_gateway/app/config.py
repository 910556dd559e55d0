from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATA_DIR = ".catalog-gateway"
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "require_poster",
    "watch_provider_filter_enabled",
    "telemetry_enabled",
)
_CSV_TEXT_FIELDS: tuple[str, ...] = ("original_languages", "blocked_keywords")


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _split_csv(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raw_items: list[Any] = value.split(",")
    elif isinstance(value, list | tuple):
        raw_items = list(value)
    else:
        raise ValueError("expected a comma-separated string or a list")
    return [str(item).strip() for item in raw_items if str(item).strip()]


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Runtime configuration for the catalog gateway.

    Every option is read from `CATALOG_GATEWAY_*` environment variables (or a
    `.env` file). The listening port also honours the conventional `PORT`.
    """

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Server.
    host: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to.",
    )
    port: int = Field(
        default=7000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("CATALOG_GATEWAY_PORT", "PORT"),
        description="HTTP port. Falls back to `PORT` when the prefixed variable is unset.",
    )

    # Upstream TMDB source.
    tmdb_api_key: str | None = Field(
        default=None,
        description="TMDB v3 API key. Required at startup.",
    )
    tmdb_base_url: str = Field(
        default="https://api.themoviedb.org/3",
        description="TMDB REST API base URL.",
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p",
        description="TMDB image CDN base URL used for poster and background links.",
    )
    tmdb_language: str = Field(
        default="en-US",
        description="Language used for localized titles and overviews.",
    )
    tmdb_http_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for each TMDB request.",
    )
    original_languages: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["ko"],
        description="Comma-separated original-language codes kept in every catalog.",
    )

    # Page cache.
    page_cache_ttl_seconds: int = Field(
        default=3_600,
        ge=0,
        description="Age after which a content kind's cached discovery pages are dropped.",
    )
    catalog_page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Items returned per catalog response (the host's skip step).",
    )
    max_upstream_pages: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Hard ceiling on discovery pages fetched per cache epoch.",
    )
    upstream_fetch_delay_seconds: float = Field(
        default=0.25,
        ge=0,
        description="Delay inserted between consecutive upstream calls.",
    )

    # Optional content filters.
    require_poster: bool = Field(
        default=False,
        description="Drop items without a poster image.",
    )
    blocked_keywords: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated keywords; items mentioning one in title or overview are dropped.",
    )
    watch_provider_filter_enabled: bool = Field(
        default=False,
        description="Keep only items offered by a flatrate streaming provider.",
    )
    watch_provider_region: str = Field(
        default="US",
        description="Region code used for watch-provider availability lookups.",
    )
    watch_provider_ids: Annotated[list[int], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated TMDB provider ids allowed; empty accepts any provider.",
    )

    # Manifest.
    addon_id: str = Field(default="com.korean.catalog", description="Add-on manifest id.")
    addon_version: str = Field(default="1.0.0", description="Add-on manifest version.")
    addon_name: str = Field(default="Korean Catalog", description="Add-on display name.")
    addon_description: str = Field(
        default="Korean Movies and Series Catalog",
        description="Add-on description shown by the host app.",
    )
    movie_catalog_id: str = Field(default="korean-movies", description="Movie catalog id.")
    movie_catalog_name: str = Field(default="Korean Movies", description="Movie catalog name.")
    series_catalog_id: str = Field(default="korean-series", description="Series catalog id.")
    series_catalog_name: str = Field(default="Korean Series", description="Series catalog name.")

    # Logging.
    log_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR) / "logs",
        description="Directory for JSON log files.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="Telemetry sink backend. `log` emits structured events; `none` disables output.",
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("CATALOG_GATEWAY_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("CATALOG_GATEWAY_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("tmdb_base_url", "tmdb_image_base_url", mode="before")
    @classmethod
    def _normalize_base_urls(cls, value: Any, info: ValidationInfo) -> str:
        env_name = f"CATALOG_GATEWAY_{str(info.field_name).upper()}"
        if not isinstance(value, str):
            raise ValueError(f"{env_name} must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError(f"{env_name} must not be empty.")
        return normalized

    @field_validator(*_CSV_TEXT_FIELDS, mode="before")
    @classmethod
    def _normalize_csv_text(cls, value: Any, info: ValidationInfo) -> list[str]:
        items = _split_csv(value)
        if info.field_name == "original_languages":
            return [item.lower() for item in items]
        return items

    @field_validator("watch_provider_ids", mode="before")
    @classmethod
    def _normalize_provider_ids(cls, value: Any) -> list[int]:
        provider_ids: list[int] = []
        for item in _split_csv(value):
            try:
                provider_ids.append(int(item))
            except ValueError as exc:
                raise ValueError(
                    "CATALOG_GATEWAY_WATCH_PROVIDER_IDS must contain integer provider ids."
                ) from exc
        return provider_ids

    @field_validator("watch_provider_region", mode="before")
    @classmethod
    def _normalize_region(cls, value: Any) -> str:
        if not isinstance(value, str) or len(value.strip()) != 2:
            raise ValueError("CATALOG_GATEWAY_WATCH_PROVIDER_REGION must be a 2-letter code.")
        return value.strip().upper()

    @field_validator("log_dir", mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _validate_runtime_configuration(settings: AppSettings) -> None:
    errors: list[str] = []

    if settings.tmdb_api_key is None:
        errors.append("CATALOG_GATEWAY_TMDB_API_KEY is required to query the upstream catalog.")
    if not settings.original_languages:
        errors.append("CATALOG_GATEWAY_ORIGINAL_LANGUAGES must name at least one language.")
    if settings.movie_catalog_id == settings.series_catalog_id:
        errors.append("Movie and series catalog ids must differ.")

    if errors:
        bullets = "\n".join(f"- {message}" for message in errors)
        raise ValueError(f"Invalid catalog gateway configuration:\n{bullets}")


def load_settings(*, validate_runtime_config: bool = True) -> AppSettings:
    settings = AppSettings()
    settings = settings.model_copy(update={"log_dir": _resolve_path(settings.log_dir)})

    if validate_runtime_config:
        _validate_runtime_configuration(settings)

    return settings
