from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_URL_FIELDS: tuple[str, ...] = (
    "innertube_base_url",
    "site_base_url",
    "tv_config_url",
    "player_js_url",
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)
_POSITIVE_NUMBER_FIELDS: tuple[str, ...] = (
    "request_timeout_seconds",
    "request_max_attempts",
    "continuation_max_pages",
)


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


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class ExtractorSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from `YTEXTRACT_*` environment variables (or `.env`) and is
    frozen once loaded; services receive the values they need explicitly.
    """

    model_config = SettingsConfigDict(
        env_prefix="YTEXTRACT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Upstream endpoints.
    innertube_base_url: str = Field(
        default="https://youtubei.googleapis.com/youtubei/v1",
        description="Base URL of the private JSON API (player/browse/next endpoints).",
    )
    site_base_url: str = Field(
        default="https://www.youtube.com",
        description="Site origin used to build player asset URLs.",
    )
    tv_config_url: str = Field(
        default="https://www.youtube.com/tv_config?action_get_config=true",
        description="Bootstrap document carrying the API key and the player script location.",
    )
    innertube_api_key: str | None = Field(
        default=None,
        description="API key sent as `key`. Bootstrapped from tv_config when not set.",
    )
    player_js_url: str | None = Field(
        default=None,
        description="Absolute player asset URL. Derived from tv_config when not set.",
    )

    # Request policy.
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to every single HTTP attempt.",
    )
    request_max_attempts: int = Field(
        default=5,
        description="Attempts per logical call before a transport error is surfaced.",
    )
    continuation_max_pages: int | None = Field(
        default=None,
        description="Optional ceiling on continuation pages fetched per listing.",
    )

    # Client identity and default headers.
    hl: str = Field(default="en", description="Interface language sent in client contexts.")
    gl: str = Field(default="US", description="Content region sent in client contexts.")
    web_client_version: str = Field(
        default="2.20240726.00.00",
        description="clientVersion of the primary WEB identity.",
    )
    embed_client_version: str = Field(
        default="1.20240723.01.00",
        description="clientVersion of the embed-screen identity used as fallback.",
    )
    accept_language: str = Field(
        default="en-US,en;q=0.9",
        description="Accept-Language header sent with every request.",
    )
    consent_cookie: str = Field(
        default="SOCS=CAI",
        description="Cookie header that pre-answers the consent interstitial.",
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
        ),
        description="User-Agent header sent with every request.",
    )

    # Logging and telemetry.
    log_dir: Path | None = Field(
        default=None,
        description="Directory for the JSON log file. Console-only logging when unset.",
    )
    log_level: str = Field(default="INFO", description="Console log level.")
    telemetry_enabled: bool = Field(
        default=False,
        description="Emit structured telemetry events for calls and page fetches.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="none",
        description="Telemetry destination. `log` writes through the structured logger.",
    )

    @field_validator(*_URL_FIELDS, mode="before")
    @classmethod
    def _normalize_urls(cls, value: Any) -> Any:
        normalized = _normalize_optional_text(value)
        if normalized is None:
            return None
        return normalized.rstrip("/")

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized:
                return normalized
        return "none"

    @field_validator("innertube_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)

    @field_validator(*_POSITIVE_NUMBER_FIELDS)
    @classmethod
    def _require_positive(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("continuation_max_pages", mode="before")
    @classmethod
    def _normalize_page_ceiling(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_dir", mode="before")
    @classmethod
    def _normalize_log_dir(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return Path(value).expanduser().resolve()


def load_settings(**overrides: Any) -> ExtractorSettings:
    return ExtractorSettings(**overrides)
