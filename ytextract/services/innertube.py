from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from ytextract import telemetry as events
from ytextract.config import ExtractorSettings
from ytextract.errors import ClassifiedDomainError, SchemaError, TransportError
from ytextract.ids import parse_channel_id, parse_playlist_id, parse_video_id
from ytextract.models.innertube_contracts import (
    BrowseResponse,
    ClientContext,
    ContinuationResponse,
    InnertubeResponse,
    NextResponse,
    PlayerResponse,
    TvConfigEntry,
)
from ytextract.services.error_classifier import ClassifiedError, classify
from ytextract.services.player import (
    ConvergingCell,
    PlayerAsset,
    build_player_asset,
    player_asset_url_from_js_url,
)
from ytextract.telemetry import TelemetryClient


class Endpoint(str, Enum):
    PLAYER = "player"
    BROWSE = "browse"
    NEXT = "next"


class ChannelPage(str, Enum):
    ABOUT = "about"
    PLAYLISTS = "playlists"
    CHANNELS = "channels"
    COMMUNITY = "community"


@dataclass(frozen=True)
class ClientContexts:
    primary: ClientContext
    fallback: ClientContext | None = None


@dataclass(frozen=True)
class InnertubeBootstrap:
    api_key: str
    player_asset_url: str


ResponseT = TypeVar("ResponseT", bound=InnertubeResponse)

LOGGER = logging.getLogger("ytextract.innertube")

TV_CONFIG_ENTRY_KEY = "WEB_PLAYER_CONTEXT_CONFIG_ID_LIVING_ROOM_WATCH"
PLAYLIST_BROWSE_PARAMS = base64.b64encode(bytes([0xC2, 0x06, 0x02, 0x08, 0x00])).decode("ascii")


def build_client_contexts(settings: ExtractorSettings) -> ClientContexts:
    return ClientContexts(
        primary=ClientContext(
            profile="web",
            client_name="WEB",
            client_version=settings.web_client_version,
            hl=settings.hl,
            gl=settings.gl,
        ),
        fallback=ClientContext(
            profile="web-embed",
            client_name="WEB",
            client_version=settings.embed_client_version,
            client_screen="EMBED",
            hl=settings.hl,
            gl=settings.gl,
        ),
    )


def build_default_headers(settings: ExtractorSettings) -> dict[str, str]:
    return {
        "accept-language": settings.accept_language,
        "cookie": settings.consent_cookie,
        "user-agent": settings.user_agent,
        "origin": settings.site_base_url,
    }


def channel_page_params(page: ChannelPage) -> str:
    name = page.value.encode("ascii")
    return base64.b64encode(b"\x12" + bytes([len(name)]) + name).decode("ascii")


class InnertubeClient:
    def __init__(
        self,
        settings: ExtractorSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
        telemetry: TelemetryClient | None = None,
        contexts: ClientContexts | None = None,
    ) -> None:
        self._settings = settings
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(follow_redirects=True)
        self._telemetry = telemetry or TelemetryClient.disabled()
        self._contexts = contexts or build_client_contexts(settings)
        self._headers = build_default_headers(settings)
        self._timeout_seconds = settings.request_timeout_seconds
        self._timeout = httpx.Timeout(settings.request_timeout_seconds)
        self._max_attempts = settings.request_max_attempts
        self._bootstrap_cell: ConvergingCell[InnertubeBootstrap] = ConvergingCell("bootstrap")
        self._player_cell: ConvergingCell[PlayerAsset] = ConvergingCell("player_asset")

    async def __aenter__(self) -> InnertubeClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    @property
    def contexts(self) -> ClientContexts:
        return self._contexts

    @property
    def telemetry(self) -> TelemetryClient:
        return self._telemetry

    async def call(
        self,
        endpoint: Endpoint,
        payload: dict[str, Any],
        context: ClientContext | None = None,
        *,
        schema: type[ResponseT],
        allow_fallback: bool = True,
    ) -> ResponseT:
        context = context or self._contexts.primary
        response = await self._call_once(endpoint, payload, context, schema)
        signal = response.failure_signal()
        if signal is None:
            return response

        classified = classify(signal)
        fallback = self._contexts.fallback
        if (
            allow_fallback
            and classified.unlockable_by_alternate_context
            and fallback is not None
            and fallback != context
        ):
            LOGGER.info(
                "innertube context fallback endpoint=%s from=%s to=%s category=%s",
                endpoint.value,
                context.profile,
                fallback.profile,
                classified.category.value,
            )
            self._telemetry.emit(
                events.CALL_FALLBACK,
                endpoint=endpoint.value,
                from_profile=context.profile,
                to_profile=fallback.profile,
                category=classified.category.value,
            )
            retried = await self._call_once(endpoint, payload, fallback, schema)
            retried_signal = retried.failure_signal()
            if retried_signal is None:
                return retried
            fallback_classified = classify(retried_signal)
            LOGGER.info(
                "innertube fallback context also failed endpoint=%s category=%s",
                endpoint.value,
                fallback_classified.category.value,
            )

        raise self._classified_failure(endpoint, classified)

    async def player(self, video_id: str, *, context: ClientContext | None = None) -> PlayerResponse:
        return await self.call(
            Endpoint.PLAYER,
            {"videoId": parse_video_id(video_id)},
            context,
            schema=PlayerResponse,
        )

    async def next(self, video_id: str) -> NextResponse:
        return await self.call(
            Endpoint.NEXT,
            {"videoId": parse_video_id(video_id)},
            schema=NextResponse,
        )

    async def browse(self, browse_id: str, *, params: str | None = None) -> BrowseResponse:
        payload: dict[str, Any] = {"browseId": browse_id}
        if params is not None:
            payload["params"] = params
        return await self.call(Endpoint.BROWSE, payload, schema=BrowseResponse)

    async def browse_playlist(self, playlist_id: str) -> BrowseResponse:
        return await self.browse(
            f"VL{parse_playlist_id(playlist_id)}",
            params=PLAYLIST_BROWSE_PARAMS,
        )

    async def browse_channel(self, channel_id: str, page: ChannelPage) -> BrowseResponse:
        return await self.browse(parse_channel_id(channel_id), params=channel_page_params(page))

    async def continuation(
        self,
        token: str,
        *,
        endpoint: Endpoint = Endpoint.BROWSE,
    ) -> ContinuationResponse:
        return await self.call(
            endpoint,
            {"continuation": token},
            schema=ContinuationResponse,
        )

    async def bootstrap(self) -> InnertubeBootstrap:
        return await self._bootstrap_cell.get_or_init(self._fetch_bootstrap)

    async def player_asset(self) -> PlayerAsset:
        return await self._player_cell.get_or_init(self._fetch_player_asset)

    def invalidate_player_asset(self) -> None:
        self._player_cell.invalidate()

    async def _call_once(
        self,
        endpoint: Endpoint,
        payload: dict[str, Any],
        context: ClientContext,
        schema: type[ResponseT],
    ) -> ResponseT:
        api_key = await self._api_key()
        response = await self._request_with_retry(
            "POST",
            f"{self._settings.innertube_base_url}/{endpoint.value}",
            label=endpoint.value,
            params={"key": api_key, "prettyPrint": "false"},
            json={"context": context.to_payload(), **payload},
        )
        try:
            return schema.model_validate_json(response.content)
        except ValidationError as exc:
            LOGGER.warning(
                "innertube response shape mismatch endpoint=%s schema=%s errors=%s",
                endpoint.value,
                schema.__name__,
                exc.error_count(),
            )
            raise SchemaError(
                f"{endpoint.value} response did not match {schema.__name__}: {exc}"
            ) from exc

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        label: str,
        **request_kwargs: Any,
    ) -> httpx.Response:
        last_error: Exception | None = None
        last_status: int | None = None
        for attempt in range(1, self._max_attempts + 1):
            self._telemetry.emit(events.CALL_ATTEMPT, endpoint=label, attempt=attempt)
            try:
                # httpx limits each connect/read/write step; the attempt as a whole
                # gets one deadline on top of that.
                async with asyncio.timeout(self._timeout_seconds):
                    response = await self._http.request(
                        method,
                        url,
                        headers=self._headers,
                        timeout=self._timeout,
                        **request_kwargs,
                    )
            except (httpx.TimeoutException, TimeoutError) as exc:
                last_error = exc
                LOGGER.warning(
                    "innertube attempt timed out endpoint=%s attempt=%s max_attempts=%s",
                    label,
                    attempt,
                    self._max_attempts,
                )
                self._telemetry.emit(events.CALL_TIMEOUT, endpoint=label, attempt=attempt)
                continue
            except httpx.TransportError as exc:
                last_error = exc
                LOGGER.warning(
                    "innertube attempt failed endpoint=%s attempt=%s max_attempts=%s error=%s",
                    label,
                    attempt,
                    self._max_attempts,
                    type(exc).__name__,
                )
                continue

            if response.status_code >= 500:
                last_error = None
                last_status = response.status_code
                LOGGER.warning(
                    "innertube upstream error endpoint=%s attempt=%s status=%s",
                    label,
                    attempt,
                    response.status_code,
                )
                continue
            if response.status_code >= 400:
                raise TransportError(
                    f"{label} request was rejected (status {response.status_code}).",
                    attempts=attempt,
                    status_code=response.status_code,
                )
            return response

        LOGGER.warning(
            "innertube attempts exhausted endpoint=%s max_attempts=%s",
            label,
            self._max_attempts,
        )
        detail = f"status {last_status}" if last_error is None else type(last_error).__name__
        raise TransportError(
            f"{label} request failed after {self._max_attempts} attempts ({detail}).",
            attempts=self._max_attempts,
            status_code=last_status if last_error is None else None,
        ) from last_error

    async def _api_key(self) -> str:
        if self._settings.innertube_api_key is not None:
            return self._settings.innertube_api_key
        return (await self.bootstrap()).api_key

    async def _fetch_bootstrap(self) -> InnertubeBootstrap:
        configured_key = self._settings.innertube_api_key
        configured_player_url = self._settings.player_js_url
        if configured_key is not None and configured_player_url is not None:
            return InnertubeBootstrap(api_key=configured_key, player_asset_url=configured_player_url)

        with self._telemetry.span(events.BOOTSTRAP_FETCH):
            response = await self._request_with_retry(
                "GET",
                self._settings.tv_config_url,
                label="tv_config",
            )
            entry = _parse_tv_config(response.text)

        bootstrap = InnertubeBootstrap(
            api_key=configured_key or entry.innertube_api_key,
            player_asset_url=configured_player_url
            or player_asset_url_from_js_url(self._settings.site_base_url, entry.js_url),
        )
        LOGGER.info("innertube bootstrap loaded player_asset_url=%s", bootstrap.player_asset_url)
        return bootstrap

    async def _fetch_player_asset(self) -> PlayerAsset:
        url = self._settings.player_js_url or (await self.bootstrap()).player_asset_url
        with self._telemetry.span(events.PLAYER_ASSET_FETCH, url=url) as span:
            response = await self._request_with_retry("GET", url, label="player_asset")
            asset = build_player_asset(url, response.text)
            span["operations"] = len(asset.program)
        LOGGER.info(
            "player asset fetched url=%s operations=%s",
            url,
            len(asset.program),
        )
        return asset

    def _classified_failure(
        self,
        endpoint: Endpoint,
        classified: ClassifiedError,
    ) -> ClassifiedDomainError:
        self._telemetry.emit(
            events.CALL_FAILED,
            endpoint=endpoint.value,
            category=classified.category.value,
        )
        return ClassifiedDomainError(classified)


def _parse_tv_config(document: str) -> TvConfigEntry:
    lines = document.splitlines()
    if len(lines) < 2:
        raise SchemaError("tv_config document did not have a JSON second line.")
    try:
        parsed = json.loads(lines[1])
    except json.JSONDecodeError as exc:
        raise SchemaError("tv_config document carried invalid JSON.") from exc

    container = parsed.get("webPlayerContextConfig") if isinstance(parsed, dict) else None
    raw_entry = container.get(TV_CONFIG_ENTRY_KEY) if isinstance(container, dict) else None
    try:
        return TvConfigEntry.model_validate(raw_entry)
    except ValidationError as exc:
        raise SchemaError(f"tv_config entry did not match TvConfigEntry: {exc}") from exc
