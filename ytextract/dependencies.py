from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from types import TracebackType

import httpx

from ytextract.config import ExtractorSettings, load_settings
from ytextract.services.continuation import ContinuationPager
from ytextract.services.innertube import InnertubeClient
from ytextract.services.streams import StreamResolver
from ytextract.telemetry import TelemetryClient, build_telemetry_client


@dataclass(frozen=True)
class Extractor:
    client: InnertubeClient
    pager: ContinuationPager
    streams: StreamResolver

    async def __aenter__(self) -> Extractor:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()


@lru_cache(maxsize=1)
def get_settings() -> ExtractorSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def build_extractor(
    settings: ExtractorSettings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    telemetry: TelemetryClient | None = None,
) -> Extractor:
    # HTTP clients bind to the running event loop, so extractors are never cached.
    resolved_settings = settings or get_settings()
    client = InnertubeClient(
        resolved_settings,
        http_client=http_client,
        telemetry=telemetry or get_telemetry(),
    )
    return Extractor(
        client=client,
        pager=ContinuationPager(client, max_pages=resolved_settings.continuation_max_pages),
        streams=StreamResolver(client),
    )


def reset_cached_dependencies() -> None:
    get_telemetry.cache_clear()
    get_settings.cache_clear()
