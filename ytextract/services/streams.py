from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, quote, urlsplit

from ytextract.errors import SchemaError, StreamDescriptorError
from ytextract.models.innertube_contracts import StreamFormat
from ytextract.services.innertube import InnertubeClient


class ResolutionStage(str, Enum):
    IDLE = "idle"
    ASSET_FETCH_PENDING = "asset_fetch_pending"
    ASSET_PARSED = "asset_parsed"
    SIGNATURE_DECIPHERED = "signature_deciphered"
    URL_RESOLVED = "url_resolved"


@dataclass(frozen=True)
class SignatureCipher:
    url: str
    signature: str
    signature_param: str = "signature"


LOGGER = logging.getLogger("ytextract.streams")

StreamDescriptor = StreamFormat | str


def parse_signature_cipher(descriptor: str) -> SignatureCipher:
    fields = parse_qs(descriptor, keep_blank_values=True)
    url = _first(fields, "url")
    signature = _first(fields, "s")
    if not url or not signature:
        raise StreamDescriptorError("signatureCipher is missing its `url` or `s` field.")
    return SignatureCipher(
        url=url,
        signature=signature,
        signature_param=_first(fields, "sp") or "signature",
    )


def append_query_param(url: str, name: str, value: str) -> str:
    separator = "&" if urlsplit(url).query else "?"
    return f"{url}{separator}{name}={quote(value, safe='')}"


class StreamResolver:
    def __init__(self, client: InnertubeClient) -> None:
        self._client = client

    async def streams(self, video_id: str) -> list[StreamFormat]:
        response = await self._client.player(video_id)
        if response.streaming_data is None:
            raise SchemaError(f"player response for video_id={video_id} carried no streamingData.")
        streaming_data = response.streaming_data
        return [*streaming_data.formats, *streaming_data.adaptive_formats]

    async def resolve_url(self, stream: StreamDescriptor) -> str:
        if isinstance(stream, StreamFormat):
            if stream.url:
                return stream.url
            descriptor = stream.cipher_descriptor
            label = f"itag={stream.itag}"
        else:
            descriptor = stream
            label = "raw"
        if not descriptor:
            raise StreamDescriptorError(
                f"stream {label} has neither a url nor a signatureCipher."
            )

        cipher = parse_signature_cipher(descriptor)
        _log_stage(label, ResolutionStage.IDLE, ResolutionStage.ASSET_FETCH_PENDING)
        asset = await self._client.player_asset()
        _log_stage(label, ResolutionStage.ASSET_FETCH_PENDING, ResolutionStage.ASSET_PARSED)
        signature = asset.program.run(cipher.signature)
        _log_stage(label, ResolutionStage.ASSET_PARSED, ResolutionStage.SIGNATURE_DECIPHERED)
        resolved = append_query_param(cipher.url, cipher.signature_param, signature)
        _log_stage(label, ResolutionStage.SIGNATURE_DECIPHERED, ResolutionStage.URL_RESOLVED)
        return resolved

    async def resolve_many(self, streams: Iterable[StreamDescriptor]) -> list[str]:
        return list(await asyncio.gather(*(self.resolve_url(stream) for stream in streams)))


def _log_stage(label: str, previous: ResolutionStage, current: ResolutionStage) -> None:
    LOGGER.debug(
        "stream resolution stage stream=%s from=%s to=%s",
        label,
        previous.value,
        current.value,
    )


def _first(fields: dict[str, list[str]], key: str) -> str | None:
    values = fields.get(key)
    if not values:
        return None
    return values[0]
