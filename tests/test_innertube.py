from __future__ import annotations

import asyncio
import base64
import json
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import pytest

from ytextract.config import ExtractorSettings
from ytextract.errors import ClassifiedDomainError, SchemaError, TransportError
from ytextract.services.error_classifier import ErrorCategory
from ytextract.services.innertube import (
    PLAYLIST_BROWSE_PARAMS,
    ChannelPage,
    InnertubeClient,
    channel_page_params,
)
from ytextract.telemetry import CALL_FALLBACK, CALL_TIMEOUT, TelemetryClient

_PLAYER_JS_URL = "https://www.youtube.com/s/player/abc123/player_ias.vflset/en_US/base.js"
_PLAYER_ASSET = (
    "var Xy={Ab:function(a){a.reverse()},Cd:function(a,b){a.splice(0,b)}};"
    'Zq=function(a){a=a.split("");Xy.Cd(a,1);Xy.Ab(a,0);return a.join("")};'
)
_OK_PLAYER = {
    "playabilityStatus": {"status": "OK"},
    "streamingData": {"formats": [{"itag": 18, "mimeType": "video/mp4", "url": "https://media/18"}]},
    "videoDetails": {"videoId": "dQw4w9WgXcQ", "title": "Example"},
}
_AGE_GATED_PLAYER = {
    "playabilityStatus": {"status": "LOGIN_REQUIRED", "reason": "Sign in to confirm your age"},
}

Responder = Callable[[httpx.Request, int], httpx.Response]


class _RecordingHandler:
    def __init__(self, responder: Responder) -> None:
        self.requests: list[httpx.Request] = []
        self._responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request, len(self.requests))

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests if request.content]


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def _settings(**overrides: Any) -> ExtractorSettings:
    values: dict[str, Any] = {
        "innertube_api_key": "test-key",
        "player_js_url": _PLAYER_JS_URL,
        "request_timeout_seconds": 1.0,
        "request_max_attempts": 3,
        **overrides,
    }
    return ExtractorSettings(_env_file=None, **values)


def _client(
    handler: _RecordingHandler,
    settings: ExtractorSettings | None = None,
    *,
    telemetry: TelemetryClient | None = None,
) -> InnertubeClient:
    return InnertubeClient(
        settings or _settings(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        telemetry=telemetry,
    )


def _is_embed(request: httpx.Request) -> bool:
    body = json.loads(request.content)
    return body["context"]["client"].get("clientScreen") == "EMBED"


def test_player_call_sends_context_key_and_default_headers() -> None:
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, json=_OK_PLAYER))

    async def _run() -> None:
        async with _client(handler) as client:
            response = await client.player("https://youtu.be/dQw4w9WgXcQ")
        assert response.video_details is not None
        assert response.video_details.title == "Example"

    asyncio.run(_run())

    assert len(handler.requests) == 1
    request = handler.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/youtubei/v1/player"
    assert request.url.params["key"] == "test-key"
    assert request.headers["cookie"] == "SOCS=CAI"
    assert request.headers["accept-language"].startswith("en-US")
    body = handler.bodies()[0]
    assert body["videoId"] == "dQw4w9WgXcQ"
    assert body["context"]["client"]["clientName"] == "WEB"
    assert "clientScreen" not in body["context"]["client"]


def test_age_gated_call_falls_back_exactly_once() -> None:
    def _respond(request: httpx.Request, _: int) -> httpx.Response:
        if _is_embed(request):
            return httpx.Response(200, json=_OK_PLAYER)
        return httpx.Response(200, json=_AGE_GATED_PLAYER)

    handler = _RecordingHandler(_respond)
    sink = _CaptureSink()

    async def _run() -> None:
        async with _client(handler, telemetry=TelemetryClient(enabled=True, sink=sink)) as client:
            response = await client.player("dQw4w9WgXcQ")
        assert response.playability_status.is_ok

    asyncio.run(_run())

    assert len(handler.requests) == 2
    assert [_is_embed(request) for request in handler.requests] == [False, True]
    fallback_events = [attributes for name, attributes in sink.events if name == CALL_FALLBACK]
    assert fallback_events == [
        {
            "endpoint": "player",
            "from_profile": "web",
            "to_profile": "web-embed",
            "category": "age_restricted",
        }
    ]


def test_failed_fallback_does_not_cascade() -> None:
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, json=_AGE_GATED_PLAYER))

    async def _run() -> None:
        async with _client(handler) as client:
            with pytest.raises(ClassifiedDomainError) as exc_info:
                await client.player("dQw4w9WgXcQ")
        assert exc_info.value.classified.category is ErrorCategory.AGE_RESTRICTED

    asyncio.run(_run())

    assert len(handler.requests) == 2


def test_non_unlockable_failure_is_not_retried() -> None:
    private = {"playabilityStatus": {"status": "LOGIN_REQUIRED", "reason": "This video is private."}}
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, json=private))

    async def _run() -> None:
        async with _client(handler) as client:
            with pytest.raises(ClassifiedDomainError) as exc_info:
                await client.player("dQw4w9WgXcQ")
        assert exc_info.value.category == "private"

    asyncio.run(_run())

    assert len(handler.requests) == 1


def test_timeouts_are_retried_until_attempts_are_exhausted() -> None:
    def _respond(request: httpx.Request, _: int) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    handler = _RecordingHandler(_respond)
    sink = _CaptureSink()

    async def _run() -> None:
        async with _client(handler, telemetry=TelemetryClient(enabled=True, sink=sink)) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.player("dQw4w9WgXcQ")
        assert exc_info.value.attempts == 3
        assert exc_info.value.status_code is None

    asyncio.run(_run())

    assert len(handler.requests) == 3
    assert [name for name, _ in sink.events].count(CALL_TIMEOUT) == 3


def test_server_errors_are_retried_then_succeed() -> None:
    def _respond(request: httpx.Request, count: int) -> httpx.Response:
        if count == 1:
            return httpx.Response(503)
        return httpx.Response(200, json=_OK_PLAYER)

    handler = _RecordingHandler(_respond)

    async def _run() -> None:
        async with _client(handler) as client:
            await client.player("dQw4w9WgXcQ")

    asyncio.run(_run())

    assert len(handler.requests) == 2


def test_client_errors_are_not_retried() -> None:
    handler = _RecordingHandler(lambda request, _: httpx.Response(404))

    async def _run() -> None:
        async with _client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.player("dQw4w9WgXcQ")
        assert exc_info.value.status_code == 404
        assert exc_info.value.attempts == 1

    asyncio.run(_run())

    assert len(handler.requests) == 1


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"streamingData": {}}),
    ],
)
def test_unexpected_payload_shape_raises_schema_error(response: httpx.Response) -> None:
    handler = _RecordingHandler(lambda request, _: response)

    async def _run() -> None:
        async with _client(handler) as client:
            with pytest.raises(SchemaError):
                await client.player("dQw4w9WgXcQ")

    asyncio.run(_run())

    assert len(handler.requests) == 1


def test_browse_playlist_alert_is_classified() -> None:
    payload = {
        "alerts": [
            {"alertRenderer": {"type": "ERROR", "text": {"runs": [{"text": "The playlist does not exist."}]}}}
        ]
    }
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, json=payload))

    async def _run() -> None:
        async with _client(handler) as client:
            with pytest.raises(ClassifiedDomainError) as exc_info:
                await client.browse_playlist("PLabc123_-")
        assert exc_info.value.classified.category is ErrorCategory.NOT_FOUND

    asyncio.run(_run())

    body = handler.bodies()[0]
    assert body["browseId"] == "VLPLabc123_-"
    assert body["params"] == PLAYLIST_BROWSE_PARAMS == "wgYCCAA="


def test_browse_channel_sends_page_params() -> None:
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, json={"contents": {}}))

    async def _run() -> None:
        async with _client(handler) as client:
            await client.browse_channel("UC" + "a" * 22, ChannelPage.ABOUT)

    asyncio.run(_run())

    body = handler.bodies()[0]
    assert body["browseId"] == "UC" + "a" * 22
    assert body["params"] == channel_page_params(ChannelPage.ABOUT)
    assert base64.b64decode(body["params"]) == b"\x12\x05about"


def test_bootstrap_fetches_tv_config_once() -> None:
    tv_config = ")]}'\n" + json.dumps(
        {
            "webPlayerContextConfig": {
                "WEB_PLAYER_CONTEXT_CONFIG_ID_LIVING_ROOM_WATCH": {
                    "jsUrl": "/s/player/abc123/tv-player-ias.vflset/tv-player-ias.js",
                    "innertubeApiKey": "boot-key",
                }
            }
        }
    )

    def _respond(request: httpx.Request, _: int) -> httpx.Response:
        if request.url.path == "/tv_config":
            return httpx.Response(200, text=tv_config)
        if request.url.path.endswith("base.js"):
            return httpx.Response(200, text=_PLAYER_ASSET)
        return httpx.Response(200, json=_OK_PLAYER)

    handler = _RecordingHandler(_respond)
    settings = _settings(innertube_api_key=None, player_js_url=None)

    async def _run() -> None:
        async with _client(handler, settings) as client:
            await client.player("dQw4w9WgXcQ")
            await client.player("dQw4w9WgXcQ")
            asset = await client.player_asset()
            assert await client.player_asset() is asset
        assert asset.url == _PLAYER_JS_URL
        assert asset.program.run("ABC") == "CB"

    asyncio.run(_run())

    paths = [request.url.path for request in handler.requests]
    assert paths.count("/tv_config") == 1
    assert paths.count("/youtubei/v1/player") == 2
    assert paths.count("/s/player/abc123/player_ias.vflset/en_US/base.js") == 1
    assert all(
        request.url.params["key"] == "boot-key"
        for request in handler.requests
        if request.method == "POST"
    )


def test_bootstrap_with_malformed_document_raises_schema_error() -> None:
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, text="only one line"))
    settings = _settings(innertube_api_key=None)

    async def _run() -> None:
        async with _client(handler, settings) as client:
            with pytest.raises(SchemaError):
                await client.player("dQw4w9WgXcQ")

    asyncio.run(_run())


def test_invalidated_player_asset_is_fetched_again() -> None:
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, text=_PLAYER_ASSET))

    async def _run() -> None:
        async with _client(handler) as client:
            await client.player_asset()
            client.invalidate_player_asset()
            await client.player_asset()

    asyncio.run(_run())

    assert len(handler.requests) == 2


def test_next_returns_related_contents() -> None:
    payload = {"contents": {"twoColumnWatchNextResults": {"results": {}}}}
    handler = _RecordingHandler(lambda request, _: httpx.Response(200, json=payload))

    async def _run() -> None:
        async with _client(handler) as client:
            response = await client.next("dQw4w9WgXcQ")
        assert "twoColumnWatchNextResults" in response.contents

    asyncio.run(_run())

    assert handler.requests[0].url.path == "/youtubei/v1/next"
    assert handler.bodies()[0]["videoId"] == "dQw4w9WgXcQ"


def test_slow_attempt_is_cut_off_by_overall_deadline() -> None:
    attempts: list[httpx.Request] = []

    async def _trickle(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        await asyncio.sleep(5)
        return httpx.Response(200, json=_OK_PLAYER)

    settings = _settings(request_timeout_seconds=0.05, request_max_attempts=2)

    async def _run() -> None:
        client = InnertubeClient(
            settings,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(_trickle)),
        )
        async with client:
            with pytest.raises(TransportError) as exc_info:
                await client.player("dQw4w9WgXcQ")
        assert exc_info.value.attempts == 2

    asyncio.run(_run())

    assert len(attempts) == 2
