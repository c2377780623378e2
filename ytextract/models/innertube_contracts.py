from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ytextract.errors import SchemaError
from ytextract.services.error_classifier import FailureSignal

CONTINUATION_ITEM_KEY = "continuationItemRenderer"


class _InnertubeModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class InnertubeResponse(_InnertubeModel):
    def failure_signal(self) -> FailureSignal | None:
        return None


class ClientContext(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    profile: str
    client_name: str
    client_version: str
    hl: str = "en"
    gl: str = "US"
    client_screen: str | None = None

    def to_payload(self) -> dict[str, Any]:
        client: dict[str, Any] = {
            "hl": self.hl,
            "gl": self.gl,
            "clientName": self.client_name,
            "clientVersion": self.client_version,
        }
        if self.client_screen is not None:
            client["clientScreen"] = self.client_screen
        return {"client": client}


class PlayabilityStatus(_InnertubeModel):
    status: str
    reason: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.status.strip().upper() == "OK"


class StreamFormat(_InnertubeModel):
    itag: int
    mime_type: str
    url: str | None = None
    signature_cipher: str | None = None
    cipher: str | None = None
    bitrate: int | None = None
    average_bitrate: int | None = None
    content_length: int | None = None
    quality: str | None = None
    quality_label: str | None = None
    width: int | None = None
    height: int | None = None
    fps: int | None = None
    audio_quality: str | None = None
    audio_sample_rate: int | None = None
    audio_channels: int | None = None
    approx_duration_ms: int | None = None
    last_modified: int | None = None

    @property
    def is_audio(self) -> bool:
        return self.mime_type.startswith("audio/")

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @property
    def cipher_descriptor(self) -> str | None:
        return self.signature_cipher or self.cipher


class StreamingData(_InnertubeModel):
    expires_in_seconds: int | None = None
    formats: list[StreamFormat] = Field(default_factory=list)
    adaptive_formats: list[StreamFormat] = Field(default_factory=list)
    dash_manifest_url: str | None = None
    hls_manifest_url: str | None = None


class VideoDetails(_InnertubeModel):
    video_id: str
    title: str | None = None
    length_seconds: int | None = None
    channel_id: str | None = None
    author: str | None = None
    short_description: str | None = None
    view_count: int | None = None
    keywords: list[str] = Field(default_factory=list)
    is_private: bool = False
    is_live_content: bool = False


class PlayerResponse(InnertubeResponse):
    playability_status: PlayabilityStatus
    streaming_data: StreamingData | None = None
    video_details: VideoDetails | None = None

    def failure_signal(self) -> FailureSignal | None:
        if self.playability_status.is_ok:
            return None
        return FailureSignal(
            status=self.playability_status.status,
            reason=self.playability_status.reason,
        )


class AlertRenderer(_InnertubeModel):
    type: str
    text: str

    @field_validator("text", mode="before")
    @classmethod
    def _flatten_text(cls, value: Any) -> Any:
        return flatten_text(value)


class Alert(_InnertubeModel):
    alert_renderer: AlertRenderer | None = None
    alert_with_button_renderer: AlertRenderer | None = None

    @property
    def renderer(self) -> AlertRenderer | None:
        return self.alert_renderer or self.alert_with_button_renderer


class _AlertingResponse(InnertubeResponse):
    alerts: list[Alert] = Field(default_factory=list)

    def failure_signal(self) -> FailureSignal | None:
        for alert in self.alerts:
            renderer = alert.renderer
            if renderer is not None and renderer.type.strip().upper() == "ERROR":
                return FailureSignal(reason=renderer.text)
        return None


class BrowseResponse(_AlertingResponse):
    contents: dict[str, Any] = Field(default_factory=dict)
    header: dict[str, Any] = Field(default_factory=dict)
    microformat: dict[str, Any] = Field(default_factory=dict)

    def playlist_items(self) -> list[Any]:
        tabs = _as_list(
            _as_dict(self.contents.get("twoColumnBrowseResultsRenderer")).get("tabs")
        )
        for tab in tabs:
            content = _as_dict(_as_dict(_as_dict(tab).get("tabRenderer")).get("content"))
            sections = _as_list(_as_dict(content.get("sectionListRenderer")).get("contents"))
            for section in sections:
                items = _as_list(_as_dict(_as_dict(section).get("itemSectionRenderer")).get("contents"))
                for item in items:
                    renderer = _as_dict(item).get("playlistVideoListRenderer")
                    if isinstance(renderer, dict):
                        return _as_list(renderer.get("contents"))
        raise SchemaError("browse response carried no playlistVideoListRenderer.")


class NextResponse(_AlertingResponse):
    contents: dict[str, Any] = Field(default_factory=dict)


class _ContinuationItems(_InnertubeModel):
    continuation_items: list[dict[str, Any]]


class ContinuationAction(_InnertubeModel):
    append_continuation_items_action: _ContinuationItems | None = None
    reload_continuation_items_command: _ContinuationItems | None = None

    @property
    def items(self) -> list[dict[str, Any]] | None:
        source = self.append_continuation_items_action or self.reload_continuation_items_command
        if source is None:
            return None
        return source.continuation_items


class ContinuationResponse(_AlertingResponse):
    on_response_received_actions: list[ContinuationAction] = Field(default_factory=list)
    on_response_received_endpoints: list[ContinuationAction] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_items(self) -> ContinuationResponse:
        if self.failure_signal() is not None:
            return self
        if self.items() is None:
            raise ValueError("continuation response carried no continuation items")
        return self

    def items(self) -> list[dict[str, Any]] | None:
        for action in (*self.on_response_received_actions, *self.on_response_received_endpoints):
            items = action.items
            if items is not None:
                return items
        return None


class TvConfigEntry(_InnertubeModel):
    js_url: str
    innertube_api_key: str


def flatten_text(value: Any) -> Any:
    if isinstance(value, dict):
        simple_text = value.get("simpleText")
        if isinstance(simple_text, str):
            return simple_text
        runs = value.get("runs")
        if isinstance(runs, list):
            return "".join(
                run["text"] for run in runs if isinstance(run, dict) and isinstance(run.get("text"), str)
            )
    return value


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    return []
