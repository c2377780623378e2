from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Literal, Protocol
from urllib.parse import urlsplit, urlunsplit

import structlog

CALL_ATTEMPT = "innertube.call.attempt"
CALL_TIMEOUT = "innertube.call.timeout"
CALL_FALLBACK = "innertube.call.fallback"
CALL_FAILED = "innertube.call.failed"
BOOTSTRAP_FETCH = "innertube.bootstrap.fetch"
PLAYER_ASSET_FETCH = "player.asset.fetch"
CONTINUATION_PAGE = "continuation.page"

_SENSITIVE_ATTRIBUTE_TOKENS: frozenset[str] = frozenset(
    {
        "api_key",
        "body",
        "continuation",
        "cookie",
        "payload",
        "signature",
        "token",
    }
)
_MAX_STRING_LENGTH = 160

Attribute = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    def __init__(self) -> None:
        self._logger = structlog.get_logger("ytextract.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=_sanitize_attributes(attributes))

    @contextmanager
    def span(self, event_name: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Emit `event_name` once the block exits, with its duration and outcome.

        The yielded dict can be filled with extra attributes from inside the block.
        """
        extra: dict[str, Any] = {}
        started = perf_counter()
        try:
            yield extra
        except BaseException as exc:
            self.emit(
                event_name,
                **{**attributes, **extra},
                outcome="error",
                error_type=type(exc).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        self.emit(
            event_name,
            **{**attributes, **extra},
            outcome="ok",
            duration_ms=_elapsed_ms(started),
        )


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if not enabled or sink == "none":
        return TelemetryClient.disabled()
    if sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())

    logging.getLogger("ytextract.telemetry").warning(
        "unsupported telemetry sink requested; disabling telemetry sink=%s",
        sink,
    )
    return TelemetryClient.disabled()


def strip_url_query(value: str) -> str:
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return value
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _elapsed_ms(started: float) -> int:
    return int((perf_counter() - started) * 1000)


def _sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, Attribute]:
    sanitized: dict[str, Attribute] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(token in key for token in _SENSITIVE_ATTRIBUTE_TOKENS):
            sanitized[key] = "[redacted]"
            continue
        sanitized[key] = _sanitize_value(raw_value)
    return sanitized


def _sanitize_value(value: Any) -> Attribute:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        # Query strings of media URLs hold signatures and API keys.
        compact = strip_url_query(" ".join(value.split()))
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    return type(value).__name__
