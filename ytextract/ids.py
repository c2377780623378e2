from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

VIDEO_ID_LENGTH = 11
CHANNEL_ID_LENGTH = 24
SPECIAL_PLAYLIST_IDS: frozenset[str] = frozenset({"WL", "RDMM", "LL"})

_ID_CHARSET_RE = re.compile(r"^[0-9A-Za-z_-]+$")
_VIDEO_URL_PREFIXES: tuple[str, ...] = (
    "https://www.youtube.com/watch?v=",
    "https://m.youtube.com/watch?v=",
    "https://youtube.com/watch?v=",
    "https://youtu.be/",
    "https://www.youtube.com/embed/",
    "https://www.youtube.com/shorts/",
)
_CHANNEL_URL_PREFIXES: tuple[str, ...] = (
    "https://www.youtube.com/channel/",
    "https://m.youtube.com/channel/",
    "https://youtube.com/channel/",
)
_PLAYLIST_URL_PREFIXES: tuple[str, ...] = (
    "https://www.youtube.com/playlist?list=",
    "https://m.youtube.com/playlist?list=",
    "https://youtube.com/playlist?list=",
)


class InvalidIdError(ValueError):
    def __init__(self, kind: str, value: str, detail: str) -> None:
        super().__init__(f"Invalid {kind} id '{value}': {detail}")
        self.kind = kind
        self.value = value


def parse_video_id(value: str) -> str:
    candidate = _strip_prefix(value.strip(), _VIDEO_URL_PREFIXES)
    return _validate("video", value, candidate, length=VIDEO_ID_LENGTH)


def parse_channel_id(value: str) -> str:
    candidate = _strip_prefix(value.strip(), _CHANNEL_URL_PREFIXES)
    return _validate("channel", value, candidate, length=CHANNEL_ID_LENGTH)


def parse_playlist_id(value: str) -> str:
    stripped = value.strip()
    candidate = _strip_prefix(stripped, _PLAYLIST_URL_PREFIXES)
    if candidate == stripped and stripped.startswith(("https://", "http://")):
        listed = parse_qs(urlparse(stripped).query).get("list")
        if listed:
            candidate = listed[0]
    if candidate in SPECIAL_PLAYLIST_IDS:
        return candidate
    return _validate("playlist", value, candidate, length=None)


def _strip_prefix(value: str, prefixes: tuple[str, ...]) -> str:
    for prefix in prefixes:
        if value.startswith(prefix):
            remainder = value[len(prefix) :]
            return re.split(r"[?&#/]", remainder, maxsplit=1)[0]
    return value


def _validate(kind: str, original: str, candidate: str, *, length: int | None) -> str:
    if not candidate or _ID_CHARSET_RE.match(candidate) is None:
        raise InvalidIdError(kind, original, "contains characters outside [0-9A-Za-z_-]")
    if length is not None and len(candidate) != length:
        raise InvalidIdError(
            kind,
            original,
            f"expected length {length} but found length {len(candidate)}",
        )
    return candidate
