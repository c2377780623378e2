from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ytextract.services.cipher import CipherProgram, extract_cipher_program

T = TypeVar("T")

LOGGER = logging.getLogger("ytextract.player")

PLAYER_ASSET_SUFFIX: tuple[str, ...] = ("player_ias.vflset", "en_US", "base.js")


@dataclass(frozen=True)
class PlayerAsset:
    url: str
    program: CipherProgram


class ConvergingCell(Generic[T]):
    """
    Lazily initialised, shared value.

    Concurrent first callers may each run the initializer; the first value stored wins and
    every caller gets that value back. Once stored the value is never replaced, only dropped
    by `invalidate()`.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._value: T | None = None

    @property
    def initialized(self) -> bool:
        return self._value is not None

    def peek(self) -> T | None:
        return self._value

    async def get_or_init(self, initializer: Callable[[], Awaitable[T]]) -> T:
        current = self._value
        if current is not None:
            return current

        value = await initializer()
        if self._value is None:
            self._value = value
        else:
            LOGGER.debug("memo cell converged on earlier value cell=%s", self._name)
        return self._value

    def invalidate(self) -> None:
        if self._value is not None:
            LOGGER.info("memo cell invalidated cell=%s", self._name)
        self._value = None


def build_player_asset(url: str, asset_text: str) -> PlayerAsset:
    return PlayerAsset(url=url, program=extract_cipher_program(asset_text))


def player_asset_url_from_js_url(site_base_url: str, js_url: str) -> str:
    if js_url.startswith(("https://", "http://")):
        return js_url
    segments = [segment for segment in js_url.split("/") if segment][:3]
    return "/".join([site_base_url.rstrip("/"), *segments, *PLAYER_ASSET_SUFFIX])
