from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from ytextract.errors import CipherEntryNotFoundError
from ytextract.services.player import (
    ConvergingCell,
    build_player_asset,
    player_asset_url_from_js_url,
)


def test_concurrent_first_initializers_converge_on_first_stored_value() -> None:
    cell: ConvergingCell[str] = ConvergingCell("test")
    calls: list[str] = []

    def _initializer(value: str) -> Callable[[], Awaitable[str]]:
        async def _init() -> str:
            calls.append(value)
            await asyncio.sleep(0)
            return value

        return _init

    async def _run() -> list[str]:
        return list(
            await asyncio.gather(
                cell.get_or_init(_initializer("first")),
                cell.get_or_init(_initializer("second")),
            )
        )

    results = asyncio.run(_run())

    assert calls == ["first", "second"]
    assert results == ["first", "first"]
    assert cell.peek() == "first"


def test_initialized_cell_does_not_call_initializer_again() -> None:
    cell: ConvergingCell[int] = ConvergingCell("test")
    calls = 0

    async def _init() -> int:
        nonlocal calls
        calls += 1
        return calls

    async def _run() -> tuple[int, int]:
        return await cell.get_or_init(_init), await cell.get_or_init(_init)

    assert asyncio.run(_run()) == (1, 1)
    assert calls == 1
    assert cell.initialized


def test_failed_initializer_leaves_cell_empty() -> None:
    cell: ConvergingCell[str] = ConvergingCell("test")

    async def _fail() -> str:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(cell.get_or_init(_fail))

    assert not cell.initialized


def test_invalidate_drops_value() -> None:
    cell: ConvergingCell[str] = ConvergingCell("test")

    async def _init() -> str:
        return "value"

    asyncio.run(cell.get_or_init(_init))
    cell.invalidate()

    assert cell.peek() is None


def test_player_asset_url_from_relative_js_url() -> None:
    assert (
        player_asset_url_from_js_url(
            "https://www.youtube.com/",
            "/s/player/abc123/tv-player-ias.vflset/tv-player-ias.js",
        )
        == "https://www.youtube.com/s/player/abc123/player_ias.vflset/en_US/base.js"
    )


def test_player_asset_url_keeps_absolute_url() -> None:
    url = "https://cdn.example/base.js"

    assert player_asset_url_from_js_url("https://www.youtube.com", url) == url


def test_build_player_asset_fails_on_unparsable_asset() -> None:
    with pytest.raises(CipherEntryNotFoundError):
        build_player_asset("https://cdn.example/base.js", "console.log('nothing here')")
