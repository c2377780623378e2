from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ytextract import telemetry as events
from ytextract.errors import ContinuationProtocolError
from ytextract.models.innertube_contracts import CONTINUATION_ITEM_KEY, flatten_text
from ytextract.services.error_classifier import ClassifiedError, classify
from ytextract.services.innertube import Endpoint, InnertubeClient

LOGGER = logging.getLogger("ytextract.continuation")


@dataclass(frozen=True)
class Page:
    items: tuple[dict[str, Any], ...]
    continuation: str | None

    @property
    def is_last(self) -> bool:
        return self.continuation is None


def split_page(raw_items: Sequence[Any]) -> Page:
    """Separate a page's items from its trailing continuation marker.

    The marker, when present, must be the final element and must carry a token.
    """
    items: list[dict[str, Any]] = []
    token: str | None = None
    last_index = len(raw_items) - 1
    for index, raw_item in enumerate(raw_items):
        if not isinstance(raw_item, Mapping):
            raise ContinuationProtocolError(
                f"page item at position {index} is not an object: {type(raw_item).__name__}"
            )
        marker = raw_item.get(CONTINUATION_ITEM_KEY)
        if marker is None:
            items.append(dict(raw_item))
            continue
        if index != last_index:
            raise ContinuationProtocolError(
                f"continuation marker found at position {index} of {len(raw_items)} items"
            )
        token = continuation_token(marker)
    return Page(items=tuple(items), continuation=token)


def continuation_token(marker: Any) -> str:
    command = _path(marker, "continuationEndpoint", "continuationCommand")
    if not command:
        # Some `next` listings wrap the command in a "show more" button.
        command = _path(marker, "button", "buttonRenderer", "command", "continuationCommand")
    token = command.get("token")
    if not isinstance(token, str) or not token:
        raise ContinuationProtocolError("continuation marker carried no token")
    return token


class ContinuationPager:
    def __init__(
        self,
        client: InnertubeClient,
        *,
        max_pages: int | None = None,
        endpoint: Endpoint = Endpoint.BROWSE,
    ) -> None:
        self._client = client
        self._max_pages = max_pages
        self._endpoint = endpoint

    async def paginate(self, initial_items: Sequence[Any]) -> AsyncIterator[dict[str, Any]]:
        page = split_page(initial_items)
        seen_tokens: set[str] = set()
        page_number = 1
        LOGGER.debug(
            "continuation page received page=%s items=%s has_next=%s",
            page_number,
            len(page.items),
            not page.is_last,
        )
        while True:
            for item in page.items:
                yield item

            token = page.continuation
            if token is None:
                LOGGER.debug("continuation finished pages=%s", page_number)
                return
            if self._max_pages is not None and page_number >= self._max_pages:
                LOGGER.info(
                    "continuation stopped at page ceiling pages=%s max_pages=%s",
                    page_number,
                    self._max_pages,
                )
                return
            if token in seen_tokens:
                raise ContinuationProtocolError(
                    f"continuation token repeated after page {page_number}"
                )
            seen_tokens.add(token)

            response = await self._client.continuation(token, endpoint=self._endpoint)
            items = response.items()
            if items is None:
                raise ContinuationProtocolError(
                    f"continuation page {page_number + 1} carried no continuation items"
                )
            page = split_page(items)
            page_number += 1
            LOGGER.debug(
                "continuation page received page=%s items=%s has_next=%s",
                page_number,
                len(page.items),
                not page.is_last,
            )
            self._client.telemetry.emit(
                events.CONTINUATION_PAGE,
                endpoint=self._endpoint.value,
                page=page_number,
                items=len(page.items),
            )

    async def collect(self, initial_items: Sequence[Any]) -> list[dict[str, Any]]:
        return [item async for item in self.paginate(initial_items)]

    async def playlist_items(self, playlist_id: str) -> AsyncIterator[dict[str, Any]]:
        first_page = await self._client.browse_playlist(playlist_id)
        async for item in self.paginate(first_page.playlist_items()):
            yield item


def unavailable_item_reason(item: Mapping[str, Any]) -> ClassifiedError | None:
    renderer = item.get("playlistVideoRenderer")
    if not isinstance(renderer, Mapping) or renderer.get("isPlayable", True):
        return None
    title = flatten_text(renderer.get("title"))
    if not isinstance(title, str) or not title.strip():
        return None
    return classify(title)


def _path(value: Any, *keys: str) -> dict[str, Any]:
    current = value
    for key in keys:
        if not isinstance(current, Mapping):
            return {}
        current = current.get(key)
    if isinstance(current, Mapping):
        return dict(current)
    return {}
