"""Normalisation of user supplied channel references into channel ids."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Literal

from ..cache import KeyValueStore, WriteOnceStore
from ..models import ChannelSuggestion
from .extractors import (
    channel_id_from_url,
    extract_channel_id,
    extract_initial_data,
    is_channel_id,
    parse_channel_renderers,
)
from .youtube import YouTubeClient

logger = logging.getLogger(__name__)

# ``EgIQAg==`` restricts search results to channels.
CHANNEL_SEARCH_FILTER = "EgIQAg=="
YOUTUBE_DOMAIN = "youtube.com"


@dataclass(slots=True)
class ResolveOutcome:
    """Result of resolving free text for the configuration UI."""

    status: Literal["found", "ambiguous", "not_found"]
    channel_id: str | None = None
    suggestions: list[ChannelSuggestion] = field(default_factory=list)


class ChannelResolver:
    """Resolve ids, channel URLs, handles and names into ``UC…`` ids.

    Strategies run cheapest first: an input that already is a channel id or
    embeds one in a ``/channel/`` URL never touches the network. Anything
    else is turned into a profile URL whose page is scanned for the id.
    Successful resolutions are cached for the life of the process; failures
    are not, so a later request may succeed.
    """

    def __init__(
        self,
        youtube: YouTubeClient,
        cache: KeyValueStore[str, str] | None = None,
    ) -> None:
        self._youtube = youtube
        self._cache: KeyValueStore[str, str] = (
            cache if cache is not None else WriteOnceStore()
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @property
    def cache(self) -> KeyValueStore[str, str]:
        return self._cache

    async def resolve(self, raw: str | None) -> str | None:
        """Return the canonical channel id for ``raw`` or ``None``."""

        text = str(raw or "").strip()
        if not text:
            return None

        cached = self._cache.get(text)
        if cached is not None:
            logger.debug("Channel id cache hit for %s", text)
            return cached

        direct = self._resolve_offline(text)
        if direct is not None:
            return self._cache.put_if_absent(text, direct)

        lock = self._locks.setdefault(text, asyncio.Lock())
        self._waiters[text] = self._waiters.get(text, 0) + 1
        try:
            async with lock:
                cached = self._cache.get(text)
                if cached is not None:
                    return cached
                channel_id = await self._resolve_online(text)
                if channel_id is None:
                    return None
                return self._cache.put_if_absent(text, channel_id)
        finally:
            # Drop the lock with its last user so failed inputs leave nothing behind.
            self._waiters[text] -= 1
            if not self._waiters[text]:
                del self._waiters[text]
                self._locks.pop(text, None)

    def profile_url_for(self, text: str) -> str:
        """Return the page that should reveal the channel id for ``text``."""

        if text.startswith("@"):
            return self._youtube.handle_url(text)
        if YOUTUBE_DOMAIN in text.lower():
            if text.startswith(("http://", "https://")):
                return text
            return f"https://{text.lstrip('/')}"
        return self._youtube.handle_url(f"@{text}")

    async def search_channels(
        self, query: str, *, limit: int | None = None
    ) -> list[ChannelSuggestion]:
        """Return channel search hits for ``query``; never raises."""

        text = (query or "").strip()
        if not text:
            return []
        markup = await self._youtube.fetch_page(
            f"{self._youtube.base_url}/results",
            params={"search_query": text, "sp": CHANNEL_SEARCH_FILTER},
        )
        if not markup:
            return []
        data = extract_initial_data(markup)
        if data is None:
            logger.warning("Channel search page for %r carried no result data", text)
            return []
        return parse_channel_renderers(data, limit=limit)

    async def lookup(self, raw: str, *, limit: int | None = None) -> ResolveOutcome:
        """Resolve ``raw`` and fall back to search suggestions when it fails."""

        channel_id = await self.resolve(raw)
        if channel_id:
            return ResolveOutcome(status="found", channel_id=channel_id)
        suggestions = await self.search_channels(raw, limit=limit)
        if suggestions:
            return ResolveOutcome(status="ambiguous", suggestions=suggestions)
        return ResolveOutcome(status="not_found")

    @staticmethod
    def _resolve_offline(text: str) -> str | None:
        if is_channel_id(text):
            return text
        return channel_id_from_url(text)

    async def _resolve_online(self, text: str) -> str | None:
        url = self.profile_url_for(text)
        markup = await self._youtube.fetch_page(url)
        if not markup:
            return None
        channel_id = extract_channel_id(markup)
        if channel_id is None:
            logger.warning("No channel id marker found on %s", url)
        return channel_id
