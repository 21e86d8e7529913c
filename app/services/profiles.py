"""Best-effort lookup of channel display names and avatars."""

from __future__ import annotations

import logging

from ..cache import KeyValueStore, WriteOnceStore
from ..models import ChannelProfile
from ..utils import absolute_url, shorten_id
from .extractors import extract_avatar_url, extract_initial_data, extract_meta_property
from .youtube import YouTubeClient

logger = logging.getLogger(__name__)


class ProfileFetcher:
    """Scrape a channel page for its title and avatar.

    Profiles are cached per channel id once a page has been read, even when it
    yielded no avatar. Transport failures are not cached.
    """

    def __init__(
        self,
        youtube: YouTubeClient,
        cache: KeyValueStore[str, ChannelProfile] | None = None,
    ) -> None:
        self._youtube = youtube
        self._cache: KeyValueStore[str, ChannelProfile] = (
            cache if cache is not None else WriteOnceStore()
        )

    @property
    def cache(self) -> KeyValueStore[str, ChannelProfile]:
        return self._cache

    async def fetch(self, channel_id: str | None) -> ChannelProfile | None:
        if not channel_id:
            return None
        cached = self._cache.get(channel_id)
        if cached is not None:
            return cached

        markup = await self._youtube.fetch_page(self._youtube.channel_url(channel_id))
        if markup is None:
            return None

        profile = self.parse(channel_id, markup)
        return self._cache.put_if_absent(channel_id, profile)

    @staticmethod
    def parse(channel_id: str, markup: str) -> ChannelProfile:
        """Build a profile from channel page markup."""

        title = extract_meta_property(markup, "og:title")
        avatar = absolute_url(extract_meta_property(markup, "og:image"))
        if not avatar:
            data = extract_initial_data(markup)
            if data is not None:
                avatar = extract_avatar_url(data)
        if not avatar:
            logger.info("No avatar found on channel page for %s", channel_id)
        return ChannelProfile(
            display_name=title or f"Channel {shorten_id(channel_id)}",
            avatar_url=avatar,
        )
