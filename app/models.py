"""Data records exchanged between the fetchers and the catalog service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

CHANNEL_PREFIX = "ytc:"
VIDEO_PREFIX = "ytv:"

ContentType = Literal["movie", "series"]


@dataclass(slots=True)
class FeedItem:
    """A single upload listed in a channel's activity feed."""

    item_id: str
    title: str
    published_at: str | None = None
    page_url: str | None = None
    thumbnail_url: str | None = None

    def to_video(self) -> dict[str, object]:
        """Return a Stremio ``videos`` entry for channel meta responses."""

        video: dict[str, object] = {
            "id": f"{VIDEO_PREFIX}{self.item_id}",
            "type": "movie",
            "title": self.title or "Video",
            "name": self.title or "Video",
        }
        if self.published_at:
            video["released"] = self.published_at
            video["releaseInfo"] = self.published_at[:10]
        if self.thumbnail_url:
            video["poster"] = self.thumbnail_url
            video["thumbnail"] = self.thumbnail_url
            video["background"] = self.thumbnail_url
        return video

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.item_id,
            "title": self.title,
            "published": self.published_at,
            "link": self.page_url,
            "thumbnail": self.thumbnail_url,
        }


@dataclass(slots=True)
class ChannelFeed:
    """Parsed channel feed, newest entries first."""

    title: str | None = None
    items: list[FeedItem] = field(default_factory=list)

    @property
    def first_thumbnail(self) -> str | None:
        for item in self.items:
            if item.thumbnail_url:
                return item.thumbnail_url
        return None


@dataclass(slots=True, frozen=True)
class ChannelProfile:
    """Display name and avatar scraped from a channel page."""

    display_name: str
    avatar_url: str | None = None


@dataclass(slots=True)
class ChannelSuggestion:
    """Channel search hit offered when free text does not resolve directly."""

    channel_id: str
    title: str
    thumbnail: str | None = None
    subscribers: str = ""
    description: str = ""

    def to_payload(self) -> dict[str, object]:
        return {
            "channelId": self.channel_id,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "subscribers": self.subscribers,
            "description": self.description,
        }


def split_catalog_id(value: str) -> tuple[str | None, str]:
    """Split a namespaced catalog id into ``(prefix, remainder)``."""

    for prefix in (CHANNEL_PREFIX, VIDEO_PREFIX):
        if value.startswith(prefix):
            return prefix, value[len(prefix):]
    return None, value
