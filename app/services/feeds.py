"""Fetching and parsing of per-channel upload feeds."""

from __future__ import annotations

import logging
from typing import Any

import feedparser

from ..models import ChannelFeed, FeedItem
from .youtube import YouTubeClient

logger = logging.getLogger(__name__)


def _entry_thumbnail(entry: Any) -> str | None:
    thumbnails = entry.get("media_thumbnail") or []
    for thumbnail in thumbnails:
        url = thumbnail.get("url") if isinstance(thumbnail, dict) else None
        if url:
            return str(url)
    return None


def _entry_link(entry: Any) -> str | None:
    link = entry.get("link")
    if link:
        return str(link)
    for candidate in entry.get("links") or []:
        href = candidate.get("href") if isinstance(candidate, dict) else None
        if href:
            return str(href)
    return None


def parse_feed(document: bytes | str) -> ChannelFeed | None:
    """Parse a YouTube Atom feed into a :class:`ChannelFeed`.

    Entries keep feed order (newest first). Entries without a video id are
    dropped; any other missing field is left empty.
    """

    parsed = feedparser.parse(document)
    if parsed.get("bozo") and not parsed.get("entries") and not parsed.feed.get("title"):
        logger.warning(
            "Unparsable channel feed: %s", parsed.get("bozo_exception")
        )
        return None

    items: list[FeedItem] = []
    for entry in parsed.entries:
        video_id = entry.get("yt_videoid")
        if not video_id:
            continue
        items.append(
            FeedItem(
                item_id=str(video_id),
                title=str(entry.get("title") or ""),
                published_at=entry.get("published") or entry.get("updated"),
                page_url=_entry_link(entry),
                thumbnail_url=_entry_thumbnail(entry),
            )
        )
    title = parsed.feed.get("title")
    return ChannelFeed(title=str(title) if title else None, items=items)


class FeedFetcher:
    """Retrieve a channel's recent uploads. Results are never cached."""

    def __init__(self, youtube: YouTubeClient) -> None:
        self._youtube = youtube

    async def fetch(self, channel_id: str | None) -> ChannelFeed | None:
        if not channel_id:
            return None
        document = await self._youtube.fetch_feed(channel_id)
        if document is None:
            return None
        feed = parse_feed(document)
        if feed is None:
            logger.warning("Discarding unreadable feed for %s", channel_id)
        return feed
