"""Catalog protocol handlers built on the resolver and fetchers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from ..codec import TenantConfig, encode_config, from_b64url, to_b64url
from ..config import Settings
from ..models import CHANNEL_PREFIX, VIDEO_PREFIX, ChannelFeed, split_catalog_id
from ..utils import shorten_id
from .extractors import is_channel_id
from .feeds import FeedFetcher
from .profiles import ProfileFetcher
from .resolver import ChannelResolver

logger = logging.getLogger(__name__)

CATALOG_ID = "youtube-user"
CATALOG_TYPE = "series"
LOW_QUOTA_SUFFIX = " • Low-quota"


@dataclass(slots=True)
class ConfigLinks:
    """Install links handed back after creating a configuration token."""

    token: str
    manifest_url: str
    web_install_url: str
    deep_link_url: str

    def to_payload(self) -> dict[str, str]:
        return {
            "token": self.token,
            "manifest_url": self.manifest_url,
            "web_install_url": self.web_install_url,
            "deep_link_url": self.deep_link_url,
        }


class CatalogService:
    """Serve manifest, catalog, meta and stream payloads for a tenant config."""

    def __init__(
        self,
        settings: Settings,
        resolver: ChannelResolver,
        profiles: ProfileFetcher,
        feeds: FeedFetcher,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._profiles = profiles
        self._feeds = feeds

    @property
    def resolver(self) -> ChannelResolver:
        return self._resolver

    @property
    def feeds(self) -> FeedFetcher:
        return self._feeds

    def build_manifest(self, config: TenantConfig) -> dict[str, Any]:
        """Return the add-on manifest for ``config``."""

        name = self._settings.app_name
        description = "User-configured YouTube catalog"
        if config.low_quota:
            name = f"{name}{LOW_QUOTA_SUFFIX}"
            description = f"{description} • Low-quota mode (RSS)"
        return {
            "id": self._settings.addon_id,
            "version": "1.0.0",
            "name": name,
            "description": description,
            "catalogs": [
                {
                    "type": CATALOG_TYPE,
                    "id": CATALOG_ID,
                    "name": "YouTube Channels",
                    "extra": [{"name": "search", "isRequired": False}],
                }
            ],
            "resources": ["catalog", "meta", "stream"],
            "types": ["series", "movie"],
            "idPrefixes": [CHANNEL_PREFIX, VIDEO_PREFIX],
        }

    async def list_channels(
        self,
        config: TenantConfig,
        content_type: str,
        catalog_id: str,
        *,
        search: str | None = None,
    ) -> dict[str, Any]:
        """Return one catalog entry per configured channel, in config order.

        A non-blank ``search`` extra replaces the configured list with channel
        search hits for that query, so the entry count then follows the search
        results instead of the configuration.
        """

        if content_type != CATALOG_TYPE or catalog_id != CATALOG_ID:
            return {"metas": []}

        if search and search.strip():
            return {"metas": await self._search_metas(search)}

        entries = await asyncio.gather(
            *(self._channel_entry(raw) for raw in config.channels)
        )
        return {"metas": [entry for entry in entries if entry is not None]}

    async def channel_meta(self, config: TenantConfig, meta_id: str) -> dict[str, Any]:
        """Return the channel detail payload for ``meta_id``.

        Accepts canonical ids, ``ytc:``-prefixed ids and the base64url keys
        emitted for channels that could not be resolved at listing time.
        """

        prefix, key = split_catalog_id(meta_id)
        if prefix == VIDEO_PREFIX:
            # Video ids never name a channel; answer with the default meta.
            key = meta_id
            channel_id = None
        else:
            channel_id = await self._channel_id_for_key(key)

        title = f"Channel {channel_id or key}"
        poster: str | None = None
        videos: list[dict[str, object]] = []

        if channel_id:
            profile = await self._profiles.fetch(channel_id)
            if profile is not None:
                title = profile.display_name
                poster = profile.avatar_url

            if config.low_quota:
                feed = await self._feeds.fetch(channel_id)
                if feed is not None:
                    title = feed.title or title
                    videos = [item.to_video() for item in feed.items]
                    poster = poster or feed.first_thumbnail
                    logger.debug("Loaded %s videos for %s", len(videos), channel_id)
                else:
                    logger.warning("Feed unavailable for channel %s", channel_id)

        links: list[dict[str, str]] = []
        if channel_id:
            links.append(
                {
                    "name": "Channel on YouTube",
                    "category": "YouTube",
                    "url": self._channel_url(channel_id),
                }
            )

        if prefix is not None:
            response_id = meta_id
        else:
            response_id = f"{CHANNEL_PREFIX}{channel_id or key}"
        return {
            "meta": {
                "id": response_id,
                "type": CATALOG_TYPE,
                "name": title,
                "poster": poster or self._settings.placeholder_poster,
                "posterShape": "square",
                "videos": videos,
                "links": links,
            }
        }

    def video_streams(self, stream_id: str) -> dict[str, Any]:
        """Return an external "open on YouTube" stream for a video id."""

        prefix, video_id = split_catalog_id(stream_id)
        if prefix != VIDEO_PREFIX or not video_id:
            return {"streams": []}
        link = self._watch_url(video_id)
        return {
            "streams": [
                {
                    "name": "YouTube",
                    "title": "Open on YouTube",
                    "externalUrl": link,
                    "url": link,
                    "behaviorHints": {"openExternal": True, "notWebReady": True},
                }
            ]
        }

    def create_config(self, config: TenantConfig, base_url: str) -> ConfigLinks:
        """Encode ``config`` and build install links rooted at ``base_url``."""

        token = encode_config(config)
        base = base_url.rstrip("/")
        manifest_url = f"{base}/cfg/{token}/manifest.json"
        host_and_path = manifest_url.split("://", 1)[-1]
        return ConfigLinks(
            token=token,
            manifest_url=manifest_url,
            web_install_url=f"{self._settings.stremio_web_url}{quote(manifest_url, safe='')}",
            deep_link_url=f"stremio://{host_and_path}",
        )

    async def _channel_entry(self, raw: str) -> dict[str, Any] | None:
        try:
            channel_id = await self._resolver.resolve(raw)
            key = channel_id or to_b64url(raw)
            if raw.startswith("@"):
                name = raw
            else:
                name = f"Channel {shorten_id(channel_id or raw)}"
            poster = self._settings.placeholder_poster

            if channel_id:
                profile = await self._profiles.fetch(channel_id)
                if profile is not None:
                    name = profile.display_name or name
                if profile is not None and profile.avatar_url:
                    poster = profile.avatar_url
                else:
                    feed = await self._feeds.fetch(channel_id)
                    poster = self._feed_thumbnail(feed) or poster
            else:
                logger.info("Listing unresolved channel %r under its raw key", raw)

            return {
                "id": f"{CHANNEL_PREFIX}{key}",
                "type": CATALOG_TYPE,
                "name": name,
                "poster": poster,
                "posterShape": "square",
            }
        except Exception:
            logger.exception("Skipping catalog entry for %r", raw)
            return None

    async def _search_metas(self, query: str) -> list[dict[str, Any]]:
        hits = await self._resolver.search_channels(
            query, limit=self._settings.suggestion_limit
        )
        return [
            {
                "id": f"{CHANNEL_PREFIX}{hit.channel_id}",
                "type": CATALOG_TYPE,
                "name": hit.title,
                "poster": hit.thumbnail or self._settings.placeholder_poster,
                "posterShape": "square",
                "description": hit.description or hit.subscribers or None,
            }
            for hit in hits
        ]

    async def _channel_id_for_key(self, key: str) -> str | None:
        if is_channel_id(key):
            return key
        decoded = self._decode_raw_key(key)
        if decoded is not None and is_channel_id(decoded):
            return decoded
        return await self._resolver.resolve(decoded if decoded is not None else key)

    @staticmethod
    def _decode_raw_key(key: str) -> str | None:
        """Return the raw identifier behind a base64url listing key."""

        try:
            decoded = from_b64url(key)
        except ValueError:
            return None
        # Plain handles often happen to be valid base64; only accept exact
        # round trips of printable text.
        if not decoded.strip() or not decoded.isprintable() or to_b64url(decoded) != key:
            return None
        return decoded

    @staticmethod
    def _feed_thumbnail(feed: ChannelFeed | None) -> str | None:
        if feed is None:
            return None
        return feed.first_thumbnail

    def _channel_url(self, channel_id: str) -> str:
        return f"{self._settings.youtube_base_url}/channel/{channel_id}"

    def _watch_url(self, video_id: str) -> str:
        return f"{self._settings.youtube_base_url}/watch?v={quote(video_id, safe='')}"
