"""Shared HTTP access to youtube.com pages and feeds."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)


class YouTubeClient:
    """Thin wrapper issuing bounded, browser-like requests to youtube.com.

    Every failure (timeouts, transport errors, non-200 statuses) is logged
    and reported as ``None``; callers never see an ``httpx`` exception.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._settings = settings
        self._client = http_client
        self._semaphore = asyncio.Semaphore(settings.fetch_concurrency)

    @property
    def base_url(self) -> str:
        return self._settings.youtube_base_url

    def handle_url(self, handle: str) -> str:
        """Return the profile page URL for an ``@handle``."""

        if not handle.startswith("@"):
            handle = f"@{handle}"
        return f"{self.base_url}/{quote(handle, safe='@._-')}"

    def channel_url(self, channel_id: str) -> str:
        return f"{self.base_url}/channel/{channel_id}"

    def watch_url(self, video_id: str) -> str:
        return f"{self.base_url}/watch?v={quote(video_id, safe='')}"

    async def fetch_page(
        self, url: str, *, params: Mapping[str, Any] | None = None
    ) -> str | None:
        """Return the HTML body of ``url`` or ``None`` on any failure."""

        response = await self._get(
            url,
            params=params,
            headers=self._settings.browser_headers,
            timeout=self._settings.page_timeout_seconds,
        )
        if response is None:
            return None
        return response.text

    async def fetch_feed(self, channel_id: str) -> bytes | None:
        """Return the raw Atom feed document for ``channel_id``."""

        response = await self._get(
            f"{self.base_url}/feeds/videos.xml",
            params={"channel_id": channel_id},
            headers={"User-Agent": self._settings.user_agent},
            timeout=self._settings.feed_timeout_seconds,
        )
        if response is None:
            return None
        return response.content

    async def _get(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None,
        headers: Mapping[str, str],
        timeout: float,
    ) -> httpx.Response | None:
        try:
            async with self._semaphore:
                response = await self._client.get(
                    url,
                    params=params,
                    headers=dict(headers),
                    timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
                    follow_redirects=True,
                )
            response.raise_for_status()
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            logger.warning("Refusing malformed YouTube URL %s: %s", url, exc)
            return None
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "YouTube request to %s returned HTTP %s",
                url,
                exc.response.status_code,
            )
            return None
        except httpx.HTTPError as exc:
            logger.warning(
                "YouTube request to %s failed: %s", url, exc.__class__.__name__
            )
            return None
        if response.status_code != 200:
            logger.warning(
                "YouTube request to %s returned unexpected HTTP %s",
                url,
                response.status_code,
            )
            return None
        return response
