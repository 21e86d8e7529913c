"""Pytest configuration and shared fakes for the YouTube upstream."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from app.cache import WriteOnceStore  # noqa: E402
from app.config import Settings  # noqa: E402
from app.services.catalog import CatalogService  # noqa: E402
from app.services.feeds import FeedFetcher  # noqa: E402
from app.services.profiles import ProfileFetcher  # noqa: E402
from app.services.resolver import ChannelResolver  # noqa: E402
from app.services.youtube import YouTubeClient  # noqa: E402

CHANNEL_A = "UCaaaaaaaaaaaaaaaaaaaaaa"
CHANNEL_B = "UCbbbbbbbbbbbbbbbbbbbbbb"


def handle_page(channel_id: str) -> str:
    """Profile page markup embedding the channel id marker."""

    return (
        "<html><head><title>Channel</title></head><body>"
        f'<script>var ytInitialData = {{"metadata": {{"channelMetadataRenderer": '
        f'{{"externalId": "{channel_id}"}}}}}};</script>'
        f'<script>ytcfg.set({{"channelId":"{channel_id}"}});</script>'
        "</body></html>"
    )


def channel_page(title: str, avatar: str | None = None, initial_data: dict | None = None) -> str:
    """Channel page markup with Open Graph tags and optional ``ytInitialData``."""

    parts = ["<html><head>", f'<meta property="og:title" content="{title}">']
    if avatar:
        parts.append(f'<meta property="og:image" content="{avatar}">')
    parts.append("</head><body>")
    if initial_data is not None:
        parts.append(f"<script>var ytInitialData = {json.dumps(initial_data)};</script>")
    parts.append("</body></html>")
    return "".join(parts)


def feed_document(title: str, entries: list[dict[str, str]]) -> str:
    """Atom feed shaped like ``/feeds/videos.xml``."""

    rendered = []
    for entry in entries:
        thumbnail = entry.get("thumbnail")
        media = (
            f'<media:group><media:thumbnail url="{thumbnail}" width="480" height="360"/></media:group>'
            if thumbnail
            else ""
        )
        rendered.append(
            "<entry>"
            f"<id>yt:video:{entry['id']}</id>"
            f"<yt:videoId>{entry['id']}</yt:videoId>"
            f"<title>{entry['title']}</title>"
            f'<link rel="alternate" href="https://www.youtube.com/watch?v={entry["id"]}"/>'
            f"<published>{entry.get('published', '2024-05-01T10:00:00+00:00')}</published>"
            f"{media}"
            "</entry>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015" '
        'xmlns:media="http://search.yahoo.com/mrss/" '
        'xmlns="http://www.w3.org/2005/Atom">'
        f"<title>{title}</title>"
        + "".join(rendered)
        + "</feed>"
    )


def search_data(hits: list[tuple[str, str]]) -> dict:
    """``ytInitialData`` tree for a channel-filtered search results page."""

    items = [
        {
            "channelRenderer": {
                "channelId": channel_id,
                "title": {"simpleText": title},
                "thumbnail": {
                    "thumbnails": [
                        {"url": f"//yt3.example/{channel_id}=s88", "width": 88, "height": 88},
                        {"url": f"//yt3.example/{channel_id}=s176", "width": 176, "height": 176},
                    ]
                },
                "subscriberCountText": {"simpleText": "1.2M subscribers"},
                "descriptionSnippet": {"runs": [{"text": "About "}, {"text": title}]},
            }
        }
        for channel_id, title in hits
    ]
    return {
        "contents": {
            "twoColumnSearchResultsRenderer": {
                "primaryContents": {
                    "sectionListRenderer": {
                        "contents": [{"itemSectionRenderer": {"contents": items}}]
                    }
                }
            }
        }
    }


@dataclass
class FakeYouTubeSite:
    """In-memory stand-in for youtube.com served through ``httpx.MockTransport``."""

    handles: dict[str, str] = field(default_factory=dict)
    channels: dict[str, str] = field(default_factory=dict)
    feeds: dict[str, str] = field(default_factory=dict)
    search_pages: dict[str, str] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body: str | None = None
        if path == "/feeds/videos.xml":
            body = self.feeds.get(request.url.params.get("channel_id", ""))
        elif path == "/results":
            body = self.search_pages.get(request.url.params.get("search_query", ""))
        elif path.startswith("/channel/"):
            body = self.channels.get(path.split("/")[2])
        elif path.startswith("/@"):
            body = self.handles.get(path[1:])
        if body is None:
            return httpx.Response(404, request=request, text="not found")
        return httpx.Response(200, request=request, text=body)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def build_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


def build_service(site: FakeYouTubeSite, settings: Settings | None = None) -> CatalogService:
    """Assemble a catalog service backed by ``site``."""

    resolved_settings = settings or build_settings()
    youtube = YouTubeClient(resolved_settings, site.client())
    return CatalogService(
        resolved_settings,
        ChannelResolver(youtube, WriteOnceStore()),
        ProfileFetcher(youtube, WriteOnceStore()),
        FeedFetcher(youtube),
    )


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def site() -> FakeYouTubeSite:
    return FakeYouTubeSite()
