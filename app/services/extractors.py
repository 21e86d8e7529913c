"""Pure extraction helpers for YouTube page markup.

Everything here takes raw HTML (or an already decoded ``ytInitialData`` tree)
and returns plain values, so each historical page layout can be exercised
with fixture strings and swapped without touching the fetchers.
"""

from __future__ import annotations

import html
import json
import re
from typing import Any

from ..models import ChannelSuggestion
from ..utils import absolute_url, dig, text_of

CHANNEL_ID_PATTERN = re.compile(r"^UC[0-9A-Za-z_-]{20,}$")
CHANNEL_URL_PATTERN = re.compile(
    r"youtube\.com/channel/(UC[0-9A-Za-z_-]{20,})", re.IGNORECASE
)
CHANNEL_ID_MARKERS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"channelId"\s*:\s*"(UC[0-9A-Za-z_-]{20,})"'),
    re.compile(
        r'<meta\s+itemprop="(?:channelId|identifier)"\s+content="(UC[0-9A-Za-z_-]{20,})"',
        re.IGNORECASE,
    ),
)

# The page has shipped the blob both as a property of a larger object and as
# a top-level ``var`` assignment; the JSON itself is read with raw_decode.
INITIAL_DATA_MARKERS: tuple[re.Pattern[str], ...] = (
    re.compile(r'ytInitialData"\s*:\s*(?=\{)'),
    re.compile(r'(?:var\s+|window\["|window\.)ytInitialData"?\]?\s*=\s*(?=\{)'),
)

_DECODER = json.JSONDecoder()


def is_channel_id(value: str | None) -> bool:
    """Return ``True`` when ``value`` is a canonical ``UC…`` channel id."""

    return bool(value) and CHANNEL_ID_PATTERN.match(value or "") is not None


def channel_id_from_url(text: str) -> str | None:
    """Return the channel id embedded in a ``/channel/UC…`` URL."""

    match = CHANNEL_URL_PATTERN.search(text)
    return match.group(1) if match else None


def extract_channel_id(markup: str) -> str | None:
    """Scan a channel page for its embedded channel id marker."""

    for pattern in CHANNEL_ID_MARKERS:
        match = pattern.search(markup)
        if match:
            return match.group(1)
    return None


def extract_initial_data(markup: str) -> dict[str, Any] | None:
    """Decode the embedded ``ytInitialData`` object, whichever shape it uses."""

    for pattern in INITIAL_DATA_MARKERS:
        for match in pattern.finditer(markup):
            try:
                data, _ = _DECODER.raw_decode(markup, match.end())
            except ValueError:
                continue
            if isinstance(data, dict):
                return data
    return None


def extract_meta_property(markup: str, name: str) -> str | None:
    """Return the ``content`` of ``<meta property=name>`` if present."""

    escaped = re.escape(name)
    patterns = (
        rf'<meta\s+property="{escaped}"\s+content="([^"]*)"',
        rf'<meta\s+content="([^"]*)"\s+property="{escaped}"',
    )
    for pattern in patterns:
        match = re.search(pattern, markup, re.IGNORECASE)
        if match:
            value = html.unescape(match.group(1)).strip()
            return value or None
    return None


def best_thumbnail(thumbnails: Any) -> str | None:
    """Pick the largest thumbnail URL from a YouTube thumbnail list.

    Entries without dimensions rank by position; YouTube lists variants from
    smallest to largest.
    """

    if not isinstance(thumbnails, list):
        return None
    best_url: str | None = None
    best_rank: tuple[int, int] = (-1, -1)
    for position, entry in enumerate(thumbnails):
        url = absolute_url(dig(entry, "url"))
        if not url:
            continue
        width = dig(entry, "width", default=0)
        height = dig(entry, "height", default=0)
        area = width * height if isinstance(width, int) and isinstance(height, int) else 0
        rank = (area, position)
        if rank > best_rank:
            best_rank = rank
            best_url = url
    return best_url


def extract_avatar_url(data: Any) -> str | None:
    """Return the channel avatar from a channel page's ``ytInitialData``."""

    candidates = (
        dig(data, "header", "c4TabbedHeaderRenderer", "avatar", "thumbnails"),
        dig(
            data,
            "header",
            "pageHeaderRenderer",
            "content",
            "pageHeaderViewModel",
            "image",
            "decoratedAvatarViewModel",
            "avatar",
            "avatarViewModel",
            "image",
            "sources",
        ),
        dig(data, "metadata", "channelMetadataRenderer", "avatar", "thumbnails"),
    )
    for thumbnails in candidates:
        url = best_thumbnail(thumbnails)
        if url:
            return url
    return None


def parse_channel_renderers(data: Any, *, limit: int | None = None) -> list[ChannelSuggestion]:
    """Collect channel hits from a search results ``ytInitialData`` tree."""

    sections = dig(
        data,
        "contents",
        "twoColumnSearchResultsRenderer",
        "primaryContents",
        "sectionListRenderer",
        "contents",
        default=[],
    )
    results: list[ChannelSuggestion] = []
    if not isinstance(sections, list):
        return results
    for section in sections:
        items = dig(section, "itemSectionRenderer", "contents", default=[])
        if not isinstance(items, list):
            continue
        for item in items:
            renderer = dig(item, "channelRenderer")
            if not isinstance(renderer, dict):
                continue
            channel_id = renderer.get("channelId")
            title = dig(renderer, "title", "simpleText") or dig(
                renderer, "title", "runs", 0, "text"
            )
            if not isinstance(channel_id, str) or not channel_id or not title:
                continue
            results.append(
                ChannelSuggestion(
                    channel_id=channel_id,
                    title=str(title),
                    thumbnail=best_thumbnail(
                        dig(renderer, "thumbnail", "thumbnails")
                    ),
                    subscribers=text_of(renderer.get("subscriberCountText")),
                    description=text_of(renderer.get("descriptionSnippet")),
                )
            )
            if limit is not None and len(results) >= limit:
                return results
    return results
