"""Rewrite legacy ``?cfg=`` requests onto the ``/cfg/{token}/`` routes.

Older installs call ``/manifest.json``, ``/catalog/...``, ``/meta/...`` and
``/stream/...`` with the token as a query parameter, or with the full
manifest URL stuffed into another parameter. The middleware moves the token
into the path before routing so the handlers only ever see one convention.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit

from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

TOKEN_PARAM = "cfg"
EMBEDDED_URL_PARAMS: tuple[str, ...] = ("manifest", "addon", "transportUrl")

LEGACY_PATH_PATTERN = re.compile(
    r"^/(?:manifest\.json|(?:catalog|meta|stream)/[^/]+/.+\.json)$"
)
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
EMBEDDED_PATH_TOKEN = re.compile(r"/cfg/([A-Za-z0-9_-]+)(?:/|$)")


def _valid_token(value: str | None) -> str | None:
    if not value:
        return None
    candidate = value.strip()
    if TOKEN_PATTERN.match(candidate):
        return candidate
    return None


def token_from_embedded_url(url: str) -> str | None:
    """Pull a token out of a full manifest URL.

    Both ``https://host/cfg/<token>/manifest.json`` and
    ``https://host/manifest.json?cfg=<token>`` are understood.
    """

    for candidate in (url, unquote(url)):
        match = EMBEDDED_PATH_TOKEN.search(urlsplit(candidate).path)
        if match:
            return match.group(1)
        for key, value in parse_qsl(urlsplit(candidate).query):
            if key == TOKEN_PARAM:
                token = _valid_token(value)
                if token:
                    return token
    return None


def rewrite_legacy_request(path: str, query_string: str) -> tuple[str, str] | None:
    """Return the rewritten ``(path, query_string)`` or ``None`` if untouched."""

    if path.startswith("/cfg/") or not LEGACY_PATH_PATTERN.match(path):
        return None

    params = parse_qsl(query_string, keep_blank_values=True)
    token: str | None = None
    consumed: set[str] = set()

    for key, value in params:
        if key == TOKEN_PARAM:
            token = _valid_token(value)
            if token:
                consumed.add(key)
                break

    if token is None:
        for name in EMBEDDED_URL_PARAMS:
            for key, value in params:
                if key != name or not value:
                    continue
                token = token_from_embedded_url(value)
                if token:
                    consumed.update({key, TOKEN_PARAM})
                    break
            if token:
                break

    if token is None:
        return None

    remaining = [(key, value) for key, value in params if key not in consumed]
    return f"/cfg/{token}{path}", urlencode(remaining)


class LegacyConfigMiddleware:
    """ASGI middleware applying :func:`rewrite_legacy_request` to HTTP scopes."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            query_string = scope.get("query_string", b"").decode("latin-1")
            rewritten = rewrite_legacy_request(scope["path"], query_string)
            if rewritten is not None:
                new_path, new_query = rewritten
                prefix = new_path[: len(new_path) - len(scope["path"])]
                raw_path = scope.get("raw_path") or scope["path"].encode("utf-8")
                logger.info("Rewriting legacy request %s to %s", scope["path"], new_path)
                scope = dict(scope)
                scope["path"] = new_path
                scope["raw_path"] = prefix.encode("ascii") + raw_path
                scope["query_string"] = new_query.encode("latin-1")
        await self.app(scope, receive, send)
