"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any
from urllib.parse import parse_qsl

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .cache import WriteOnceStore
from .codec import TenantConfig, decode_config
from .config import settings
from .legacy import LegacyConfigMiddleware
from .services.catalog import CatalogService
from .services.extractors import is_channel_id
from .services.feeds import FeedFetcher
from .services.profiles import ProfileFetcher
from .services.resolver import ChannelResolver
from .services.youtube import YouTubeClient
from .utils import shorten_id

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate"}

app: FastAPI


def build_catalog_service(http_client: httpx.AsyncClient) -> CatalogService:
    """Wire the resolver, fetchers and caches around one HTTP client."""

    youtube = YouTubeClient(settings, http_client)
    return CatalogService(
        settings,
        ChannelResolver(youtube, WriteOnceStore()),
        ProfileFetcher(youtube, WriteOnceStore()),
        FeedFetcher(youtube),
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    youtube_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(settings.page_timeout_seconds, connect=5.0),
        )
    )
    fastapi_app.state.catalog_service = build_catalog_service(youtube_client)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="User-configured YouTube channel catalogs for Stremio",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    fastapi_app.add_middleware(LegacyConfigMiddleware)

    register_routes(fastapi_app)
    return fastapi_app


def get_catalog_service(app: FastAPI) -> CatalogService:
    service = getattr(app.state, "catalog_service", None)
    if not isinstance(service, CatalogService):
        raise RuntimeError("Catalog service not initialised")
    return service


def _require_config(token: str) -> TenantConfig:
    config = decode_config(token)
    if config is None:
        raise HTTPException(
            status_code=400,
            detail="Invalid configuration token",
            headers=NO_STORE_HEADERS,
        )
    return config


def _protocol_response(payload: dict[str, Any]) -> JSONResponse:
    return JSONResponse(payload, headers=NO_STORE_HEADERS)


def register_routes(fastapi_app: FastAPI) -> None:
    async def _catalog_endpoint(
        token: str,
        content_type: str,
        catalog_id: str,
        *,
        extra: str | None = None,
    ) -> JSONResponse:
        config = _require_config(token)
        service = get_catalog_service(fastapi_app)
        extras = dict(parse_qsl(extra or "", keep_blank_values=True))
        payload = await service.list_channels(
            config, content_type, catalog_id, search=extras.get("search")
        )
        return _protocol_response(payload)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/cfg/{token}/manifest.json")
    async def manifest(token: str) -> JSONResponse:
        config = _require_config(token)
        service = get_catalog_service(fastapi_app)
        return _protocol_response(service.build_manifest(config))

    @fastapi_app.get("/cfg/{token}/catalog/{content_type}/{catalog_id}.json")
    async def catalog(token: str, content_type: str, catalog_id: str) -> JSONResponse:
        return await _catalog_endpoint(token, content_type, catalog_id)

    @fastapi_app.get(
        "/cfg/{token}/catalog/{content_type}/{catalog_id}/{extra}.json"
    )
    async def catalog_with_extra(
        token: str, content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(token, content_type, catalog_id, extra=extra)

    @fastapi_app.get("/cfg/{token}/meta/{content_type}/{meta_id}.json")
    async def meta(token: str, content_type: str, meta_id: str) -> JSONResponse:
        config = _require_config(token)
        service = get_catalog_service(fastapi_app)
        return _protocol_response(await service.channel_meta(config, meta_id))

    @fastapi_app.get("/cfg/{token}/stream/{content_type}/{stream_id}.json")
    async def stream(token: str, content_type: str, stream_id: str) -> JSONResponse:
        _require_config(token)
        service = get_catalog_service(fastapi_app)
        return _protocol_response(service.video_streams(stream_id))

    # Reached only when the legacy middleware found no token to move into the path.
    @fastapi_app.get("/manifest.json")
    @fastapi_app.get("/catalog/{content_type}/{catalog_id}.json")
    @fastapi_app.get("/catalog/{content_type}/{catalog_id}/{extra}.json")
    @fastapi_app.get("/meta/{content_type}/{item_id}.json")
    @fastapi_app.get("/stream/{content_type}/{item_id}.json")
    async def legacy_without_token() -> JSONResponse:
        raise HTTPException(
            status_code=400,
            detail="Missing configuration token",
            headers=NO_STORE_HEADERS,
        )

    @fastapi_app.post("/create-config")
    async def create_config(request: Request) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        try:
            payload = await request.json()
        except ValueError as exc:
            # Covers malformed JSON and bodies that are not UTF-8.
            raise HTTPException(status_code=400, detail="Invalid payload") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")

        try:
            config = TenantConfig.model_validate(
                {
                    "channels": payload.get("channels") or [],
                    "lowQuota": payload.get("lowQuota"),
                }
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

        links = service.create_config(config, _public_base_url(request))
        logger.info("Created config token for %s channels", len(config.channels))
        return JSONResponse(links.to_payload())

    @fastapi_app.get("/suggest")
    async def suggest(query: str = "") -> JSONResponse:
        text = query.strip()
        if not text:
            raise HTTPException(status_code=400, detail="missing query")
        service = get_catalog_service(fastapi_app)
        hits = await service.resolver.search_channels(
            text, limit=settings.suggestion_limit
        )
        return JSONResponse(
            {"query": text, "suggestions": [hit.to_payload() for hit in hits]}
        )

    @fastapi_app.get("/resolve")
    async def resolve(
        raw_input: str = Query(default="", alias="input"),
    ) -> JSONResponse:
        if not raw_input.strip():
            raise HTTPException(status_code=400, detail="missing input")
        service = get_catalog_service(fastapi_app)
        outcome = await service.resolver.lookup(raw_input, limit=settings.suggestion_limit)
        if outcome.status == "found" and outcome.channel_id:
            feed = await service.feeds.fetch(outcome.channel_id)
            body: dict[str, Any] = {"channelId": outcome.channel_id}
            if feed is not None:
                body["title"] = feed.title or f"Channel {shorten_id(outcome.channel_id)}"
                body["thumbnail"] = feed.first_thumbnail
            else:
                body["title"] = f"Channel {shorten_id(outcome.channel_id)}"
            return JSONResponse(body)
        if outcome.status == "ambiguous":
            return JSONResponse(
                {
                    "error": "ambiguous",
                    "suggestions": [hit.to_payload() for hit in outcome.suggestions],
                },
                status_code=404,
            )
        return JSONResponse({"error": "channel not found"}, status_code=404)

    @fastapi_app.get("/feed")
    async def feed(
        channel_id: str = Query(default="", alias="channelId"),
    ) -> JSONResponse:
        if not is_channel_id(channel_id):
            raise HTTPException(status_code=400, detail="invalid channelId")
        service = get_catalog_service(fastapi_app)
        channel_feed = await service.feeds.fetch(channel_id)
        if channel_feed is None:
            return JSONResponse({"error": "rss_fetch_failed"}, status_code=502)
        return JSONResponse(
            {
                "channelId": channel_id,
                "videos": [item.to_payload() for item in channel_feed.items],
            }
        )


def _public_base_url(request: Request) -> str:
    if settings.public_base_url:
        return str(settings.public_base_url).rstrip("/")
    return _resolve_external_base(request)


def _resolve_external_base(request: Request) -> str:
    headers = request.headers
    scheme = _first_forwarded_value(headers.get("x-forwarded-proto")) or request.url.scheme

    host = _first_forwarded_value(headers.get("x-forwarded-host"))
    if not host:
        host_header = headers.get("host")
        host = _first_forwarded_value(host_header) if host_header else None
    if not host:
        host = request.url.netloc

    port = _first_forwarded_value(headers.get("x-forwarded-port"))
    if port and ":" not in host:
        default_port = "443" if scheme == "https" else "80"
        if port != default_port:
            host = f"{host}:{port}"

    origin = f"{scheme}://{host}".rstrip("/")

    prefix = (
        _first_forwarded_value(headers.get("x-forwarded-prefix"))
        or request.scope.get("root_path")
        or ""
    )
    if prefix and not prefix.startswith("/"):
        prefix = f"/{prefix}"
    prefix = prefix.rstrip("/")

    return f"{origin}{prefix}" if prefix else origin


def _first_forwarded_value(header_value: str | None) -> str | None:
    if not header_value:
        return None
    return header_value.split(",", 1)[0].strip()


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
