from __future__ import annotations

import json
from urllib.parse import quote

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.codec import TenantConfig, decode_config, encode_config, to_b64url
from app.legacy import LegacyConfigMiddleware
from app.main import register_routes
from conftest import (
    CHANNEL_A,
    CHANNEL_B,
    FakeYouTubeSite,
    build_service,
    channel_page,
    feed_document,
    handle_page,
    search_data,
)

NO_STORE = "no-store, no-cache, must-revalidate"


def _build_app(site: FakeYouTubeSite) -> FastAPI:
    app = FastAPI()
    app.add_middleware(LegacyConfigMiddleware)
    register_routes(app)
    app.state.catalog_service = build_service(site)
    return app


def _token(*channels: str, low_quota: bool = True) -> str:
    return encode_config(TenantConfig.from_channels(channels, low_quota=low_quota))


def test_manifest_is_served_without_caching(site: FakeYouTubeSite) -> None:
    app = _build_app(site)

    with TestClient(app) as client:
        response = client.get(f"/cfg/{_token('@a')}/manifest.json")

    assert response.status_code == 200
    assert response.headers["cache-control"] == NO_STORE
    payload = response.json()
    assert payload["resources"] == ["catalog", "meta", "stream"]
    assert payload["name"].endswith("Low-quota")


def test_invalid_tokens_are_client_errors(site: FakeYouTubeSite) -> None:
    app = _build_app(site)

    with TestClient(app) as client:
        responses = [
            client.get("/cfg/not-a-token/manifest.json"),
            client.get("/cfg/not-a-token/catalog/series/youtube-user.json"),
            client.get("/cfg/not-a-token/meta/series/ytc:abc.json"),
            client.get("/cfg/not-a-token/stream/movie/ytv:abc.json"),
        ]

    for response in responses:
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid configuration token"}
        assert response.headers["cache-control"] == NO_STORE


def test_catalog_and_meta_routes(site: FakeYouTubeSite) -> None:
    site.channels[CHANNEL_A] = channel_page("Alpha", avatar="https://yt3.example/alpha")
    site.feeds[CHANNEL_A] = feed_document("Alpha", [{"id": "vid0000000a", "title": "Clip"}])
    app = _build_app(site)
    token = _token(CHANNEL_A)

    with TestClient(app) as client:
        catalog = client.get(f"/cfg/{token}/catalog/series/youtube-user.json")
        meta = client.get(f"/cfg/{token}/meta/series/ytc:{CHANNEL_A}.json")
        stream = client.get(f"/cfg/{token}/stream/movie/ytv:vid0000000a.json")

    assert catalog.status_code == 200
    assert catalog.headers["cache-control"] == NO_STORE
    assert [entry["name"] for entry in catalog.json()["metas"]] == ["Alpha"]
    assert meta.json()["meta"]["videos"][0]["id"] == "ytv:vid0000000a"
    assert stream.json()["streams"][0]["externalUrl"].endswith("watch?v=vid0000000a")


def test_catalog_search_extra(site: FakeYouTubeSite) -> None:
    data = search_data([(CHANNEL_B, "Beta")])
    site.search_pages["beta"] = f"<script>var ytInitialData = {json.dumps(data)};</script>"
    app = _build_app(site)

    with TestClient(app) as client:
        response = client.get(f"/cfg/{_token()}/catalog/series/youtube-user/search=beta.json")

    assert response.status_code == 200
    assert [entry["id"] for entry in response.json()["metas"]] == [f"ytc:{CHANNEL_B}"]


def test_legacy_query_token_is_rewritten(site: FakeYouTubeSite) -> None:
    site.channels[CHANNEL_A] = channel_page("Alpha", avatar="https://yt3.example/alpha")
    app = _build_app(site)
    token = _token(CHANNEL_A)

    with TestClient(app) as client:
        legacy = client.get("/catalog/series/youtube-user.json", params={"cfg": token})
        canonical = client.get(f"/cfg/{token}/catalog/series/youtube-user.json")

    assert legacy.status_code == 200
    assert legacy.json() == canonical.json()


def test_legacy_embedded_manifest_url_is_rewritten(site: FakeYouTubeSite) -> None:
    app = _build_app(site)
    token = _token("@a", low_quota=False)
    embedded = quote(f"https://addon.example/cfg/{token}/manifest.json", safe="")

    with TestClient(app) as client:
        legacy = client.get(f"/manifest.json?manifest={embedded}")
        canonical = client.get(f"/cfg/{token}/manifest.json")

    assert legacy.status_code == 200
    assert legacy.json() == canonical.json()
    assert legacy.headers["cache-control"] == NO_STORE


def test_legacy_routes_without_token_are_rejected(site: FakeYouTubeSite) -> None:
    app = _build_app(site)

    with TestClient(app) as client:
        manifest = client.get("/manifest.json")
        stream = client.get("/stream/movie/ytv:abc.json?cfg=***")

    assert manifest.status_code == 400
    assert manifest.json() == {"detail": "Missing configuration token"}
    assert stream.status_code == 400


def test_create_config_returns_install_links(site: FakeYouTubeSite) -> None:
    app = _build_app(site)

    with TestClient(app) as client:
        response = client.post(
            "/create-config", json={"channels": ["@a", "  ", "@b"], "lowQuota": False}
        )
        rejected = client.post("/create-config", json=["@a"])

    assert response.status_code == 200
    payload = response.json()
    config = decode_config(payload["token"])
    assert config is not None
    assert config.channels == ["@a", "@b"]
    assert config.low_quota is False
    assert payload["manifest_url"] == f"http://testserver/cfg/{payload['token']}/manifest.json"
    assert payload["deep_link_url"].startswith("stremio://testserver/cfg/")
    assert rejected.status_code == 400


def test_create_config_defaults_to_low_quota(site: FakeYouTubeSite) -> None:
    app = _build_app(site)

    with TestClient(app) as client:
        response = client.post("/create-config", json={"channels": ["@a"]})

    config = decode_config(response.json()["token"])
    assert config is not None and config.low_quota is True


def test_resolve_endpoint_reports_found_ambiguous_and_missing(site: FakeYouTubeSite) -> None:
    site.handles["@alpha"] = handle_page(CHANNEL_A)
    site.feeds[CHANNEL_A] = feed_document(
        "Alpha", [{"id": "vid0000000a", "title": "Clip", "thumbnail": "https://i.example/a.jpg"}]
    )
    data = search_data([(CHANNEL_B, "Beta Show")])
    site.search_pages["beta show"] = f"<script>var ytInitialData = {json.dumps(data)};</script>"
    app = _build_app(site)

    with TestClient(app) as client:
        found = client.get("/resolve", params={"input": "@alpha"})
        ambiguous = client.get("/resolve", params={"input": "beta show"})
        missing = client.get("/resolve", params={"input": "nobody"})
        blank = client.get("/resolve")

    assert found.status_code == 200
    assert found.json() == {
        "channelId": CHANNEL_A,
        "title": "Alpha",
        "thumbnail": "https://i.example/a.jpg",
    }
    assert ambiguous.status_code == 404
    assert ambiguous.json()["error"] == "ambiguous"
    assert ambiguous.json()["suggestions"][0]["channelId"] == CHANNEL_B
    assert missing.status_code == 404
    assert missing.json() == {"error": "channel not found"}
    assert blank.status_code == 400


def test_suggest_and_feed_endpoints(site: FakeYouTubeSite) -> None:
    data = search_data([(CHANNEL_A, "Alpha")])
    site.search_pages["alpha"] = f"<script>var ytInitialData = {json.dumps(data)};</script>"
    site.feeds[CHANNEL_A] = feed_document("Alpha", [{"id": "vid0000000a", "title": "Clip"}])
    app = _build_app(site)

    with TestClient(app) as client:
        suggest = client.get("/suggest", params={"query": "alpha"})
        feed = client.get("/feed", params={"channelId": CHANNEL_A})
        bad_feed = client.get("/feed", params={"channelId": "nope"})
        missing_feed = client.get("/feed", params={"channelId": CHANNEL_B})

    assert suggest.json()["suggestions"][0]["title"] == "Alpha"
    assert feed.json()["videos"][0]["id"] == "vid0000000a"
    assert bad_feed.status_code == 400
    assert missing_feed.status_code == 502
    assert missing_feed.json() == {"error": "rss_fetch_failed"}


def test_meta_route_survives_malformed_channel_urls(site: FakeYouTubeSite) -> None:
    app = _build_app(site)
    raw = "https://www.youtube.com:notaport/@x"
    token = _token(raw)

    with TestClient(app) as client:
        meta = client.get(f"/cfg/{token}/meta/series/ytc:{to_b64url(raw)}.json")
        resolved = client.get("/resolve", params={"input": raw})

    assert meta.status_code == 200
    assert meta.json()["meta"]["videos"] == []
    assert meta.headers["cache-control"] == NO_STORE
    assert resolved.status_code == 404


def test_create_config_rejects_unreadable_bodies(site: FakeYouTubeSite) -> None:
    app = _build_app(site)

    with TestClient(app) as client:
        binary = client.post(
            "/create-config",
            content=b"\xff\xfe{",
            headers={"content-type": "application/json"},
        )
        broken = client.post(
            "/create-config",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

    assert binary.status_code == 400
    assert binary.json() == {"detail": "Invalid payload"}
    assert broken.status_code == 400
