import random
from dataclasses import replace
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from backend.app.core.config import Settings, _parse_list
from backend.app.core.rate_limit import RateLimiter
from backend.app.main import create_app
from noexplorer.config import RateLimitConfig
from noexplorer.errors import APIError, ErrorKind
from noexplorer.models import PrivacyLevel, PrivacyProfile, ProxyType
from noexplorer.orchestrator import SearchClient

from conftest import FakeClock, FakeFetch, mwmbl_item

MWMBL = "https://api.mwmbl.org/search"
DDG = "https://api.duckduckgo.com/"


def _client_factory(fetch: FakeFetch):
    def factory(settings: Settings) -> SearchClient:
        config = replace(
            settings.to_client_config(),
            privacy=PrivacyProfile.disabled(),
            rate_limit=RateLimitConfig(max_requests_per_second=1000, max_retries=0),
        )
        return SearchClient(config, fetch=fetch, rng=random.Random(3))
    return factory


@pytest.fixture
def fetch() -> FakeFetch:
    return FakeFetch({
        MWMBL: [mwmbl_item(f"https://site{i}.com/", f"Site {i}", score=10 - i) for i in range(6)],
        DDG: {},
        "https://duckduckgo.com/ac/": ["we", ["weather", "web"]],
    })


@pytest.fixture
def api(fetch: FakeFetch) -> Iterator[TestClient]:
    app = create_app(client_factory=_client_factory(fetch))
    with TestClient(app) as client:
        yield client


def test_root(api: TestClient) -> None:
    body = api.get("/").json()
    assert body["docs"] == "/docs"
    assert body["version"] == "1.0.0"


def test_search_returns_camel_case_page(api: TestClient) -> None:
    resp = api.get("/api/search", params={"q": "weather", "limit": 4})
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalCount"] == 6
    assert body["hasMore"] is True
    assert body["page"] == 1
    assert len(body["results"]) == 4
    assert body["results"][0]["url"] == "https://site0.com/"
    assert "raw" not in body["results"][0]["metadata"]
    assert "error" not in body


def test_search_second_page(api: TestClient, fetch: FakeFetch) -> None:
    api.get("/api/search", params={"q": "weather", "limit": 4})
    resp = api.get("/api/search", params={"q": "weather", "limit": 4, "page": 2})
    body = resp.json()
    assert [r["url"] for r in body["results"]] == ["https://site4.com/", "https://site5.com/"]
    assert body["hasMore"] is False
    assert len(fetch.calls_to(MWMBL)) == 1


def test_search_domain_filter(api: TestClient) -> None:
    body = api.get("/api/search", params={"q": "weather", "domain": "site2.com"}).json()
    assert [r["domain"] for r in body["results"]] == ["site2.com"]


def test_search_validation(api: TestClient) -> None:
    assert api.get("/api/search", params={"q": ""}).status_code == 422
    assert api.get("/api/search", params={"q": "x", "page": 0}).status_code == 422
    assert api.get("/api/search", params={"q": "x", "limit": 51}).status_code == 422


def test_search_degrades_when_sources_fail(fetch: FakeFetch) -> None:
    fetch.routes[MWMBL] = APIError(ErrorKind.SERVER, "HTTP 503", status=503)
    fetch.routes["https://mwmbl.org/"] = APIError(ErrorKind.SERVER, "HTTP 503", status=503)
    fetch.routes[DDG] = APIError(ErrorKind.SERVER, "HTTP 503", status=503)
    app = create_app(client_factory=_client_factory(fetch))
    with TestClient(app) as client:
        resp = client.get("/api/search", params={"q": "weather"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["results"] == []
    assert body["totalCount"] == 0
    assert body["error"]["kind"] == "server_error"


def test_suggestions(api: TestClient) -> None:
    body = api.get("/api/suggestions", params={"q": "we"}).json()
    assert body == {"query": "we", "suggestions": ["weather", "web"]}
    assert api.get("/api/suggestions", params={"q": "w"}).json()["suggestions"] == []


def test_health_and_stats(api: TestClient) -> None:
    health = api.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["checks"]["cache"] is True

    api.get("/api/search", params={"q": "weather"})
    stats = api.get("/api/stats").json()
    assert stats["totalSearches"] == 1
    assert "circuitBreaker" in stats


def test_inbound_rate_limit(api: TestClient) -> None:
    api.app.state.search_limiter = RateLimiter(requests_per_window=2, window_seconds=60)
    assert api.get("/api/search", params={"q": "a"}).status_code == 200
    assert api.get("/api/search", params={"q": "b"}).status_code == 200
    resp = api.get("/api/search", params={"q": "c"})
    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) >= 1


# ----------------------------- settings -----------------------------

def test_parse_list_formats() -> None:
    assert _parse_list('["a", "b"]') == ["a", "b"]
    assert _parse_list("['a', 'b']") == ["a", "b"]
    assert _parse_list("a, b ,") == ["a", "b"]
    assert _parse_list("single") == ["single"]
    assert _parse_list("") == []
    assert _parse_list(None) == []


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOEXPLORER_ENABLED_SOURCES", "mwmbl,searxng")
    monkeypatch.setenv("NOEXPLORER_SEARXNG_INSTANCES", "https://searx.example.org")
    monkeypatch.setenv("NOEXPLORER_CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("NOEXPLORER_PRIVACY_LEVEL", "maximum")
    monkeypatch.setenv("NOEXPLORER_PROXY_URL", "http://proxy:8080")

    settings = Settings()
    assert settings.enabled_sources == ["mwmbl", "searxng"]
    assert settings.cors_origins_list == ["https://a.example", "https://b.example"]

    config = settings.to_client_config()
    assert config.enabled_sources == ("mwmbl", "searxng")
    assert config.searxng_instances == ("https://searx.example.org",)
    assert config.privacy.level == PrivacyLevel.MAXIMUM
    assert config.privacy.proxy_type == ProxyType.HTTP
    assert config.aggregator.max_limit == settings.max_results_per_page


def test_rate_limiter_window() -> None:
    clock = FakeClock()
    limiter = RateLimiter(requests_per_window=1, window_seconds=10, clock=clock)
    assert limiter.check("1.2.3.4")
    assert not limiter.check("1.2.3.4")
    assert limiter.check("5.6.7.8")
    assert limiter.get_retry_after("1.2.3.4") == 11
    clock.advance(10.5)
    assert limiter.check("1.2.3.4")


def test_rate_limiter_forgets_idle_clients() -> None:
    clock = FakeClock()
    limiter = RateLimiter(requests_per_window=5, window_seconds=10, clock=clock)
    for i in range(100):
        assert limiter.check(f"10.0.0.{i}")
    assert len(limiter) == 100

    clock.advance(11)
    assert limiter.check("10.0.1.1")
    assert len(limiter) == 1
    assert limiter.get_retry_after("10.0.0.1") is None
