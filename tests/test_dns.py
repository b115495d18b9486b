import socket
from typing import Any, Dict, List

import pytest

from noexplorer.errors import APIError, ErrorKind
from noexplorer.privacy.dns import DOH_PROVIDERS, MAX_FALLBACKS, DoHResolver, is_valid_ip

from conftest import FakeClock


def _answer(*ips: str, record_type: int = 1) -> Dict[str, Any]:
    return {"Status": 0, "Answer": [{"type": record_type, "data": ip} for ip in ips]}


class FakeDoH:
    """Per-provider-URL canned DoH responses."""

    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.calls: List[str] = []

    async def __call__(self, url: str, params: Dict[str, str], headers: Dict[str, str], timeout: float) -> Any:
        self.calls.append(url)
        assert headers["Accept"] == "application/dns-json"
        response = self.responses.get(url, APIError(ErrorKind.NETWORK, "unreachable"))
        if isinstance(response, BaseException):
            raise response
        return response


CLOUDFLARE = DOH_PROVIDERS["cloudflare"].url
QUAD9 = DOH_PROVIDERS["quad9"].url


async def test_resolves_through_active_provider() -> None:
    query = FakeDoH({CLOUDFLARE: _answer("93.184.216.34")})
    resolver = DoHResolver(query=query)
    assert await resolver.resolve_addresses("example.com") == ["93.184.216.34"]
    assert query.calls == [CLOUDFLARE]


async def test_falls_back_when_provider_fails() -> None:
    query = FakeDoH({
        CLOUDFLARE: APIError(ErrorKind.SERVER, "HTTP 500"),
        QUAD9: _answer("1.2.3.4"),
    })
    resolver = DoHResolver(query=query)
    assert await resolver.resolve_addresses("example.com") == ["1.2.3.4"]
    assert query.calls[0] == CLOUDFLARE
    assert QUAD9 in query.calls


async def test_nonzero_status_counts_as_failure() -> None:
    query = FakeDoH({CLOUDFLARE: {"Status": 3}, QUAD9: _answer("1.2.3.4")})
    resolver = DoHResolver(query=query)
    assert await resolver.resolve_addresses("example.com") == ["1.2.3.4"]


async def test_all_providers_failing_raises_network_error() -> None:
    query = FakeDoH({})
    resolver = DoHResolver(query=query)
    with pytest.raises(APIError) as excinfo:
        await resolver.resolve_addresses("example.com")
    assert excinfo.value.kind == ErrorKind.NETWORK
    assert len(query.calls) == 1 + MAX_FALLBACKS


async def test_answers_are_cached(clock: FakeClock) -> None:
    query = FakeDoH({CLOUDFLARE: _answer("5.6.7.8")})
    resolver = DoHResolver(query=query, cache_ttl_s=300, clock=clock)
    await resolver.resolve_addresses("Example.com")
    await resolver.resolve_addresses("example.com")
    assert len(query.calls) == 1

    clock.advance(301)
    await resolver.resolve_addresses("example.com")
    assert len(query.calls) == 2


async def test_non_address_answers_are_dropped() -> None:
    data = {
        "Status": 0,
        "Answer": [
            {"type": 5, "data": "alias.example.com."},
            {"type": 1, "data": "10.0.0.1"},
            {"type": 1, "data": "not-an-ip"},
        ],
    }
    resolver = DoHResolver(query=FakeDoH({CLOUDFLARE: data}))
    assert await resolver.resolve_addresses("example.com") == ["10.0.0.1"]


async def test_unsupported_record_type() -> None:
    resolver = DoHResolver(query=FakeDoH({}))
    with pytest.raises(APIError) as excinfo:
        await resolver.resolve_addresses("example.com", "MX")
    assert excinfo.value.kind == ErrorKind.VALIDATION


async def test_aiohttp_resolve_interface() -> None:
    resolver = DoHResolver(query=FakeDoH({CLOUDFLARE: _answer("93.184.216.34")}))
    hosts = await resolver.resolve("example.com", 443, socket.AF_INET)
    assert hosts == [{
        "hostname": "example.com",
        "host": "93.184.216.34",
        "port": 443,
        "family": socket.AF_INET,
        "proto": 0,
        "flags": socket.AI_NUMERICHOST,
    }]


async def test_resolve_ip_literal_skips_lookup() -> None:
    query = FakeDoH({})
    resolver = DoHResolver(query=query)
    hosts = await resolver.resolve("127.0.0.1", 80)
    assert hosts[0]["host"] == "127.0.0.1"
    assert query.calls == []


async def test_resolve_failure_raises_os_error() -> None:
    resolver = DoHResolver(query=FakeDoH({}))
    with pytest.raises(OSError):
        await resolver.resolve("example.com", 443, socket.AF_INET)


def test_provider_management() -> None:
    resolver = DoHResolver(query=FakeDoH({}))
    assert resolver.current_provider == DOH_PROVIDERS["cloudflare"]
    assert DOH_PROVIDERS["cloudflare"] not in resolver.fallback_providers

    assert resolver.set_provider("quad9")
    assert resolver.current_provider.name == "Quad9"
    assert not resolver.set_provider("nope")

    resolver.set_custom_provider("https://doh.example/dns-query")
    assert resolver.current_provider.url == "https://doh.example/dns-query"
    # High-privacy fallbacks come first
    privacies = [p.privacy for p in resolver.fallback_providers]
    assert privacies == sorted(privacies, key=lambda p: p != "high")


def test_is_valid_ip() -> None:
    assert is_valid_ip("::1")
    assert is_valid_ip("8.8.8.8")
    assert not is_valid_ip("dns.google")


async def test_benchmark_orders_providers_by_response_time(clock: FakeClock) -> None:
    latency_s = {CLOUDFLARE: 0.040, QUAD9: 0.010}
    calls: List[str] = []

    async def query(url: str, params: Dict[str, str], headers: Dict[str, str], timeout: float) -> Any:
        calls.append(url)
        clock.advance(latency_s.get(url, 0.100))
        if url in latency_s:
            return _answer("1.2.3.4")
        raise APIError(ErrorKind.NETWORK, "unreachable")

    resolver = DoHResolver(query=query, clock=clock)
    results = await resolver.benchmark("example.com")

    assert len(results) == len(DOH_PROVIDERS)
    assert sorted(calls) == sorted(p.url for p in DOH_PROVIDERS.values())
    assert [r["provider"] for r in results[:2]] == ["quad9", "cloudflare"]
    assert results[0]["responseTime"] == pytest.approx(10)
    assert [r["success"] for r in results] == [True, True] + [False] * (len(DOH_PROVIDERS) - 2)
