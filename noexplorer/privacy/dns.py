"""
DNS-over-HTTPS resolver.

Resolves hostnames through a JSON DoH provider instead of the system resolver,
with fallbacks and a short response cache. ``DoHResolver`` implements
aiohttp's resolver interface, so it can be handed to a ``TCPConnector`` and
every outgoing request resolves through it.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp
from aiohttp.abc import AbstractResolver

from noexplorer.errors import APIError, ErrorKind, classify_exception

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DoHProvider:
    name: str
    url: str
    location: str = "Global"
    privacy: str = "high"

    @property
    def supports_tls(self) -> bool:
        return self.url.startswith("https://")


DOH_PROVIDERS: Dict[str, DoHProvider] = {
    "cloudflare": DoHProvider("Cloudflare", "https://1.1.1.1/dns-query"),
    "quad9": DoHProvider("Quad9", "https://9.9.9.9/dns-query"),
    "opendns": DoHProvider("OpenDNS", "https://doh.opendns.com/dns-query", location="US", privacy="medium"),
    "adguard": DoHProvider("AdGuard DNS", "https://dns.adguard.com/dns-query"),
    "mullvad": DoHProvider("Mullvad DNS", "https://doh.mullvad.net/dns-query", location="Sweden"),
    "nextdns": DoHProvider("NextDNS", "https://dns.nextdns.io/"),
}

RECORD_TYPES: Dict[str, int] = {"A": 1, "AAAA": 28}
MAX_FALLBACKS = 3

# (url, params, headers, timeout_s) -> parsed JSON body
QueryFn = Callable[[str, Dict[str, str], Dict[str, str], float], Awaitable[Any]]


def is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


class DoHResolver(AbstractResolver):
    """
    JSON DNS-over-HTTPS resolver with provider fallback.

    The provider queries go through their own aiohttp session (or ``query``
    when injected), so resolving a name never recurses into this resolver.
    """

    USER_AGENT = "Mozilla/5.0 (compatible; DNSResolver/1.0)"

    def __init__(
        self,
        provider: str = "cloudflare",
        cache_ttl_s: float = 300,
        timeout_s: float = 5,
        query: Optional[QueryFn] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache_ttl_s = cache_ttl_s
        self.timeout_s = timeout_s
        self._query = query
        self._clock = clock
        self._session: Optional[aiohttp.ClientSession] = None
        self._cache: Dict[Tuple[str, str], Tuple[float, List[str]]] = {}
        self._active = DOH_PROVIDERS.get(provider, DOH_PROVIDERS["cloudflare"])
        self._fallbacks = self._fallbacks_for(self._active)

    @staticmethod
    def _fallbacks_for(active: DoHProvider) -> List[DoHProvider]:
        others = [p for p in DOH_PROVIDERS.values() if p != active]
        # High-privacy providers first; sort is stable within each group
        return sorted(others, key=lambda p: p.privacy != "high")

    # ===================== Provider management =====================

    @property
    def current_provider(self) -> DoHProvider:
        return self._active

    @property
    def fallback_providers(self) -> List[DoHProvider]:
        return list(self._fallbacks)

    def providers(self) -> Dict[str, DoHProvider]:
        return dict(DOH_PROVIDERS)

    def set_provider(self, provider_id: str) -> bool:
        """Switch to a built-in provider. Returns False for unknown ids."""
        provider = DOH_PROVIDERS.get(provider_id)
        if provider is None:
            return False
        self._active = provider
        self._fallbacks = self._fallbacks_for(provider)
        return True

    def set_custom_provider(self, url: str, name: str = "Custom") -> None:
        self._active = DoHProvider(name, url, location="Unknown", privacy="medium")
        self._fallbacks = self._fallbacks_for(self._active)

    def clear_cache(self) -> None:
        self._cache.clear()

    # ===================== Resolution =====================

    async def resolve_addresses(self, domain: str, record_type: str = "A") -> List[str]:
        """
        Resolve ``domain`` to IP address strings.

        Tries the active provider and then up to three fallbacks; raises a
        network APIError when all of them fail.
        """
        record_type = record_type.upper()
        if record_type not in RECORD_TYPES:
            raise APIError(ErrorKind.VALIDATION, f"Unsupported record type: {record_type}")

        key = (domain.lower(), record_type)
        cached = self._cache.get(key)
        if cached is not None:
            stored_at, addresses = cached
            if self._clock() - stored_at <= self.cache_ttl_s:
                return list(addresses)
            del self._cache[key]

        for provider in [self._active] + self._fallbacks[:MAX_FALLBACKS]:
            try:
                data = await self._query_provider(provider, domain, record_type)
            except APIError as e:
                logger.warning("DNS resolution via %s failed: %s", provider.name, e)
                continue
            addresses = self._extract_addresses(data)
            self._cache[key] = (self._clock(), addresses)
            return list(addresses)

        raise APIError(
            ErrorKind.NETWORK,
            f"DNS resolution failed for {domain} with all providers",
            status=0,
        )

    async def _query_provider(self, provider: DoHProvider, domain: str, record_type: str) -> Dict[str, Any]:
        params = {"name": domain, "type": str(RECORD_TYPES[record_type])}
        headers = {"Accept": "application/dns-json", "User-Agent": self.USER_AGENT}
        try:
            if self._query is not None:
                data = await self._query(provider.url, params, headers, self.timeout_s)
            else:
                data = await self._http_query(provider.url, params, headers)
        except APIError:
            raise
        except Exception as e:
            raise classify_exception(e, provider.url) from e

        if not isinstance(data, dict):
            raise APIError(ErrorKind.PARSE, "DNS response is not an object", endpoint=provider.url)
        if data.get("Status") != 0:
            raise APIError(
                ErrorKind.SERVER,
                f"DNS query error: Status {data.get('Status')}",
                endpoint=provider.url,
            )
        return data

    async def _http_query(self, url: str, params: Dict[str, str], headers: Dict[str, str]) -> Any:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        async with self._session.get(url, params=params, headers=headers, timeout=timeout) as resp:
            if resp.status >= 400:
                raise APIError(
                    ErrorKind.SERVER if resp.status >= 500 else ErrorKind.CLIENT,
                    f"DNS query failed: {resp.status}",
                    status=resp.status,
                    endpoint=url,
                )
            return await resp.json(content_type=None)

    @staticmethod
    def _extract_addresses(data: Dict[str, Any]) -> List[str]:
        answers = data.get("Answer") or []
        out: List[str] = []
        for answer in answers:
            if not isinstance(answer, dict):
                continue
            if answer.get("type") not in RECORD_TYPES.values():
                continue
            value = str(answer.get("data") or "")
            if is_valid_ip(value):
                out.append(value)
        return out

    async def benchmark(self, domain: str = "google.com") -> List[Dict[str, Any]]:
        """Time one A query against every built-in provider, fastest first."""
        results = []
        for provider_id, provider in DOH_PROVIDERS.items():
            start = self._clock()
            try:
                await self._query_provider(provider, domain, "A")
                success = True
            except APIError:
                success = False
            results.append({
                "provider": provider_id,
                "responseTime": (self._clock() - start) * 1000,
                "success": success,
            })
        return sorted(results, key=lambda r: r["responseTime"])

    # ===================== aiohttp resolver interface =====================

    async def resolve(self, host: str, port: int = 0, family: int = socket.AF_INET) -> List[Dict[str, Any]]:
        if is_valid_ip(host):
            addresses = [host]
        else:
            if family == socket.AF_INET6:
                types = ["AAAA"]
            elif family == socket.AF_INET:
                types = ["A"]
            else:
                types = ["A", "AAAA"]
            addresses = []
            for record_type in types:
                try:
                    addresses.extend(await self.resolve_addresses(host, record_type))
                except APIError as e:
                    raise OSError(f"DNS lookup failed for {host}: {e}") from e
                if addresses:
                    break
            if not addresses:
                raise OSError(f"DNS lookup returned no addresses for {host}")

        return [
            {
                "hostname": host,
                "host": address,
                "port": port,
                "family": socket.AF_INET6 if ":" in address else socket.AF_INET,
                "proto": 0,
                "flags": socket.AI_NUMERICHOST,
            }
            for address in addresses
        ]

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
