"""
Composition root for noexplorer.

SearchClient builds and owns exactly one instance of every component
(fetcher, circuit breaker, request queue, obfuscator, transport, sources,
aggregator, decoy scheduler) and the background tasks they run. Nothing is a
module-level singleton; two clients never share state.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Type

from noexplorer.aggregator import ResultAggregator
from noexplorer.config import ClientConfig
from noexplorer.fetchers.circuit_breaker import CircuitBreaker
from noexplorer.fetchers.http import HttpFetcher
from noexplorer.fetchers.request_queue import RequestQueue
from noexplorer.fetchers.transport import TransportClient
from noexplorer.models import FetchFn, HealthReport, PrivacyProfile, SearchFilters, SearchResponse
from noexplorer.privacy.dns import DoHResolver
from noexplorer.privacy.obfuscation import DecoyQueryScheduler, TrafficObfuscator
from noexplorer.privacy.user_agents import UserAgentRotator
from noexplorer.providers.base import SourceAdapter
from noexplorer.providers.duckduckgo import DuckDuckGoProvider
from noexplorer.providers.mwmbl import MwmblProvider
from noexplorer.providers.searxng import SearxngProvider

logger = logging.getLogger(__name__)


SOURCE_REGISTRY: Dict[str, Type[SourceAdapter]] = {
    "mwmbl": MwmblProvider,
    "searxng": SearxngProvider,
    "duckduckgo": DuckDuckGoProvider,
}


def _endpoints_for(name: str, config: ClientConfig) -> List[str]:
    if name == "mwmbl":
        return list(config.mwmbl_endpoints)
    if name == "searxng":
        return list(config.searxng_instances)
    if name == "duckduckgo":
        return [config.duckduckgo_url] if config.duckduckgo_url else []
    return []


def build_sources(config: ClientConfig, rng: random.Random) -> List[SourceAdapter]:
    """Instantiate enabled sources in configured order, skipping those without endpoints."""
    sources: List[SourceAdapter] = []
    for name in config.enabled_sources:
        endpoints = _endpoints_for(name, config)
        if not endpoints:
            logger.info("Source %s has no endpoints configured, skipping", name)
            continue
        sources.append(SOURCE_REGISTRY[name](
            endpoints,
            rng=rng,
            timeout_ms=config.source_timeout_ms,
        ))
    return sources


class SearchClient:
    """
    Public entry point.

    Usage:
        async with SearchClient(ClientConfig()) as client:
            response = await client.search("weather", page=1, limit=10)

    ``fetch`` replaces the network primitive (tests inject fakes here); ``rng``
    seeds every random choice, including the relevance fallback.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        fetch: Optional[FetchFn] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ClientConfig()
        self.rng = rng or random.Random()
        privacy = self.config.privacy

        self.resolver: Optional[DoHResolver] = None
        if privacy.dns_over_https and fetch is None:
            self.resolver = DoHResolver(provider=privacy.doh_provider)
            if privacy.custom_doh_url:
                self.resolver.set_custom_provider(privacy.custom_doh_url)

        self.fetcher: Optional[HttpFetcher] = None
        if fetch is None:
            self.fetcher = HttpFetcher(
                timeout_ms=self.config.transport.timeout_ms,
                user_agent=self.config.user_agent,
                resolver=self.resolver,
            )
            fetch = self.fetcher.fetch

        self.circuit_breaker = CircuitBreaker(self.config.circuit_breaker, clock=clock)
        self.queue: Optional[RequestQueue] = None
        if self.config.use_queue:
            self.queue = RequestQueue(
                fetch,
                self.config.rate_limit,
                circuit_breaker=self.circuit_breaker,
                rng=self.rng,
            )
        self.obfuscator = TrafficObfuscator(rng=self.rng)
        self.rotator = UserAgentRotator(rng=self.rng)
        self.transport = TransportClient(
            fetch,
            self.config.transport,
            queue=self.queue,
            obfuscator=self.obfuscator,
            rotator=self.rotator,
            profile=privacy,
            clock=clock,
        )
        self.sources = build_sources(self.config, self.rng)
        self.aggregator = ResultAggregator(
            self.transport,
            self.sources,
            self.config.aggregator,
            circuit_breaker=self.circuit_breaker,
            clock=clock,
        )
        self.decoys = DecoyQueryScheduler(fetch, self.config.decoy, obfuscator=self.obfuscator, rng=self.rng)
        self._started = False

    async def __aenter__(self) -> "SearchClient":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # ===================== Lifecycle =====================

    async def start(self) -> None:
        """Open the HTTP session and start background tasks."""
        if self._started:
            return
        if self.fetcher is not None:
            await self.fetcher.start()
        self.circuit_breaker.start()
        if self.queue is not None:
            self.queue.start()
        self.transport.start()
        if self.config.decoy.enabled or self.config.privacy.fake_queries:
            self.decoys.start()
        self._started = True
        logger.info(
            "Search client started with sources: %s",
            ", ".join(s.name for s in self.sources) or "(none)",
        )

    async def close(self) -> None:
        """Stop background tasks and release network resources."""
        await self.decoys.stop()
        if self.queue is not None:
            await self.queue.close()
        await self.transport.stop()
        await self.circuit_breaker.stop()
        if self.fetcher is not None:
            await self.fetcher.close()
        if self.resolver is not None:
            await self.resolver.close()
        self._started = False

    # ===================== Public API =====================

    async def search(
        self,
        query: str,
        page: int = 1,
        limit: int = 10,
        filters: Optional[SearchFilters] = None,
        profile: Optional[PrivacyProfile] = None,
    ) -> SearchResponse:
        return await self.aggregator.search(query, page=page, limit=limit, filters=filters, profile=profile)

    async def get_suggestions(self, query: str, profile: Optional[PrivacyProfile] = None) -> List[str]:
        return await self.aggregator.get_suggestions(query, profile=profile)

    async def check_health(self) -> HealthReport:
        return await self.aggregator.check_health()

    def get_stats(self) -> Dict[str, Any]:
        stats = self.aggregator.get_stats()
        stats["queue"] = self.queue.get_stats() if self.queue is not None else None
        stats["circuitBreaker"] = self.circuit_breaker.get_stats()
        stats["transportCacheSize"] = self.transport.cache_size
        stats["obfuscation"] = self.obfuscator.get_stats()
        stats["decoys"] = self.decoys.get_stats()
        return stats

    def start_decoy_traffic(self) -> None:
        self.decoys.start()

    async def stop_decoy_traffic(self) -> None:
        await self.decoys.stop()

    def clear_cache(self) -> None:
        self.aggregator.clear_cache()
        self.transport.clear_cache()


async def run_search(
    query: str,
    page: int = 1,
    limit: int = 10,
    config: Optional[ClientConfig] = None,
    filters: Optional[SearchFilters] = None,
) -> SearchResponse:
    """One-shot search with a client that lives for this call only."""
    async with SearchClient(config) as client:
        return await client.search(query, page=page, limit=limit, filters=filters)
