"""
Result aggregation: fan a query out to every source, merge, rank, page.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from noexplorer.config import AggregatorConfig
from noexplorer.dedupe import DedupeEngine
from noexplorer.errors import APIError, ErrorKind, classify_exception, user_message
from noexplorer.fetchers.circuit_breaker import CircuitBreaker
from noexplorer.fetchers.http import MISSING, ResponseCache
from noexplorer.fetchers.transport import RequestConfig, TransportClient
from noexplorer.models import (
    HealthReport,
    NormalizedResult,
    Priority,
    PrivacyProfile,
    QueryResultSet,
    SearchErrorNote,
    SearchFilters,
    SearchResponse,
    normalize_query,
)
from noexplorer.providers._provider_utils import extract_text
from noexplorer.providers.base import SourceAdapter

logger = logging.getLogger(__name__)

MIN_SUGGESTION_QUERY = 2
MAX_SUGGESTIONS = 10


def parse_suggestions(payload: Any) -> List[str]:
    """
    Accepts ``{"suggestions": [...]}``, OpenSearch ``[query, [...]]`` and
    ``[{"phrase": ...}, ...]`` payloads.
    """
    items: Any = []
    if isinstance(payload, dict):
        items = payload.get("suggestions") or []
    elif isinstance(payload, list):
        if len(payload) >= 2 and isinstance(payload[0], str) and isinstance(payload[1], list):
            items = payload[1]
        else:
            items = payload

    out: List[str] = []
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict):
            text = extract_text(item.get("phrase") or item.get("value") or item.get("text"))
        else:
            text = extract_text(item)
        if text and text not in out:
            out.append(text)
    return out


class ResultAggregator:
    """
    Merges results from several sources into one ranked, paginated set.

    The full ranked set for a query is cached, so asking for page 2 reuses
    exactly the ordering that produced page 1. ``search`` never raises: total
    failure degrades to an empty response carrying an error note.
    """

    def __init__(
        self,
        transport: TransportClient,
        sources: Sequence[SourceAdapter],
        config: Optional[AggregatorConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.sources: List[SourceAdapter] = [s for s in sources if s.endpoints]
        self.config = config or AggregatorConfig()
        self.circuit_breaker = circuit_breaker
        self._clock = clock
        self._started_at = clock()
        self.engine = DedupeEngine(
            domain_cap=self.config.domain_cap,
            over_represented_cap=self.config.over_represented_cap,
            over_represented_marker=self.config.over_represented_marker,
            diverse_sources=self.config.diverse_sources,
        )
        self._result_sets = ResponseCache(self.config.cache_ttl_ms, clock=clock)
        self._suggestions = ResponseCache(self.config.cache_ttl_ms, clock=clock)
        self.total_searches = 0
        self._total_search_ms = 0.0

    # ===================== Search =====================

    def _validate(self, query: str, page: int, limit: int) -> Optional[str]:
        if not isinstance(query, str) or not query.strip():
            return "Query must not be empty"
        if page < 1:
            return "Page must be >= 1"
        if limit < 1 or limit > self.config.max_limit:
            return f"Limit must be between 1 and {self.config.max_limit}"
        return None

    async def search(
        self,
        query: str,
        page: int = 1,
        limit: int = 10,
        filters: Optional[SearchFilters] = None,
        profile: Optional[PrivacyProfile] = None,
    ) -> SearchResponse:
        start = self._clock()

        problem = self._validate(query, page, limit)
        if problem:
            return SearchResponse(
                page=page,
                query=query if isinstance(query, str) else "",
                error=SearchErrorNote(ErrorKind.VALIDATION.value, problem),
            )

        key = normalize_query(query)
        note: Optional[SearchErrorNote] = None

        result_set = self._result_sets.get(key) if page > 1 else MISSING
        if result_set is MISSING:
            result_set, note = await self._build_result_set(query.strip(), key, profile)
            if result_set.total:
                self._result_sets.set(key, result_set)
        else:
            logger.debug("Serving page %d of %r from cache", page, key)

        results = filters.apply(result_set.results) if filters else result_set.results
        begin = (page - 1) * limit
        end = begin + limit
        elapsed_ms = (self._clock() - start) * 1000

        self.total_searches += 1
        self._total_search_ms += elapsed_ms

        return SearchResponse(
            results=list(results[begin:end]),
            total_count=len(results),
            page=page,
            has_more=end < len(results),
            search_time=elapsed_ms,
            suggestions=[],
            query=query,
            error=note,
        )

    async def _collect_from_source(
        self,
        source: SourceAdapter,
        query: str,
        profile: Optional[PrivacyProfile],
    ) -> Tuple[str, List[NormalizedResult], Optional[APIError]]:
        """Collect from a single source; failures are returned, not raised."""
        try:
            results = await source.collect(self.transport, query, profile)
            return source.name, results, None
        except APIError as e:
            logger.warning("Source %s failed: %s", source.name, e)
            return source.name, [], e
        except Exception as e:
            logger.exception("Source %s raised unexpectedly", source.name)
            return source.name, [], classify_exception(e)

    async def _build_result_set(
        self,
        query: str,
        key: str,
        profile: Optional[PrivacyProfile],
    ) -> Tuple[QueryResultSet, Optional[SearchErrorNote]]:
        outcomes = await asyncio.gather(
            *(self._collect_from_source(s, query, profile) for s in self.sources)
        )

        merged: List[NormalizedResult] = []
        errors: List[APIError] = []
        for name, results, error in outcomes:
            merged.extend(results)
            if error is not None:
                errors.append(error)

        dedup = self.engine.dedupe(merged)
        logger.info(
            "Query %r: %d merged, %d duplicates, %d over domain cap, %d kept",
            key, len(merged), dedup.duplicates_removed, dedup.capped_by_domain,
            len(dedup.unique_results),
        )

        note = None
        if not dedup.unique_results:
            if errors:
                last = errors[-1]
                note = SearchErrorNote(
                    last.kind.value,
                    f"All search sources failed. {user_message(last)}",
                )
            else:
                note = SearchErrorNote(ErrorKind.NOT_FOUND.value, "No results found")

        return QueryResultSet(
            query=key,
            results=tuple(dedup.unique_results),
            created_at=self._clock(),
        ), note

    # ===================== Suggestions =====================

    async def get_suggestions(self, query: str, profile: Optional[PrivacyProfile] = None) -> List[str]:
        """Autocomplete for ``query``. Any failure yields an empty list."""
        q = (query or "").strip()
        if len(q) < MIN_SUGGESTION_QUERY or not self.config.suggestion_url:
            return []

        key = normalize_query(q)
        cached = self._suggestions.get(key)
        if cached is not MISSING:
            return list(cached)

        config = RequestConfig(
            method="GET",
            params={"q": q},
            priority=Priority.LOW,
            timeout_ms=5000,
            retries=0,
            rotate_identity=True,
            obfuscate_traffic=True,
        )
        try:
            payload = await self.transport.request(self.config.suggestion_url, config, profile)
        except APIError as e:
            logger.debug("Suggestions for %r failed: %s", q, e)
            return []

        suggestions = parse_suggestions(payload)[:MAX_SUGGESTIONS]
        self._suggestions.set(key, tuple(suggestions))
        return suggestions

    # ===================== Health & stats =====================

    @property
    def uptime_s(self) -> float:
        return self._clock() - self._started_at

    async def check_health(self) -> HealthReport:
        """Health derived from circuit states of every source's endpoints."""
        try:
            checks: Dict[str, bool] = {}
            for source in self.sources:
                if self.circuit_breaker is None:
                    checks[source.name] = True
                    continue
                keys = source.endpoint_keys()
                checks[source.name] = any(self.circuit_breaker.is_endpoint_available(k) for k in keys)
            checks["cache"] = True

            source_checks = [checks[s.name] for s in self.sources]
            if source_checks and all(source_checks):
                status = "healthy"
            elif any(source_checks):
                status = "degraded"
            else:
                status = "unhealthy"

            return HealthReport(
                status=status,
                version=self.config.version,
                uptime=self.uptime_s,
                checks=checks,
            )
        except Exception:
            logger.exception("Health check failed")
            return HealthReport(
                status="unhealthy",
                version="unknown",
                uptime=0.0,
                checks={"search_index": False, "cache": False},
            )

    def get_stats(self) -> Dict[str, Any]:
        avg = self._total_search_ms / self.total_searches if self.total_searches else 0.0
        return {
            "totalSearches": self.total_searches,
            "avgResponseTime": round(avg, 2),
            "cachedQueries": len(self._result_sets),
            "sources": {
                s.name: {
                    "collected": s.stats.collected,
                    "errors": s.stats.errors,
                    "lastEndpoint": s.stats.endpoint,
                }
                for s in self.sources
            },
        }

    def clear_cache(self) -> None:
        self._result_sets.clear()
        self._suggestions.clear()
