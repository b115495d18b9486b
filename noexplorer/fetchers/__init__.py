"""
Fetcher layer for noexplorer.

Provides:
- Per-endpoint circuit breaking
- A priority request queue with rate limiting and retries
- A single-attempt aiohttp fetcher with an in-memory response cache
- The transport client that ties them together with privacy shaping
"""

from noexplorer.fetchers.circuit_breaker import CircuitBreaker, CircuitState
from noexplorer.fetchers.http import HttpFetcher, ResponseCache
from noexplorer.fetchers.request_queue import RequestQueue
from noexplorer.fetchers.transport import RequestConfig, TransportClient

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "HttpFetcher",
    "RequestConfig",
    "RequestQueue",
    "ResponseCache",
    "TransportClient",
]
