"""
Configuration for the search client.

All values are injected at construction time; nothing here reads the
environment. The HTTP service builds a ClientConfig from its settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from noexplorer.errors import ConfigError
from noexplorer.models import PrivacyProfile


DEFAULT_MWMBL_ENDPOINTS: Tuple[str, ...] = (
    "https://api.mwmbl.org/search",
    "https://mwmbl.org/api/v1/search/",
)
DEFAULT_SEARXNG_INSTANCES: Tuple[str, ...] = ()
DEFAULT_DUCKDUCKGO_URL = "https://api.duckduckgo.com/"
DEFAULT_SUGGESTION_URL = "https://duckduckgo.com/ac/"
DEFAULT_DECOY_SINK = "https://httpbin.org/delay/1"

SERVICE_USER_AGENT = "Noexplorer/1.0 (Privacy-focused search engine)"

KNOWN_SOURCES: List[str] = ["mwmbl", "searxng", "duckduckgo"]


def _require_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ConfigError(f"{name} must be > 0 (got {value!r})")


def _require_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ConfigError(f"{name} must be >= 0 (got {value!r})")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_time_ms: int = 30000
    monitoring_period_ms: int = 60000

    def __post_init__(self):
        _require_positive("failure_threshold", self.failure_threshold)
        _require_non_negative("recovery_time_ms", self.recovery_time_ms)
        _require_positive("monitoring_period_ms", self.monitoring_period_ms)


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests_per_second: float = 10
    max_concurrent_requests: int = 5
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    timeout_ms: int = 15000

    def __post_init__(self):
        _require_positive("max_requests_per_second", self.max_requests_per_second)
        _require_positive("max_concurrent_requests", self.max_concurrent_requests)
        _require_non_negative("max_retries", self.max_retries)
        _require_non_negative("base_delay_ms", self.base_delay_ms)
        _require_non_negative("max_delay_ms", self.max_delay_ms)
        _require_positive("timeout_ms", self.timeout_ms)

    @property
    def min_interval_ms(self) -> float:
        """Spacing between two consecutive dispatches."""
        return 1000.0 / self.max_requests_per_second


@dataclass(frozen=True)
class TransportConfig:
    base_url: str = ""
    timeout_ms: int = 10000
    retries: int = 3
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 10000
    cache_ttl_ms: int = 5 * 60 * 1000
    cache_prune_interval_ms: int = 10 * 60 * 1000
    default_headers: Dict[str, str] = field(default_factory=lambda: {
        "Content-Type": "application/json",
        "Accept": "application/json",
    })

    def __post_init__(self):
        _require_positive("timeout_ms", self.timeout_ms)
        _require_non_negative("retries", self.retries)
        _require_positive("cache_ttl_ms", self.cache_ttl_ms)
        _require_positive("cache_prune_interval_ms", self.cache_prune_interval_ms)


@dataclass(frozen=True)
class AggregatorConfig:
    cache_ttl_ms: int = 5 * 60 * 1000
    domain_cap: int = 3
    over_represented_cap: int = 2
    over_represented_marker: str = "wikipedia"
    diverse_sources: Tuple[str, ...] = ("duckduckgo", "brave", "startpage")
    max_limit: int = 100
    suggestion_url: str = DEFAULT_SUGGESTION_URL
    version: str = "1.0.0"

    def __post_init__(self):
        _require_positive("cache_ttl_ms", self.cache_ttl_ms)
        _require_positive("domain_cap", self.domain_cap)
        _require_positive("over_represented_cap", self.over_represented_cap)
        _require_positive("max_limit", self.max_limit)


@dataclass(frozen=True)
class DecoyConfig:
    enabled: bool = False
    base_interval_ms: int = 15 * 60 * 1000
    interval_jitter_ms: int = 10 * 60 * 1000
    min_pre_delay_ms: int = 1000
    max_pre_delay_ms: int = 5000
    sink_url: str = DEFAULT_DECOY_SINK
    timeout_ms: int = 5000

    def __post_init__(self):
        _require_positive("base_interval_ms", self.base_interval_ms)
        _require_non_negative("interval_jitter_ms", self.interval_jitter_ms)
        if self.max_pre_delay_ms < self.min_pre_delay_ms:
            raise ConfigError("max_pre_delay_ms must be >= min_pre_delay_ms")


@dataclass(frozen=True)
class ClientConfig:
    """
    Everything the composition root needs to wire a SearchClient.
    """

    enabled_sources: Tuple[str, ...] = ("mwmbl", "searxng", "duckduckgo")
    mwmbl_endpoints: Tuple[str, ...] = DEFAULT_MWMBL_ENDPOINTS
    searxng_instances: Tuple[str, ...] = DEFAULT_SEARXNG_INSTANCES
    duckduckgo_url: str = DEFAULT_DUCKDUCKGO_URL
    user_agent: str = SERVICE_USER_AGENT
    source_timeout_ms: int = 10000
    use_queue: bool = True

    privacy: PrivacyProfile = field(default_factory=PrivacyProfile)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    # Conservative queue defaults for third-party search APIs
    rate_limit: RateLimitConfig = field(default_factory=lambda: RateLimitConfig(
        max_requests_per_second=8,
        max_concurrent_requests=4,
        max_retries=3,
        base_delay_ms=1000,
        max_delay_ms=10000,
        timeout_ms=15000,
    ))
    transport: TransportConfig = field(default_factory=TransportConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    decoy: DecoyConfig = field(default_factory=DecoyConfig)

    def __post_init__(self):
        _require_positive("source_timeout_ms", self.source_timeout_ms)
        if self.privacy.max_delay_ms < self.privacy.min_delay_ms:
            raise ConfigError("privacy.max_delay_ms must be >= privacy.min_delay_ms")
        unknown = [s for s in self.enabled_sources if s not in KNOWN_SOURCES]
        if unknown:
            raise ConfigError(f"Unknown sources: {', '.join(unknown)}")
