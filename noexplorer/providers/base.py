"""
Base adapter interface for search sources.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from noexplorer.errors import APIError
from noexplorer.fetchers.transport import RequestConfig, TransportClient
from noexplorer.models import NormalizedResult, Priority, PrivacyProfile, endpoint_key

logger = logging.getLogger(__name__)


@dataclass
class ProviderStats:
    """Statistics for one collect() call."""
    collected: int = 0
    errors: int = 0
    endpoint: str = ""
    error_messages: List[str] = field(default_factory=list)


class SourceAdapter(ABC):
    """
    Base class for search sources.

    Each adapter is responsible for:
    - Building the request for each of its endpoints
    - Converting the provider payload to NormalizedResult objects

    ``collect`` walks the endpoints in order and stops at the first one that
    yields results.
    """

    name: str = "base"

    def __init__(
        self,
        endpoints: Sequence[str],
        rng: Optional[random.Random] = None,
        timeout_ms: int = 10000,
        priority: Priority = Priority.HIGH,
    ):
        self.endpoints: Tuple[str, ...] = tuple(endpoints)
        self.rng = rng or random.Random()
        self.timeout_ms = timeout_ms
        self.priority = priority
        self.stats = ProviderStats()

    @abstractmethod
    def build_request(self, endpoint: str, query: str) -> Tuple[str, Dict[str, Any]]:
        """URL and query params for ``query`` against ``endpoint``."""
        raise NotImplementedError

    @abstractmethod
    def parse(self, payload: Any, endpoint: str) -> List[NormalizedResult]:
        """Normalize a provider payload. Must not raise on odd shapes."""
        raise NotImplementedError

    def request_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def endpoint_keys(self) -> List[str]:
        """Circuit breaker keys of this adapter's endpoints."""
        return [endpoint_key(self.build_request(e, "")[0]) for e in self.endpoints]

    async def collect(
        self,
        transport: TransportClient,
        query: str,
        profile: Optional[PrivacyProfile] = None,
    ) -> List[NormalizedResult]:
        """
        Collect results for ``query``.

        Returns the first non-empty result list. Raises the last APIError if
        every endpoint failed; returns [] if they answered without results.
        """
        self.reset_stats()
        last_error: Optional[APIError] = None
        failures = 0

        for endpoint in self.endpoints:
            url, params = self.build_request(endpoint, query)
            config = RequestConfig(
                method="GET",
                headers=self.request_headers(),
                params=params,
                timeout_ms=self.timeout_ms,
                priority=self.priority,
                rotate_identity=True,
                randomize_timing=True,
                obfuscate_traffic=True,
            )
            try:
                payload = await transport.request(url, config, profile)
            except APIError as e:
                last_error = e
                failures += 1
                self.log_error(f"{endpoint}: {e}")
                logger.warning("%s endpoint %s failed: %s", self.name, endpoint, e)
                continue

            results = self.parse(payload, endpoint)
            if results:
                self.stats.collected = len(results)
                self.stats.endpoint = endpoint
                logger.debug("%s returned %d results from %s", self.name, len(results), endpoint)
                return results

            self.log_error(f"{endpoint}: no results")
            logger.debug("%s endpoint %s returned no usable results", self.name, endpoint)

        if last_error is not None and failures == len(self.endpoints):
            raise last_error
        return []

    def reset_stats(self) -> None:
        """Reset adapter statistics."""
        self.stats = ProviderStats()

    def log_error(self, message: str) -> None:
        """Record an error for this adapter."""
        self.stats.errors += 1
        if len(self.stats.error_messages) < 10:
            self.stats.error_messages.append(message)

