"""
Per-endpoint circuit breaker.

Each endpoint key gets its own closed/open/half-open state machine. An open
circuit rejects requests until the recovery time has passed, then admits a
single trial request whose outcome decides whether the circuit closes again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from noexplorer.config import CircuitBreakerConfig

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class EndpointStats:
    """Health counters for one endpoint. Times are clock seconds."""
    failures: int = 0
    successes: int = 0
    last_failure_time: float = 0.0
    last_success_time: float = 0.0
    state: CircuitState = CircuitState.CLOSED
    trial_pending: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failures": self.failures,
            "successes": self.successes,
            "lastFailureTime": self.last_failure_time,
            "lastSuccessTime": self.last_success_time,
            "state": self.state.value,
        }


class CircuitBreaker:
    """
    Gatekeeper consulted before every dispatch.

    Usage:
        if breaker.can_execute(key):
            try:
                ...
                breaker.record_success(key)
            except APIError:
                breaker.record_failure(key)
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._stats: Dict[str, EndpointStats] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _get(self, endpoint: str) -> EndpointStats:
        stats = self._stats.get(endpoint)
        if stats is None:
            stats = EndpointStats()
            self._stats[endpoint] = stats
        return stats

    def can_execute(self, endpoint: str) -> bool:
        """
        True if a request to ``endpoint`` may be attempted now.

        In half-open state only the first caller gets True; everyone else is
        refused until that trial is recorded.
        """
        stats = self._get(endpoint)

        if stats.state == CircuitState.CLOSED:
            return True

        if stats.state == CircuitState.OPEN:
            elapsed_ms = (self._clock() - stats.last_failure_time) * 1000
            if elapsed_ms < self.config.recovery_time_ms:
                return False
            stats.state = CircuitState.HALF_OPEN
            stats.trial_pending = False
            logger.info("Circuit half-open for %s", endpoint)

        # Half-open: admit exactly one trial
        if stats.trial_pending:
            return False
        stats.trial_pending = True
        return True

    def record_success(self, endpoint: str) -> None:
        stats = self._get(endpoint)
        stats.successes += 1
        stats.last_success_time = self._clock()
        stats.trial_pending = False

        if stats.state == CircuitState.HALF_OPEN:
            stats.state = CircuitState.CLOSED
            stats.failures = 0
            logger.info("Circuit closed for %s", endpoint)

    def record_failure(self, endpoint: str) -> None:
        stats = self._get(endpoint)
        stats.failures += 1
        stats.last_failure_time = self._clock()
        stats.trial_pending = False

        if stats.state == CircuitState.HALF_OPEN:
            stats.state = CircuitState.OPEN
            logger.warning("Circuit re-opened for %s after failed trial", endpoint)
        elif stats.state == CircuitState.CLOSED and stats.failures >= self.config.failure_threshold:
            stats.state = CircuitState.OPEN
            logger.warning(
                "Circuit opened for %s after %d failures", endpoint, stats.failures
            )

    def release(self, endpoint: str) -> None:
        """Drop a half-open trial that ended without an outcome (e.g. cancelled)."""
        stats = self._stats.get(endpoint)
        if stats is not None:
            stats.trial_pending = False

    def sweep(self) -> None:
        """Decay counters that fell outside the monitoring window."""
        cutoff = self._clock() - self.config.monitoring_period_ms / 1000
        for stats in self._stats.values():
            if stats.state == CircuitState.CLOSED and stats.failures and stats.last_failure_time < cutoff:
                stats.failures = 0
            if stats.successes and stats.last_success_time < cutoff:
                stats.successes = 0

    # ===================== Lifecycle =====================

    def start(self) -> None:
        """Run the periodic sweep in the background."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    async def _sweep_loop(self) -> None:
        interval = self.config.monitoring_period_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    # ===================== Introspection =====================

    def state(self, endpoint: str) -> CircuitState:
        stats = self._stats.get(endpoint)
        return stats.state if stats else CircuitState.CLOSED

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        return {endpoint: stats.to_dict() for endpoint, stats in self._stats.items()}

    def reset(self, endpoint: Optional[str] = None) -> None:
        """Forget the state of one endpoint, or of all of them."""
        if endpoint is None:
            self._stats.clear()
        else:
            self._stats.pop(endpoint, None)

    def is_endpoint_available(self, endpoint: str) -> bool:
        """
        True unless the circuit is open and still inside its recovery time.

        Unlike can_execute this never changes state.
        """
        stats = self._stats.get(endpoint)
        if stats is None or stats.state == CircuitState.CLOSED:
            return True
        if stats.state == CircuitState.HALF_OPEN:
            return not stats.trial_pending
        elapsed_ms = (self._clock() - stats.last_failure_time) * 1000
        return elapsed_ms >= self.config.recovery_time_ms

    def failure_rate(self, endpoint: str) -> float:
        stats = self._stats.get(endpoint)
        if stats is None:
            return 0.0
        total = stats.failures + stats.successes
        return stats.failures / total if total else 0.0
