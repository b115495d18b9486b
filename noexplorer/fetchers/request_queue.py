"""
Priority request queue with rate limiting, bounded concurrency, and retries.

Requests wait in one of three FIFO tiers. A single dispatcher task pops the
head of the highest non-empty tier whenever a concurrency slot is free and the
global dispatch spacing has elapsed. Retryable failures go back to the front
of their tier after an exponential backoff.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import random
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, Optional, Set

from noexplorer.config import RateLimitConfig
from noexplorer.errors import APIError, ErrorKind, classify_exception
from noexplorer.fetchers.circuit_breaker import CircuitBreaker
from noexplorer.models import FetchFn, Priority, RequestOptions, endpoint_key

logger = logging.getLogger(__name__)

_TIER_ORDER = (Priority.HIGH, Priority.NORMAL, Priority.LOW)


@dataclass(eq=False)
class QueuedRequest:
    """A request owned by the queue from enqueue until it settles."""
    id: str
    url: str
    endpoint: str
    options: RequestOptions
    priority: Priority
    future: asyncio.Future
    created_at: float
    retries: int = 0
    task: Optional[asyncio.Task] = None
    expiry: Optional[asyncio.TimerHandle] = None
    backoff: Optional[asyncio.TimerHandle] = None


class RequestQueue:
    """
    Executes fetches in priority order under a global rate limit.

    ``fetch`` performs a single network call and raises on failure; the queue
    owns retries, so the fetch must not retry on its own.
    """

    def __init__(
        self,
        fetch: FetchFn,
        config: Optional[RateLimitConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        rng: Optional[random.Random] = None,
    ):
        self._fetch = fetch
        self.config = config or RateLimitConfig()
        self.circuit_breaker = circuit_breaker
        self._rng = rng or random.Random()
        self._tiers: Dict[Priority, Deque[QueuedRequest]] = {p: deque() for p in _TIER_ORDER}
        self._backing_off: Set[QueuedRequest] = set()
        self._running: Set[QueuedRequest] = set()
        self._last_dispatch: Optional[float] = None
        self._ids = itertools.count(1)
        self._wakeup: Optional[asyncio.Event] = None
        self._dispatcher: Optional[asyncio.Task] = None

    @property
    def active_requests(self) -> int:
        return len(self._running)

    @property
    def queue_length(self) -> int:
        return sum(len(t) for t in self._tiers.values())

    # ===================== Public API =====================

    async def enqueue(
        self,
        url: str,
        options: Optional[RequestOptions] = None,
        priority: Priority = Priority.NORMAL,
    ) -> Any:
        """
        Queue a request and wait for its outcome.

        Returns the parsed response body, or raises APIError once retries are
        exhausted, the circuit is open, or the request timed out in the queue.
        """
        loop = asyncio.get_running_loop()
        request = QueuedRequest(
            id=f"req-{next(self._ids)}",
            url=url,
            endpoint=endpoint_key(url),
            options=options or RequestOptions(),
            priority=priority,
            future=loop.create_future(),
            created_at=loop.time(),
        )
        request.expiry = loop.call_later(self.config.timeout_ms / 1000, self._expire, request)
        self._tiers[priority].append(request)
        self.start()
        self._wake()

        try:
            return await request.future
        except asyncio.CancelledError:
            self._abandon(request)
            raise

    def start(self) -> None:
        """Start the dispatcher task (idempotent)."""
        if self._dispatcher is None or self._dispatcher.done():
            self._wakeup = asyncio.Event()
            self._dispatcher = asyncio.get_running_loop().create_task(self._dispatch_loop())

    async def close(self) -> None:
        """Stop dispatching and fail everything still owned by the queue."""
        self.clear_queue()
        for request in list(self._running):
            if request.task is not None:
                request.task.cancel()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

    def clear_queue(self) -> int:
        """Reject every request that has not been dispatched yet."""
        cleared = 0
        for tier in self._tiers.values():
            while tier:
                self._reject(tier.popleft(), APIError(ErrorKind.CANCELLED, "Queue cleared"))
                cleared += 1
        for request in list(self._backing_off):
            self._reject(request, APIError(ErrorKind.CANCELLED, "Queue cleared"))
            cleared += 1
        return cleared

    def get_stats(self) -> Dict[str, Any]:
        return {
            "queueLength": self.queue_length,
            "byPriority": {p.value: len(self._tiers[p]) for p in _TIER_ORDER},
            "backingOff": len(self._backing_off),
            "activeRequests": self.active_requests,
            "circuitBreakerStats": self.circuit_breaker.get_stats() if self.circuit_breaker else {},
            "config": asdict(self.config),
        }

    def backoff_delay_ms(self, retry: int) -> float:
        """Delay before retry number ``retry`` (1-based), jitter included."""
        base = min(self.config.base_delay_ms * (2 ** (retry - 1)), self.config.max_delay_ms)
        return base + self._rng.random() * 0.1 * base

    # ===================== Dispatch =====================

    def _wake(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    def _peek(self) -> Optional[QueuedRequest]:
        for priority in _TIER_ORDER:
            tier = self._tiers[priority]
            while tier and tier[0].future.done():
                tier.popleft()
            if tier:
                return tier[0]
        return None

    async def _dispatch_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.config.min_interval_ms / 1000
        while True:
            head = self._peek()
            if head is None or self.active_requests >= self.config.max_concurrent_requests:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            if self._last_dispatch is not None:
                wait = self._last_dispatch + interval - loop.time()
                if wait > 0:
                    await asyncio.sleep(wait)
                    # A higher tier may have been filled meanwhile
                    continue

            self._tiers[head.priority].popleft()
            self._dispatch(head, loop)

    def _dispatch(self, request: QueuedRequest, loop: asyncio.AbstractEventLoop) -> None:
        breaker = self.circuit_breaker
        if breaker is not None and not breaker.can_execute(request.endpoint):
            logger.debug("Circuit open, rejecting %s", request.url)
            self._reject(request, APIError(
                ErrorKind.CIRCUIT_OPEN,
                f"Circuit breaker open for {request.endpoint}",
                status=503,
                endpoint=request.endpoint,
            ))
            return

        self._last_dispatch = loop.time()
        self._running.add(request)
        request.task = loop.create_task(self._execute(request))

    async def _execute(self, request: QueuedRequest) -> None:
        breaker = self.circuit_breaker
        try:
            result = await self._fetch(request.url, request.options)
        except asyncio.CancelledError:
            if breaker is not None:
                breaker.release(request.endpoint)
            self._reject(request, APIError(ErrorKind.CANCELLED, "Queue closed"))
            raise
        except Exception as exc:
            error = classify_exception(exc, request.endpoint)
            if breaker is not None:
                breaker.record_failure(request.endpoint)
            self._on_failure(request, error)
        else:
            if breaker is not None:
                breaker.record_success(request.endpoint)
            self._resolve(request, result)
        finally:
            self._running.discard(request)
            request.task = None
            self._wake()

    def _on_failure(self, request: QueuedRequest, error: APIError) -> None:
        if request.future.done():
            return
        if not error.retryable or request.retries >= self.config.max_retries:
            logger.debug(
                "Request %s failed after %d retries: %s", request.url, request.retries, error
            )
            self._reject(request, error)
            return
        if self._remaining_s(request) <= 0:
            self._reject_timeout(request)
            return

        request.retries += 1
        delay_ms = self.backoff_delay_ms(request.retries)
        if error.kind == ErrorKind.RATE_LIMITED and error.retry_after:
            delay_ms = max(delay_ms, error.retry_after * 1000)
        logger.debug(
            "Retrying %s in %.0fms (attempt %d/%d): %s",
            request.url, delay_ms, request.retries, self.config.max_retries, error,
        )
        self._backing_off.add(request)
        request.backoff = asyncio.get_running_loop().call_later(
            delay_ms / 1000, self._requeue, request
        )

    def _requeue(self, request: QueuedRequest) -> None:
        self._backing_off.discard(request)
        request.backoff = None
        if request.future.done():
            return
        remaining = self._remaining_s(request)
        if remaining <= 0:
            self._reject_timeout(request)
            return
        # The first timer may have fired while the attempt was in flight
        if request.expiry is not None:
            request.expiry.cancel()
        request.expiry = asyncio.get_running_loop().call_later(remaining, self._expire, request)
        self._tiers[request.priority].appendleft(request)
        self._wake()

    # ===================== Settlement =====================

    def _expire(self, request: QueuedRequest) -> None:
        # In-flight requests are bounded by the fetch timeout instead
        if request.future.done() or request.task is not None:
            return
        self._remove_waiting(request)
        self._reject_timeout(request)

    def _remaining_s(self, request: QueuedRequest) -> float:
        elapsed = asyncio.get_running_loop().time() - request.created_at
        return self.config.timeout_ms / 1000 - elapsed

    def _reject_timeout(self, request: QueuedRequest) -> None:
        logger.debug("Request %s timed out in queue", request.url)
        self._reject(request, APIError(
            ErrorKind.TIMEOUT,
            "Request timed out in queue",
            status=408,
            endpoint=request.endpoint,
        ))

    def _remove_waiting(self, request: QueuedRequest) -> None:
        tier = self._tiers[request.priority]
        if request in tier:
            tier.remove(request)
        if request.backoff is not None:
            request.backoff.cancel()
            request.backoff = None
        self._backing_off.discard(request)

    def _abandon(self, request: QueuedRequest) -> None:
        """The caller stopped waiting: drop the request wherever it is."""
        self._remove_waiting(request)
        if request.expiry is not None:
            request.expiry.cancel()
        if request.task is not None:
            request.task.cancel()

    def _resolve(self, request: QueuedRequest, result: Any) -> None:
        if request.expiry is not None:
            request.expiry.cancel()
        if not request.future.done():
            request.future.set_result(result)

    def _reject(self, request: QueuedRequest, error: APIError) -> None:
        if request.expiry is not None:
            request.expiry.cancel()
        if request.backoff is not None:
            request.backoff.cancel()
            request.backoff = None
        self._backing_off.discard(request)
        if not request.future.done():
            request.future.set_exception(error)
