"""
Simple in-memory rate limiting for the public search endpoints.

Suitable for single-instance deployments; limits are tracked per client key
(normally the caller's IP address).
"""

import time
from typing import Callable, Dict, List, Optional

from fastapi import HTTPException, Request


class RateLimiter:
    """
    Simple in-memory rate limiter using a sliding window.

    Tracks requests per client key within a time window.
    """

    def __init__(
        self,
        requests_per_window: int = 60,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, List[float]] = {}

    def check(self, key: str) -> bool:
        """
        Check if a request is allowed for ``key``.
        Returns True if allowed, False if rate limited.
        """
        now = self._clock()
        window_start = now - self.window_seconds

        recent = [ts for ts in self._requests.get(key, ()) if ts > window_start]
        if len(recent) >= self.requests_per_window:
            self._requests[key] = recent
            return False

        recent.append(now)
        self._requests[key] = recent
        self._prune(window_start)
        return True

    def _prune(self, window_start: float) -> None:
        """Forget clients whose window has emptied."""
        stale = [k for k, stamps in self._requests.items() if not stamps or stamps[-1] <= window_start]
        for k in stale:
            del self._requests[k]

    def __len__(self) -> int:
        return len(self._requests)

    def get_retry_after(self, key: str) -> Optional[int]:
        """Seconds until the oldest request leaves the window."""
        if not self._requests.get(key):
            return None
        oldest = min(self._requests[key])
        retry_after = int(self.window_seconds - (self._clock() - oldest)) + 1
        return max(1, retry_after)

    def reset(self) -> None:
        self._requests.clear()


def client_key(request: Request) -> str:
    """Rate limit key for a request: the first forwarded address, else the peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def check_rate_limit(key: str, limiter: RateLimiter) -> None:
    """
    Check rate limit and raise HTTPException if exceeded.

    Usage in endpoint:
        check_rate_limit(client_key(request), request.app.state.search_limiter)
    """
    if not limiter.check(key):
        retry_after = limiter.get_retry_after(key)
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)} if retry_after else {},
        )
