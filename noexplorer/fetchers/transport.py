"""
Transport client: one entry point for plain and privacy-enhanced requests.

A request is either handed to the RequestQueue (which owns retries) or sent
straight to the fetcher with the transport's own retry loop. The two modes
are separate code paths and a request takes exactly one of them.
"""

from __future__ import annotations

import asyncio
import logging
import time
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from noexplorer.config import TransportConfig
from noexplorer.errors import APIError, classify_exception
from noexplorer.fetchers.http import ResponseCache, MISSING
from noexplorer.fetchers.request_queue import RequestQueue
from noexplorer.models import FetchFn, Priority, PrivacyLevel, PrivacyProfile, ProxyType, RequestOptions
from noexplorer.privacy.obfuscation import DelayOptions, TrafficObfuscator
from noexplorer.privacy.user_agents import UserAgentRotator

logger = logging.getLogger(__name__)


@dataclass
class RequestConfig:
    """Per-request knobs. ``None`` means "use the transport default"."""
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    timeout_ms: Optional[int] = None
    retries: Optional[int] = None
    cache: Optional[bool] = None
    priority: Priority = Priority.NORMAL
    use_queue: bool = True

    # Privacy toggles; each also needs the matching PrivacyProfile flag
    rotate_identity: bool = False
    randomize_timing: bool = False
    obfuscate_traffic: bool = False


def build_url(url: str, params: Optional[Dict[str, Any]] = None, base_url: str = "") -> str:
    """Join ``url`` onto ``base_url`` when relative and append query params."""
    if base_url and not urllib.parse.urlsplit(url).scheme:
        url = urllib.parse.urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))
    if not params:
        return url
    pairs = [(k, str(v)) for k, v in params.items() if v is not None]
    if not pairs:
        return url
    sep = "&" if urllib.parse.urlsplit(url).query else "?"
    return f"{url}{sep}{urllib.parse.urlencode(pairs)}"


class TransportClient:
    """
    Applies caching and privacy shaping, then dispatches.

    Order of operations for a request: cache lookup, identity rotation, decoy
    headers and padding, timing delay, dispatch (queued or direct).
    """

    def __init__(
        self,
        fetch: FetchFn,
        config: Optional[TransportConfig] = None,
        queue: Optional[RequestQueue] = None,
        obfuscator: Optional[TrafficObfuscator] = None,
        rotator: Optional[UserAgentRotator] = None,
        profile: Optional[PrivacyProfile] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self.config = config or TransportConfig()
        self.queue = queue
        self.obfuscator = obfuscator or TrafficObfuscator()
        self.rotator = rotator or UserAgentRotator()
        self.profile = profile or PrivacyProfile()
        self.cache = ResponseCache(self.config.cache_ttl_ms, clock=clock)
        self._sleep = sleep
        self._pruner: Optional[asyncio.Task] = None
        self._proxy_warned = False

    # ===================== Public API =====================

    async def request(
        self,
        url: str,
        config: Optional[RequestConfig] = None,
        profile: Optional[PrivacyProfile] = None,
    ) -> Any:
        """Send one request. Returns the parsed body or raises APIError."""
        config = config or RequestConfig()
        profile = profile or self.profile
        method = config.method.upper()
        final_url = build_url(url, config.params, self.config.base_url)

        use_cache = config.cache if config.cache is not None else method == "GET"
        cacheable = use_cache and method == "GET"
        cache_key = ResponseCache.make_key(method, final_url, config.body)
        if cacheable:
            cached = self.cache.get(cache_key)
            if cached is not MISSING:
                logger.debug("Cache hit for %s", final_url)
                return cached

        headers = dict(self.config.default_headers)
        headers.update(config.headers)
        body = config.body

        if config.rotate_identity and profile.rotate_identity:
            agent = self.rotator.next_user_agent(privacy_mode=profile.level == PrivacyLevel.PARANOID)
            identity = UserAgentRotator.matching_headers(agent)
            # An Accept chosen by the caller describes the payload it can parse
            if any(k.lower() == "accept" for k in config.headers):
                identity.pop("Accept", None)
            headers.update(identity)

        if config.obfuscate_traffic and profile.obfuscate_traffic:
            headers.update(self.obfuscator.decoy_headers())
            if method != "GET" and body is not None:
                body = self.obfuscator.pad(body)

        if config.randomize_timing and profile.randomize_timing:
            await self.obfuscator.delay(DelayOptions.from_profile(profile))

        options = RequestOptions(
            method=method,
            headers=headers,
            body=body,
            timeout_ms=config.timeout_ms or self.config.timeout_ms,
            proxy=self._proxy_for(profile),
        )

        if config.use_queue and self.queue is not None:
            data = await self._send_queued(final_url, options, config.priority)
        else:
            retries = self.config.retries if config.retries is None else config.retries
            data = await self._send_direct(final_url, options, retries)

        if cacheable:
            self.cache.set(cache_key, data)
        return data

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        profile = kwargs.pop("profile", None)
        return await self.request(url, RequestConfig(method="GET", params=params or {}, **kwargs), profile)

    async def post(self, url: str, body: Any = None, **kwargs) -> Any:
        profile = kwargs.pop("profile", None)
        return await self.request(url, RequestConfig(method="POST", body=body, **kwargs), profile)

    def clear_cache(self) -> None:
        self.cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self.cache)

    # ===================== Dispatch =====================

    async def _send_queued(self, url: str, options: RequestOptions, priority: Priority) -> Any:
        try:
            return await self.queue.enqueue(url, options, priority)
        except APIError as e:
            logger.debug("Queued request to %s failed: %s", url, e)
            raise

    async def _send_direct(self, url: str, options: RequestOptions, retries: int) -> Any:
        attempt = 0
        while True:
            try:
                return await self._fetch(url, options)
            except Exception as exc:
                error = classify_exception(exc, url)
                if not error.retryable or attempt >= retries:
                    logger.debug("Request to %s failed after %d attempts: %s", url, attempt + 1, error)
                    if error is exc:
                        raise
                    raise error from exc
                delay_ms = min(
                    self.config.retry_base_delay_ms * (2 ** attempt),
                    self.config.retry_max_delay_ms,
                )
                attempt += 1
                logger.debug("Retrying %s in %dms (attempt %d/%d)", url, delay_ms, attempt, retries)
                await self._sleep(delay_ms / 1000)

    def _proxy_for(self, profile: PrivacyProfile) -> Optional[str]:
        if not profile.use_proxy or not profile.proxy_url:
            return None
        if profile.proxy_type == ProxyType.HTTP:
            return profile.proxy_url
        if not self._proxy_warned:
            logger.warning(
                "Proxy type %s is not supported, sending requests directly",
                profile.proxy_type.value,
            )
            self._proxy_warned = True
        return None

    # ===================== Lifecycle =====================

    def start(self) -> None:
        """Prune expired cache entries in the background."""
        if self._pruner is None or self._pruner.done():
            self._pruner = asyncio.get_running_loop().create_task(self._prune_loop())

    async def stop(self) -> None:
        if self._pruner is not None:
            self._pruner.cancel()
            try:
                await self._pruner
            except asyncio.CancelledError:
                pass
            self._pruner = None

    async def _prune_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cache_prune_interval_ms / 1000)
            removed = self.cache.prune()
            if removed:
                logger.debug("Pruned %d expired cache entries", removed)
