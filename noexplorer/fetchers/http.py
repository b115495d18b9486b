"""
HTTP fetcher and in-memory response cache.

``HttpFetcher.fetch`` performs exactly one network attempt and raises
``APIError`` on failure. Retrying is the job of whoever calls it (the request
queue or the transport's direct mode), never both.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp
from aiohttp.abc import AbstractResolver

from noexplorer.config import SERVICE_USER_AGENT
from noexplorer.errors import APIError, ErrorKind, classify_exception, error_from_status
from noexplorer.models import RequestOptions


MISSING = object()


class ResponseCache:
    """
    Simple in-memory response cache with a fixed TTL.
    """

    def __init__(self, ttl_ms: int = 5 * 60 * 1000, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_ms / 1000
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    @staticmethod
    def make_key(method: str, url: str, body: Any = None) -> str:
        key = f"{method.upper()}:{url}"
        if body is not None:
            key += ":" + json.dumps(body, sort_keys=True, default=str)
        return key

    def get(self, key: str, default: Any = MISSING) -> Any:
        """Cached value, or ``default`` when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return default
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return default
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def prune(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, (ts, _) in self._entries.items() if now - ts > self.ttl_seconds]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISSING


class HttpFetcher:
    """
    Async HTTP fetcher owning one aiohttp session.

    Pass a ``resolver`` (e.g. DoHResolver) to route hostname lookups away
    from the system resolver.
    """

    USER_AGENT = SERVICE_USER_AGENT

    def __init__(
        self,
        timeout_ms: int = 10000,
        user_agent: Optional[str] = None,
        resolver: Optional[AbstractResolver] = None,
        connection_limit: int = 50,
    ):
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent or self.USER_AGENT
        self.resolver = resolver
        self.connection_limit = connection_limit
        self.requests_made = 0
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpFetcher":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def start(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None or self._session.closed:
            connector_kwargs: Dict[str, Any] = {
                "limit": self.connection_limit,
                "enable_cleanup_closed": True,
            }
            if self.resolver is not None:
                connector_kwargs["resolver"] = self.resolver
            else:
                connector_kwargs["ttl_dns_cache"] = 300
            headers = {
                "User-Agent": self.user_agent,
                "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            }
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(**connector_kwargs),
                headers=headers,
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(self, url: str, options: Optional[RequestOptions] = None) -> Any:
        """
        One network attempt. Returns parsed JSON when the response is JSON,
        otherwise the response text.
        """
        options = options or RequestOptions(timeout_ms=self.timeout_ms)
        if self._session is None or self._session.closed:
            await self.start()

        kwargs: Dict[str, Any] = {
            "headers": options.headers or None,
            "timeout": aiohttp.ClientTimeout(total=options.timeout_ms / 1000),
            "allow_redirects": True,
        }
        if options.proxy:
            kwargs["proxy"] = options.proxy
        if isinstance(options.body, (dict, list)):
            kwargs["json"] = options.body
        elif options.body is not None:
            kwargs["data"] = options.body

        self.requests_made += 1
        try:
            async with self._session.request(options.method.upper(), url, **kwargs) as resp:
                if resp.status == 429:
                    retry_after = self._parse_retry_after(resp.headers.get("Retry-After", ""))
                    raise error_from_status(429, "Rate limited (429)", endpoint=url, retry_after=retry_after)
                if resp.status >= 400:
                    raise error_from_status(resp.status, f"HTTP {resp.status}: {resp.reason or ''}".strip(), endpoint=url)

                content_type = resp.headers.get("Content-Type", "").lower()
                text = await resp.text(errors="replace")
        except APIError:
            raise
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError) as e:
            raise classify_exception(e, url) from e

        return self._parse_body(text, content_type, url)

    @staticmethod
    def _parse_body(text: str, content_type: str, url: str) -> Any:
        looks_json = text.lstrip()[:1] in ("{", "[")
        if "json" not in content_type and not looks_json:
            return text
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            if "json" in content_type:
                raise APIError(ErrorKind.PARSE, f"Invalid JSON from {url}: {e}", endpoint=url) from e
            return text

    @staticmethod
    def _parse_retry_after(header: str) -> Optional[float]:
        """Retry-After in seconds, if the header holds a number."""
        if not header:
            return None
        try:
            return float(header)
        except ValueError:
            return None
