"""
Core data models for noexplorer.

Provides:
- Priority / PrivacyLevel / ProxyType enums
- PrivacyProfile: per-call privacy knobs for the transport
- RequestOptions: what a single network call needs
- NormalizedResult / QueryResultSet: canonical search results and the cached ranked set
- SearchFilters / SearchResponse / HealthReport: the public result shapes
"""

from __future__ import annotations

import time
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple


# ----------------------------- Enums -----------------------------

class Priority(str, Enum):
    """Request queue tier. Higher tiers always dispatch first."""
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @classmethod
    def from_text(cls, text: str) -> "Priority":
        t = (text or "").strip().lower()
        for p in cls:
            if p.value == t:
                return p
        return cls.NORMAL


class PrivacyLevel(str, Enum):
    STANDARD = "standard"
    ENHANCED = "enhanced"
    MAXIMUM = "maximum"
    PARANOID = "paranoid"

    @classmethod
    def from_text(cls, text: str) -> "PrivacyLevel":
        t = (text or "").strip().lower()
        for level in cls:
            if level.value == t:
                return level
        return cls.ENHANCED


class ProxyType(str, Enum):
    NONE = "none"
    HTTP = "http"
    SOCKS5 = "socks5"
    TOR = "tor"


# ----------------------------- Utilities -----------------------------

def normalize_query(query: str) -> str:
    """Cache key form of a query: trimmed and case-folded."""
    return (query or "").strip().casefold()


def canonicalize_url(url: str) -> str:
    """
    Canonicalize URL by removing tracking parameters and fragments.
    """
    if not url:
        return ""
    try:
        u = urllib.parse.urlsplit(url.strip())
        scheme = u.scheme.lower() or "https"
        netloc = u.netloc.lower()
        tracking_prefixes = ("utm_", "fbclid", "gclid", "mc_", "trk")
        q = urllib.parse.parse_qsl(u.query, keep_blank_values=False)
        q = [(k, v) for k, v in q if not any(k.lower().startswith(p) for p in tracking_prefixes)]
        new_q = urllib.parse.urlencode(q)
        u = u._replace(scheme=scheme, netloc=netloc, query=new_q, fragment="")
        # Remove trailing slash from path (except for root)
        path = u.path.rstrip("/") if u.path != "/" else u.path
        u = u._replace(path=path)
        return urllib.parse.urlunsplit(u)
    except ValueError:
        return url.strip()


def is_http_url(url: str) -> bool:
    try:
        u = urllib.parse.urlsplit(url or "")
    except ValueError:
        return False
    return u.scheme in ("http", "https") and bool(u.netloc)


def domain_from_url(url: str) -> str:
    """Lowercased host without a leading www."""
    try:
        host = (urllib.parse.urlsplit(url or "").hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def endpoint_key(url: str) -> str:
    """
    Circuit breaker key for a URL: scheme, host and path.

    The query string is dropped so every query sent to one provider endpoint
    shares the same breaker.
    """
    try:
        u = urllib.parse.urlsplit(url or "")
    except ValueError:
        return url or ""
    return urllib.parse.urlunsplit((u.scheme.lower(), u.netloc.lower(), u.path, "", ""))


def now_utc() -> datetime:
    """Current UTC datetime."""
    return datetime.now(timezone.utc)


def now_utc_iso() -> str:
    """Current UTC time as ISO string."""
    return now_utc().replace(microsecond=0).isoformat().replace("+00:00", "Z")


# ----------------------------- Requests -----------------------------

@dataclass(frozen=True)
class PrivacyProfile:
    """Privacy knobs applied by the transport on each request."""

    level: PrivacyLevel = PrivacyLevel.ENHANCED
    rotate_identity: bool = True
    randomize_timing: bool = True
    min_delay_ms: int = 200
    max_delay_ms: int = 1000
    obfuscate_traffic: bool = True
    fake_queries: bool = False
    fake_query_frequency_min: int = 15
    dns_over_https: bool = False
    doh_provider: str = "cloudflare"
    custom_doh_url: str = ""
    use_proxy: bool = False
    proxy_type: ProxyType = ProxyType.NONE
    proxy_url: str = ""

    @classmethod
    def disabled(cls) -> "PrivacyProfile":
        """A profile with every privacy feature switched off."""
        return cls(
            level=PrivacyLevel.STANDARD,
            rotate_identity=False,
            randomize_timing=False,
            obfuscate_traffic=False,
        )


@dataclass
class RequestOptions:
    """Everything a single network call needs besides the URL."""
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout_ms: int = 10000
    proxy: Optional[str] = None


# A fetch primitive: performs one network call, returns the parsed body or raises APIError.
FetchFn = Callable[[str, RequestOptions], Awaitable[Any]]


# ----------------------------- Results -----------------------------

@dataclass(frozen=True)
class NormalizedResult:
    """
    Canonical search result, independent of the source that produced it.
    """

    id: str
    title: str
    url: str
    snippet: str
    domain: str
    relevance: float
    source: str
    type: str = "web"
    timestamp: str = field(default_factory=now_utc_iso)
    thumbnail: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        metadata = dict(self.metadata)
        if not include_raw:
            metadata.pop("raw", None)
        d: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "domain": self.domain,
            "relevance": self.relevance,
            "source": self.source,
            "type": self.type,
            "timestamp": self.timestamp,
            "metadata": metadata,
        }
        if self.thumbnail:
            d["thumbnail"] = self.thumbnail
        return d


@dataclass(frozen=True)
class QueryResultSet:
    """Ranked, deduplicated results for one normalized query."""
    query: str
    results: Tuple[NormalizedResult, ...]
    created_at: float = field(default_factory=time.monotonic)

    @property
    def total(self) -> int:
        return len(self.results)


@dataclass
class SearchFilters:
    """Optional narrowing applied to the ranked set before paging."""
    domain: Optional[str] = None
    type: Optional[str] = None
    language: Optional[str] = None
    safe_search: Optional[bool] = None
    date_range: Optional[str] = None

    def apply(self, results: Tuple[NormalizedResult, ...]) -> Tuple[NormalizedResult, ...]:
        out = results
        if self.domain:
            wanted = self.domain.lower().lstrip(".")
            out = tuple(r for r in out if r.domain == wanted or r.domain.endswith("." + wanted))
        if self.type:
            out = tuple(r for r in out if r.type == self.type)
        return out


@dataclass(frozen=True)
class SearchErrorNote:
    """Non-fatal note attached to a degraded search response."""
    kind: str
    message: str


@dataclass
class SearchResponse:
    results: List[NormalizedResult] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    has_more: bool = False
    search_time: float = 0.0
    suggestions: List[str] = field(default_factory=list)
    query: str = ""
    error: Optional[SearchErrorNote] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "results": [r.to_dict() for r in self.results],
            "totalCount": self.total_count,
            "page": self.page,
            "hasMore": self.has_more,
            "searchTime": round(self.search_time, 2),
            "suggestions": list(self.suggestions),
            "query": self.query,
        }
        if self.error is not None:
            d["error"] = {"kind": self.error.kind, "message": self.error.message}
        return d


@dataclass
class HealthReport:
    status: str = "unhealthy"
    version: str = "unknown"
    uptime: float = 0.0
    checks: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "version": self.version,
            "uptime": round(self.uptime, 3),
            "checks": dict(self.checks),
        }
