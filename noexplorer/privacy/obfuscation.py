"""
Traffic obfuscation: randomized request timing, decoy headers, payload
padding, and background decoy queries.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import string
import time
import urllib.parse
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from noexplorer.config import DecoyConfig
from noexplorer.models import FetchFn, PrivacyLevel, PrivacyProfile, RequestOptions

logger = logging.getLogger(__name__)


class DelayDistribution(str, Enum):
    UNIFORM = "uniform"
    EXPONENTIAL = "exponential"
    NORMAL = "normal"


def distribution_for_level(level: PrivacyLevel) -> DelayDistribution:
    """Stronger privacy levels use less predictable timing shapes."""
    if level == PrivacyLevel.STANDARD:
        return DelayDistribution.UNIFORM
    if level == PrivacyLevel.ENHANCED:
        return DelayDistribution.EXPONENTIAL
    return DelayDistribution.NORMAL


@dataclass(frozen=True)
class DelayOptions:
    min_delay_ms: float
    max_delay_ms: float
    distribution: DelayDistribution = DelayDistribution.UNIFORM

    @classmethod
    def from_profile(cls, profile: PrivacyProfile) -> "DelayOptions":
        return cls(
            min_delay_ms=profile.min_delay_ms,
            max_delay_ms=profile.max_delay_ms,
            distribution=distribution_for_level(profile.level),
        )


# Realistic, non-personal search terms for decoy traffic
FAKE_SEARCH_TERMS: tuple = (
    # General topics
    "weather", "news", "time", "recipe", "movie", "music", "sports", "health",
    "technology", "science", "history", "art", "books", "travel", "food",
    # Trending
    "artificial intelligence", "climate change", "cryptocurrency", "space exploration",
    "renewable energy", "electric vehicles", "quantum computing", "gene therapy",
    # Educational
    "how to", "what is", "why does", "when did", "where is", "who invented",
    "tutorial", "guide", "explanation", "definition", "example", "comparison",
    # Shopping
    "laptop", "headphones", "camera", "smartphone", "tablet", "monitor",
    "keyboard", "mouse", "chair", "desk", "book", "game", "software",
    # Academic
    "mathematics", "physics", "chemistry", "biology", "psychology", "philosophy",
    "literature", "economics", "politics", "sociology", "anthropology",
    # Languages and culture
    "spanish", "french", "japanese", "chinese", "arabic", "culture", "tradition",
    "festival", "language learning", "translation", "pronunciation",
    # Hobbies
    "photography", "cooking", "gardening", "fitness", "yoga", "meditation",
    "painting", "drawing", "writing", "reading", "hiking", "cycling",
)

_CONNECTORS = ("and", "vs", "or", "with", "for")
_QUESTION_WORDS = ("how to", "what is", "why does", "when did", "where is")
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


class TrafficObfuscator:
    """
    Shapes the timing and appearance of outgoing requests.

    ``sleep`` is injectable so tests can observe delays without waiting.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._last_request: Optional[float] = None
        self._active_delays = 0
        self.total_delays = 0

    # ===================== Timing =====================

    def draw_delay(self, options: DelayOptions) -> float:
        """Draw a delay in milliseconds, always within [min, max]."""
        lo, hi = options.min_delay_ms, options.max_delay_ms
        if hi <= lo:
            return float(lo)

        if options.distribution == DelayDistribution.EXPONENTIAL:
            rate = 2 / (hi - lo)
            value = lo + (-math.log(1 - self._rng.random()) / rate)
            return min(hi, value)

        if options.distribution == DelayDistribution.NORMAL:
            mean = (lo + hi) / 2
            sd = (hi - lo) / 6
            # Box-Muller; 1 - random() keeps u1 in (0, 1]
            u1 = 1.0 - self._rng.random()
            u2 = self._rng.random()
            z0 = math.sqrt(-2 * math.log(u1)) * math.cos(2 * math.pi * u2)
            return max(lo, min(hi, mean + sd * z0))

        return lo + self._rng.random() * (hi - lo)

    async def delay(self, options: DelayOptions) -> float:
        """
        Wait a randomized interval before the next request.

        Time already spent since the previous delayed request counts towards
        the wait. Returns the milliseconds actually slept.
        """
        drawn = self.draw_delay(options)
        since_last = 0.0
        if self._last_request is not None:
            since_last = (self._clock() - self._last_request) * 1000
        remaining = max(0.0, drawn - since_last)

        if remaining > 0:
            self._active_delays += 1
            try:
                await self._sleep(remaining / 1000)
            finally:
                self._active_delays -= 1

        self._last_request = self._clock()
        self.total_delays += 1
        return remaining

    # ===================== Request shaping =====================

    def _token(self, length: int) -> str:
        return "".join(self._rng.choice(_TOKEN_ALPHABET) for _ in range(length))

    def decoy_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._rng.random() < 0.5:
            headers["X-Custom-Client"] = self._token(11)
        if self._rng.random() < 0.3:
            headers["X-Session-ID"] = self._token(10)
        return headers

    def pad(self, payload: Any) -> Any:
        """
        Add an inert ``_padding`` field of 256-1279 characters.

        Only dict payloads can carry padding; anything else is returned as-is.
        """
        if not isinstance(payload, dict):
            return payload
        size = self._rng.randint(256, 1279)
        padded = dict(payload)
        padded["_padding"] = "x" * size
        return padded

    def get_stats(self) -> Dict[str, Any]:
        return {
            "activeDelays": self._active_delays,
            "totalDelays": self.total_delays,
            "lastRequestTime": self._last_request,
        }


class DecoyQueryScheduler:
    """
    Periodically sends fake searches to a harmless sink endpoint.

    Decoys never go through the request queue or touch any result cache;
    their failures are logged and dropped.
    """

    DECOY_USER_AGENT = "Mozilla/5.0 (compatible; bot)"

    def __init__(
        self,
        fetch: FetchFn,
        config: Optional[DecoyConfig] = None,
        obfuscator: Optional[TrafficObfuscator] = None,
        rng: Optional[random.Random] = None,
    ):
        self._fetch = fetch
        self.config = config or DecoyConfig()
        self._rng = rng or random.Random()
        self._obfuscator = obfuscator or TrafficObfuscator(rng=self._rng)
        self._terms: List[str] = list(FAKE_SEARCH_TERMS)
        self._task: Optional[asyncio.Task] = None
        self.sent = 0
        self.failed = 0
        self.last_query = ""

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ===================== Query generation =====================

    def _term(self) -> str:
        return self._rng.choice(self._terms)

    def generate_query(self) -> str:
        strategy = self._rng.randrange(4)
        if strategy == 0:
            return self._term()
        if strategy == 1:
            return f"{self._term()} {self._rng.choice(_CONNECTORS)} {self._term()}"
        if strategy == 2:
            return f"{self._rng.choice(_QUESTION_WORDS)} {self._term()}"
        return f"{self._term()} vs {self._term()}"

    def configure(self, enabled: bool, extra_terms: Optional[Sequence[str]] = None) -> None:
        """Toggle the schedule and extend the vocabulary."""
        if extra_terms:
            self._terms.extend(t for t in extra_terms if t and t.strip())
        if enabled:
            self.start()
        elif self._task is not None:
            self._task.cancel()
            self._task = None

    # ===================== Execution =====================

    def next_interval_s(self) -> float:
        ms = self.config.base_interval_ms + self._rng.random() * self.config.interval_jitter_ms
        return ms / 1000

    def decoy_url(self, query: str) -> str:
        sink = self.config.sink_url
        sep = "&" if urllib.parse.urlsplit(sink).query else "?"
        return f"{sink}{sep}{urllib.parse.urlencode({'q': query})}"

    async def run_once(self) -> None:
        query = self.generate_query()
        pre_delay = self._obfuscator.draw_delay(DelayOptions(
            min_delay_ms=self.config.min_pre_delay_ms,
            max_delay_ms=self.config.max_pre_delay_ms,
            distribution=DelayDistribution.EXPONENTIAL,
        ))
        await asyncio.sleep(pre_delay / 1000)

        self.last_query = query
        options = RequestOptions(
            method="GET",
            headers={"User-Agent": self.DECOY_USER_AGENT, "Accept": "application/json"},
            timeout_ms=self.config.timeout_ms,
        )
        try:
            await self._fetch(self.decoy_url(query), options)
            self.sent += 1
            logger.debug("Decoy query sent: %r", query)
        except Exception as e:
            self.failed += 1
            logger.debug("Decoy query failed: %s", e)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.next_interval_s())
            await self.run_once()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._loop())
            logger.info("Decoy query scheduler started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Decoy query scheduler stopped")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "fakeQueriesEnabled": self.running,
            "sent": self.sent,
            "failed": self.failed,
            "vocabularySize": len(self._terms),
        }
