"""
User agent rotation.
"""

from __future__ import annotations

import random
from typing import Dict, List, Optional, Tuple


USER_AGENTS: Tuple[str, ...] = (
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    # Firefox
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:119.0) Gecko/20100101 Firefox/119.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:120.0) Gecko/20100101 Firefox/120.0",
    # Safari on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Safari/605.1.15",
    # Edge on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    # Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0",
    # Android
    "Mozilla/5.0 (Linux; Android 13; SM-G991B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (Linux; Android 12; SM-G998B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Mobile Safari/537.36",
    # iOS
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (iPad; CPU OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
)

# Tor Browser, Brave and DuckDuckGo browser fingerprints
PRIVACY_USER_AGENTS: Tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
)

_MOBILE_MARKERS = ("Mobile", "Android", "iPhone", "iPad")


class UserAgentRotator:
    """
    Picks a user agent for each request.

    Never returns the same agent twice in a row, and prefers agents that have
    been used less often (weight ``max(1, 10 - uses)``).
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._last: str = ""
        self._usage: Dict[str, int] = {}

    @property
    def last_user_agent(self) -> str:
        return self._last

    def next_user_agent(self, privacy_mode: bool = False) -> str:
        agents = PRIVACY_USER_AGENTS if privacy_mode else USER_AGENTS
        available = [a for a in agents if a != self._last]
        if not available:
            self._usage.clear()
            return self._rng.choice(agents)

        chosen = self._weighted_choice(available)
        self._last = chosen
        self._usage[chosen] = self._usage.get(chosen, 0) + 1
        return chosen

    def _weighted_choice(self, agents: List[str]) -> str:
        weights = [max(1, 10 - self._usage.get(a, 0)) for a in agents]
        return self._rng.choices(agents, weights=weights, k=1)[0]

    def by_browser(self, browser: str) -> str:
        """Random agent of one browser family: chrome, firefox, safari or edge."""
        browser = (browser or "").lower()
        if browser == "chrome":
            matches = [a for a in USER_AGENTS if "Chrome" in a and "Edg" not in a]
        elif browser == "firefox":
            matches = [a for a in USER_AGENTS if "Firefox" in a]
        elif browser == "safari":
            matches = [a for a in USER_AGENTS if "Safari" in a and "Chrome" not in a]
        elif browser == "edge":
            matches = [a for a in USER_AGENTS if "Edg" in a]
        else:
            matches = []
        if not matches:
            return self.next_user_agent()
        return self._rng.choice(matches)

    def mobile(self) -> str:
        matches = [a for a in USER_AGENTS if any(m in a for m in _MOBILE_MARKERS)]
        return self._rng.choice(matches)

    def usage_stats(self) -> List[Tuple[str, int]]:
        """(agent, uses) pairs, most used first."""
        return sorted(self._usage.items(), key=lambda kv: kv[1], reverse=True)

    @staticmethod
    def matching_headers(user_agent: str) -> Dict[str, str]:
        """Request headers a browser with this user agent would send to an API."""
        return {
            "User-Agent": user_agent,
            "Accept": "application/json,text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "gzip, deflate",
            "DNT": "1",
        }
