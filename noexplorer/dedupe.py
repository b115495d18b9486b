"""
Ranking, deduplication and domain diversity for merged search results.

Pipeline, applied to the concatenation of every source's results:
1. Rank: over-represented domains last, diverse sources first, then relevance
2. Deduplicate by canonical URL (first occurrence in ranked order wins)
3. Cap results per domain (tighter cap for over-represented domains)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from noexplorer.models import NormalizedResult, canonicalize_url


@dataclass
class DedupeResult:
    """Result of ranking and deduplication."""
    unique_results: List[NormalizedResult]
    duplicates_removed: int
    capped_by_domain: int


class DedupeEngine:
    """
    Stateless apart from its configuration; safe to share between searches.
    """

    def __init__(
        self,
        domain_cap: int = 3,
        over_represented_cap: int = 2,
        over_represented_marker: str = "wikipedia",
        diverse_sources: Sequence[str] = ("duckduckgo", "brave", "startpage"),
    ):
        self.domain_cap = domain_cap
        self.over_represented_cap = over_represented_cap
        self.over_represented_marker = over_represented_marker.lower()
        self.diverse_sources: Set[str] = {s.lower() for s in diverse_sources}

    def is_over_represented(self, domain: str) -> bool:
        return self.over_represented_marker in (domain or "").lower()

    def cap_for(self, domain: str) -> int:
        if self.is_over_represented(domain):
            return self.over_represented_cap
        return self.domain_cap

    def sort_key(self, result: NormalizedResult) -> Tuple[bool, bool, float]:
        return (
            self.is_over_represented(result.domain),
            result.source.lower() not in self.diverse_sources,
            -result.relevance,
        )

    def rank(self, results: Iterable[NormalizedResult]) -> List[NormalizedResult]:
        """Stable sort by the ranking key."""
        return sorted(results, key=self.sort_key)

    def dedupe(self, results: Iterable[NormalizedResult]) -> DedupeResult:
        ranked = self.rank(results)

        seen_urls: Set[str] = set()
        per_domain: Dict[str, int] = {}
        unique: List[NormalizedResult] = []
        duplicates = 0
        capped = 0

        for result in ranked:
            key = canonicalize_url(result.url)
            if key in seen_urls:
                duplicates += 1
                continue
            seen_urls.add(key)

            count = per_domain.get(result.domain, 0)
            if count >= self.cap_for(result.domain):
                capped += 1
                continue
            per_domain[result.domain] = count + 1
            unique.append(result)

        return DedupeResult(
            unique_results=unique,
            duplicates_removed=duplicates,
            capped_by_domain=capped,
        )
