"""
Mwmbl search provider.

Mwmbl is a non-profit, community-crawled search engine with a public JSON
API. Titles and extracts arrive as lists of highlighted segments
(``[{"value": "...", "is_bold": true}, ...]``).
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from noexplorer.models import NormalizedResult
from noexplorer.providers._provider_utils import build_result, items_from_payload
from noexplorer.providers.base import SourceAdapter


class MwmblProvider(SourceAdapter):
    """Provider for the Mwmbl search API (primary endpoint plus mirror)."""

    name = "mwmbl"

    def build_request(self, endpoint: str, query: str) -> Tuple[str, Dict[str, Any]]:
        return endpoint, {"s": query}

    def parse(self, payload: Any, endpoint: str) -> List[NormalizedResult]:
        results: List[NormalizedResult] = []
        for index, item in enumerate(items_from_payload(payload, "results")):
            result = build_result(item, source=self.name, index=index, rng=self.rng)
            if result is not None:
                results.append(result)
        return results
