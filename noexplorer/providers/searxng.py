"""
SearXNG metasearch provider.

Any public SearXNG instance with the JSON output format enabled works:
``{instance}/search?q=...&format=json``. SearXNG reports which upstream
engine produced each hit, and that engine name becomes the result's source.
"""

from __future__ import annotations

import urllib.parse
from typing import Any, Dict, List, Tuple

from noexplorer.models import NormalizedResult
from noexplorer.providers._provider_utils import build_result, extract_text, items_from_payload
from noexplorer.providers.base import SourceAdapter


class SearxngProvider(SourceAdapter):
    """Provider for SearXNG instances, tried in configured order."""

    name = "searxng"

    def build_request(self, endpoint: str, query: str) -> Tuple[str, Dict[str, Any]]:
        base = endpoint.rstrip("/")
        if not base.endswith("/search"):
            base += "/search"
        return base, {"q": query, "format": "json", "safesearch": 1}

    def parse(self, payload: Any, endpoint: str) -> List[NormalizedResult]:
        results: List[NormalizedResult] = []
        origin = urllib.parse.urlsplit(endpoint)
        for index, item in enumerate(items_from_payload(payload, "results")):
            if not isinstance(item, dict):
                continue
            engine = extract_text(item.get("engine")).lower() or self.name
            result = build_result(
                item,
                source=engine,
                index=index,
                rng=self.rng,
                snippet_keys=("content", "snippet", "description"),
                thumbnail_keys=("thumbnail", "img_src", "thumbnail_src"),
                base_url=f"{origin.scheme}://{origin.netloc}",
            )
            if result is not None:
                results.append(result)
        return results
