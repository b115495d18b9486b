"""
DuckDuckGo Instant Answer provider.

The Instant Answer API returns an abstract plus ``Results`` and
``RelatedTopics``; topic groups nest further entries under ``Topics``.
Entries carry ``FirstURL`` and a ``Text`` of the form "Title - description".
Icon URLs are site-relative.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Tuple

from noexplorer.models import NormalizedResult
from noexplorer.providers._provider_utils import build_result, extract_text
from noexplorer.providers.base import SourceAdapter

ICON_BASE = "https://duckduckgo.com"


def _flatten_topics(topics: Any) -> Iterator[Dict[str, Any]]:
    for topic in topics or []:
        if not isinstance(topic, dict):
            continue
        if isinstance(topic.get("Topics"), list):
            yield from _flatten_topics(topic["Topics"])
        elif topic.get("FirstURL"):
            yield topic


def _split_text(text: str) -> Tuple[str, str]:
    if " - " in text:
        title, rest = text.split(" - ", 1)
        return title.strip(), rest.strip()
    return text, text


class DuckDuckGoProvider(SourceAdapter):
    """Provider for the DuckDuckGo Instant Answer API."""

    name = "duckduckgo"

    def build_request(self, endpoint: str, query: str) -> Tuple[str, Dict[str, Any]]:
        return endpoint, {"q": query, "format": "json", "no_html": 1, "skip_disambig": 1}

    def _entries(self, payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        abstract_url = payload.get("AbstractURL") or ""
        if abstract_url:
            yield {
                "title": extract_text(payload.get("Heading")),
                "url": abstract_url,
                "snippet": extract_text(payload.get("AbstractText")),
                "thumbnail": payload.get("Image") or None,
            }
        for entry in list(_flatten_topics(payload.get("Results"))) + list(_flatten_topics(payload.get("RelatedTopics"))):
            text = extract_text(entry.get("Text"))
            icon = entry.get("Icon") if isinstance(entry.get("Icon"), dict) else {}
            title, snippet = _split_text(text)
            yield {
                "title": title,
                "url": entry.get("FirstURL"),
                "snippet": snippet,
                "thumbnail": icon.get("URL") or None,
            }

    def parse(self, payload: Any, endpoint: str) -> List[NormalizedResult]:
        if not isinstance(payload, dict):
            return []
        results: List[NormalizedResult] = []
        for index, entry in enumerate(self._entries(payload)):
            result = build_result(entry, source=self.name, index=index, rng=self.rng, base_url=ICON_BASE)
            if result is not None:
                results.append(result)
        return results
