"""
Shared parsing helpers for search source adapters.

Third-party search APIs disagree on field names and on whether a field holds
a string, a ``{value: ...}`` wrapper, or a list of highlighted segments. These
helpers flatten all of that into plain text so each adapter only declares its
field preferences.
"""

from __future__ import annotations

import random
from typing import Any, Iterable, Optional, Sequence

from noexplorer.extract.html import is_placeholder, strip_html
from noexplorer.models import (
    NormalizedResult,
    canonicalize_url,
    domain_from_url,
    is_http_url,
    now_utc_iso,
)


Path = Sequence[Any]

TEXT_KEYS = ("text", "content", "title", "description", "snippet")
TITLE_KEYS = ("title", "name", "heading")
URL_KEYS = ("url", "link")
SNIPPET_KEYS = ("extract", "snippet", "description", "content")
THUMBNAIL_KEYS = ("image_url", "thumbnail", "imageUrl")
RELEVANCE_KEYS = ("score", "rank")


def get_path(data: Any, path: Path) -> Any:
    """Safely read a nested path from dict/list-like data."""
    cur = data
    for key in path:
        if isinstance(cur, dict):
            if key not in cur:
                return None
            cur = cur[key]
            continue
        if isinstance(cur, list) and isinstance(key, int):
            if key < 0 or key >= len(cur):
                return None
            cur = cur[key]
            continue
        return None
    return cur


def extract_text(value: Any, _depth: int = 0) -> str:
    """
    Flatten a provider field to plain text.

    Handles strings, numbers, ``{"value": ...}`` wrappers, dicts with a
    text-bearing key, and lists of highlighted segments (joined without a
    separator, since segments split words).
    """
    if value is None or _depth > 5:
        return ""
    if isinstance(value, bool):
        return ""
    if isinstance(value, str):
        return strip_html(value)
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return strip_html("".join(_segment(v, _depth + 1) for v in value))
    if isinstance(value, dict):
        if "value" in value:
            return extract_text(value["value"], _depth + 1)
        for key in TEXT_KEYS:
            if key in value:
                text = extract_text(value[key], _depth + 1)
                if text:
                    return text
    return ""


def _segment(value: Any, depth: int) -> str:
    # Segment edges carry the spaces between words
    if isinstance(value, dict) and isinstance(value.get("value"), str):
        return value["value"]
    if isinstance(value, str):
        return value
    return extract_text(value, depth)


def first_text(data: Any, keys: Iterable[Any]) -> str:
    """First non-empty text among candidate keys (or paths)."""
    for key in keys:
        path = key if isinstance(key, (list, tuple)) else (key,)
        text = extract_text(get_path(data, path))
        if text:
            return text
    return ""


def first_number(data: Any, keys: Iterable[str]) -> Optional[float]:
    """First truthy numeric value among candidate keys."""
    for key in keys:
        value = data.get(key) if isinstance(data, dict) else None
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value:
            return float(value)
        if isinstance(value, str):
            try:
                number = float(value)
            except ValueError:
                continue
            if number:
                return number
    return None


def first_url(data: Any, keys: Iterable[Any]) -> str:
    """First URL among candidate keys. Plain strings are taken verbatim, not HTML-stripped."""
    for key in keys:
        path = key if isinstance(key, (list, tuple)) else (key,)
        value = get_path(data, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
        text = extract_text(value)
        if text:
            return text
    return ""


def items_from_payload(payload: Any, *keys: str) -> list:
    """The result list of a payload that is either a list or wraps one."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys or ("results",):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


def build_result(
    item: Any,
    *,
    source: str,
    index: int,
    rng: random.Random,
    title_keys: Iterable[Any] = TITLE_KEYS,
    url_keys: Iterable[Any] = URL_KEYS,
    snippet_keys: Iterable[Any] = SNIPPET_KEYS,
    thumbnail_keys: Iterable[Any] = THUMBNAIL_KEYS,
    relevance_keys: Iterable[str] = RELEVANCE_KEYS,
    base_url: str = "",
) -> Optional[NormalizedResult]:
    """
    Normalize one provider entry, or return None when it is unusable.

    Unusable means no absolute http(s) URL, or placeholder text in the URL,
    title or snippet.
    """
    if not isinstance(item, dict):
        return None

    raw_url = first_url(item, url_keys)
    if not is_http_url(raw_url) or is_placeholder(raw_url):
        return None
    url = canonicalize_url(raw_url)

    title = first_text(item, title_keys) or "Untitled"
    snippet = first_text(item, snippet_keys)
    if is_placeholder(title) or is_placeholder(snippet):
        return None

    thumbnail = first_url(item, thumbnail_keys) or None
    if thumbnail and thumbnail.startswith("/") and base_url:
        thumbnail = base_url.rstrip("/") + thumbnail
    if thumbnail and not is_http_url(thumbnail):
        thumbnail = None

    score = first_number(item, relevance_keys)
    relevance = score if score is not None else rng.random()

    return NormalizedResult(
        id=f"{source}-{url}-{index}",
        title=title,
        url=url,
        snippet=snippet,
        domain=domain_from_url(url),
        relevance=relevance,
        source=source,
        type="web",
        timestamp=now_utc_iso(),
        thumbnail=thumbnail,
        metadata={
            "score": score,
            "source": source,
            "originalIndex": index,
            "raw": item,
        },
    )
