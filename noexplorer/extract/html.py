"""
HTML cleanup for provider snippets.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

_TAG_RE = re.compile(r"<[a-zA-Z/!][^>]*>")
_TEMPLATE_RE = re.compile(r"\{\{.*?\}\}")

PLACEHOLDER_MARKERS = ("[object Object]", "undefined", "null")


def strip_html(html: str, max_len: int = 2000) -> str:
    """
    Convert an HTML fragment to plain text.

    Plain strings skip the parser entirely.
    """
    if not html:
        return ""
    if not _TAG_RE.search(html) and "&" not in html:
        return re.sub(r"\s+", " ", html).strip()[:max_len]

    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(" ", strip=True)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_len]


def is_placeholder(text: str) -> bool:
    """True for values that are leftovers of failed serialization or templating."""
    t = (text or "").strip()
    if not t:
        return False
    if "[object Object]" in t:
        return True
    if t in PLACEHOLDER_MARKERS:
        return True
    return bool(_TEMPLATE_RE.search(t))
