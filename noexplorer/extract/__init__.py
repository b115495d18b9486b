"""
Extraction utilities for noexplorer.

Provides:
- HTML-to-text stripping for snippets and titles
- Placeholder detection for broken upstream fields
"""

from noexplorer.extract.html import is_placeholder, strip_html

__all__ = [
    "is_placeholder",
    "strip_html",
]
