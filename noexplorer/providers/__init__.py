"""
Search source adapters for noexplorer.

Each adapter knows one provider's request format and response shape and
produces NormalizedResult objects.
"""

from noexplorer.providers.base import SourceAdapter
from noexplorer.providers.duckduckgo import DuckDuckGoProvider
from noexplorer.providers.mwmbl import MwmblProvider
from noexplorer.providers.searxng import SearxngProvider

__all__ = [
    "SourceAdapter",
    "DuckDuckGoProvider",
    "MwmblProvider",
    "SearxngProvider",
]
