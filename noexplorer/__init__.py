"""
noexplorer: privacy-focused metasearch core.

Queries several public search APIs through a rate-limited, circuit-broken,
retrying request pipeline with optional traffic obfuscation, then merges,
deduplicates, ranks and paginates their results.
"""

__version__ = "1.0.0"

from noexplorer.config import ClientConfig
from noexplorer.errors import APIError, ConfigError, ErrorKind, NoexplorerError
from noexplorer.models import (
    HealthReport,
    NormalizedResult,
    Priority,
    PrivacyLevel,
    PrivacyProfile,
    SearchFilters,
    SearchResponse,
)
from noexplorer.orchestrator import SearchClient, run_search

__all__ = [
    "APIError",
    "ClientConfig",
    "ConfigError",
    "ErrorKind",
    "HealthReport",
    "NoexplorerError",
    "NormalizedResult",
    "Priority",
    "PrivacyLevel",
    "PrivacyProfile",
    "SearchClient",
    "SearchFilters",
    "SearchResponse",
    "run_search",
]
