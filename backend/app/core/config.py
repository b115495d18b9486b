"""
Application configuration via environment variables.
"""

import json
import os
from functools import lru_cache
from typing import Any, List, Union

from pydantic import Field, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings

from noexplorer.config import (
    DEFAULT_DUCKDUCKGO_URL,
    AggregatorConfig,
    ClientConfig,
    DecoyConfig,
    RateLimitConfig,
)
from noexplorer.models import PrivacyLevel, PrivacyProfile, ProxyType

_CORS_ENV = "NOEXPLORER_CORS_ORIGINS"
_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]
_DEFAULT_CORS_RAW = json.dumps(_DEFAULT_CORS)


def _parse_list(v: Any) -> List[str]:
    """Parse a list from a JSON array string or comma-separated string. Never raises."""
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return [x.strip() for x in v if isinstance(x, str) and x.strip()]
    if not isinstance(v, str) or not v.strip():
        return []
    v = v.strip()
    # Try JSON list first
    try:
        parsed = json.loads(v)
        if isinstance(parsed, list):
            return [x.strip() for x in parsed if isinstance(x, str) and x.strip()]
    except (json.JSONDecodeError, TypeError):
        pass
    # Single-quoted JSON
    try:
        parsed = json.loads(v.replace("'", '"'))
        if isinstance(parsed, list):
            return [x.strip() for x in parsed if isinstance(x, str) and x.strip()]
    except (json.JSONDecodeError, TypeError):
        pass
    # Comma-separated
    if "," in v:
        return [x.strip() for x in v.split(",") if x.strip()]
    return [v]


def _parse_cors_origins(v: str) -> List[str]:
    """Parse CORS origins from env string, falling back to the local dev origins."""
    return _parse_list(v) or list(_DEFAULT_CORS)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "noexplorer API"
    debug: bool = False
    api_prefix: str = "/api"
    log_level: str = "INFO"

    # CORS: read NOEXPLORER_CORS_ORIGINS from os.environ in a validator so
    # pydantic-settings never tries to JSON-decode it.
    cors_origins_raw: str = Field(
        default=_DEFAULT_CORS_RAW,
        description="JSON array or comma-separated origins",
    )

    @model_validator(mode="before")
    @classmethod
    def inject_cors_from_env(cls, data: Any) -> Any:
        env_val = os.environ.get(_CORS_ENV)
        if env_val is not None and isinstance(data, dict):
            data["cors_origins_raw"] = env_val
        return data

    @computed_field
    @property
    def cors_origins_list(self) -> List[str]:
        """Parsed CORS origins."""
        return _parse_cors_origins(self.cors_origins_raw)

    # Sources
    # NOTE: Union[...] prevents pydantic-settings from crashing on non-JSON env strings.
    enabled_sources: Union[str, List[str], None] = ["mwmbl", "searxng", "duckduckgo"]
    searxng_instances: Union[str, List[str], None] = []
    mwmbl_endpoints: Union[str, List[str], None] = []
    duckduckgo_url: str = DEFAULT_DUCKDUCKGO_URL
    source_timeout_ms: int = 10000

    @field_validator("enabled_sources", "searxng_instances", "mwmbl_endpoints", mode="before")
    @classmethod
    def parse_string_lists(cls, v: Any) -> List[str]:
        """Parse source lists from JSON string or comma-separated list."""
        return _parse_list(v)

    # Privacy
    privacy_level: str = PrivacyLevel.ENHANCED.value
    privacy_rotate_identity: bool = True
    privacy_randomize_timing: bool = True
    privacy_obfuscate_traffic: bool = True
    privacy_dns_over_https: bool = False
    privacy_doh_provider: str = "cloudflare"
    proxy_url: str = ""
    decoy_traffic_enabled: bool = False

    # Outbound rate limiting
    outbound_requests_per_second: float = 8
    outbound_max_concurrent: int = 4
    outbound_max_retries: int = 3

    # Inbound rate limiting (per client IP)
    search_rate_limit_per_minute: int = 60

    # Paging
    max_results_per_page: int = 50

    def privacy_profile(self) -> PrivacyProfile:
        """Privacy profile built from the privacy_* settings."""
        return PrivacyProfile(
            level=PrivacyLevel.from_text(self.privacy_level),
            rotate_identity=self.privacy_rotate_identity,
            randomize_timing=self.privacy_randomize_timing,
            obfuscate_traffic=self.privacy_obfuscate_traffic,
            fake_queries=self.decoy_traffic_enabled,
            dns_over_https=self.privacy_dns_over_https,
            doh_provider=self.privacy_doh_provider,
            use_proxy=bool(self.proxy_url),
            proxy_type=ProxyType.HTTP if self.proxy_url else ProxyType.NONE,
            proxy_url=self.proxy_url,
        )

    def to_client_config(self) -> ClientConfig:
        """Translate settings into the search client's configuration."""
        kwargs: dict = {}
        if self.mwmbl_endpoints:
            kwargs["mwmbl_endpoints"] = tuple(self.mwmbl_endpoints)
        return ClientConfig(
            enabled_sources=tuple(s.lower() for s in self.enabled_sources),
            searxng_instances=tuple(self.searxng_instances),
            duckduckgo_url=self.duckduckgo_url,
            source_timeout_ms=self.source_timeout_ms,
            privacy=self.privacy_profile(),
            rate_limit=RateLimitConfig(
                max_requests_per_second=self.outbound_requests_per_second,
                max_concurrent_requests=self.outbound_max_concurrent,
                max_retries=self.outbound_max_retries,
                max_delay_ms=10000,
            ),
            aggregator=AggregatorConfig(max_limit=self.max_results_per_page),
            decoy=DecoyConfig(enabled=self.decoy_traffic_enabled),
            **kwargs,
        )

    class Config:
        env_prefix = "NOEXPLORER_"
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
