"""
Command-line interface for noexplorer.

Usage:
    noexplorer "weather amsterdam" --limit 5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from noexplorer.config import ClientConfig, KNOWN_SOURCES
from noexplorer.errors import ConfigError
from noexplorer.models import PrivacyLevel, PrivacyProfile, ProxyType, SearchFilters, SearchResponse


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="noexplorer",
        description="Privacy-focused metasearch over public search APIs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic search
  noexplorer "weather"

  # Second page, five results per page
  noexplorer "python asyncio" --page 2 --limit 5

  # Only some sources, with a SearXNG instance
  noexplorer "rust" --sources mwmbl,searxng --searxng https://searx.example.org

  # Strongest timing/identity shaping, DNS over HTTPS, JSON output
  noexplorer "privacy tools" --privacy-level paranoid --doh --json
""",
    )

    parser.add_argument("query", help="Search query")
    parser.add_argument("--page", "-p", type=int, default=1, help="Result page (default: 1)")
    parser.add_argument("--limit", "-n", type=int, default=10, help="Results per page (default: 10)")
    parser.add_argument("--domain", default=None, help="Only show results from this domain")
    parser.add_argument(
        "--sources",
        default=",".join(KNOWN_SOURCES),
        help=f"Comma-separated sources (default: {','.join(KNOWN_SOURCES)})",
    )
    parser.add_argument(
        "--searxng",
        action="append",
        default=[],
        metavar="URL",
        help="SearXNG instance base URL (repeatable)",
    )

    # Privacy
    parser.add_argument(
        "--privacy-level",
        choices=[level.value for level in PrivacyLevel],
        default=PrivacyLevel.ENHANCED.value,
        help="Privacy level (default: enhanced)",
    )
    parser.add_argument(
        "--no-privacy",
        action="store_true",
        help="Disable identity rotation, timing jitter and decoy headers",
    )
    parser.add_argument("--doh", action="store_true", help="Resolve hostnames via DNS-over-HTTPS")
    parser.add_argument("--proxy", default="", help="HTTP proxy URL")

    # Output
    parser.add_argument("--json", action="store_true", help="Print the raw response as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Build a ClientConfig from parsed arguments."""
    level = PrivacyLevel.from_text(args.privacy_level)
    if args.no_privacy:
        profile = PrivacyProfile.disabled()
    else:
        profile = PrivacyProfile(level=level)
    if args.doh or args.proxy:
        profile = replace(
            profile,
            dns_over_https=args.doh,
            use_proxy=bool(args.proxy),
            proxy_type=ProxyType.HTTP if args.proxy else profile.proxy_type,
            proxy_url=args.proxy,
        )

    sources = tuple(s.strip().lower() for s in args.sources.split(",") if s.strip())
    return ClientConfig(
        enabled_sources=sources,
        searxng_instances=tuple(args.searxng),
        privacy=profile,
    )


def print_response(response: SearchResponse, limit: int) -> None:
    if response.error and not response.results:
        print(f"No results ({response.error.message})")
        return
    print(f"{response.total_count} results for {response.query!r} (page {response.page}, {response.search_time:.0f}ms)")
    print()
    start = (response.page - 1) * limit
    for i, r in enumerate(response.results, start=start + 1):
        print(f"{i:>3}. {r.title}")
        print(f"     {r.url}")
        if r.snippet:
            print(f"     {r.snippet[:160]}")
        print(f"     [{r.source}] {r.domain}")
    if response.has_more:
        print()
        print(f"More results: --page {response.page + 1}")


async def async_main(args: argparse.Namespace) -> int:
    """Async entry point."""
    from noexplorer.orchestrator import SearchClient

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    filters = SearchFilters(domain=args.domain) if args.domain else None
    async with SearchClient(config) as client:
        response = await client.search(args.query, page=args.page, limit=args.limit, filters=filters)

    if args.json:
        print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
    else:
        print_response(response, args.limit)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
