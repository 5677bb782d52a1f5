"""
Command-line interface for the crawler.
"""
from __future__ import annotations

import argparse
import json
import re
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from microcrawler.core import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_TIMEOUT_S,
    DEFAULT_USER_AGENT,
    CrawlConfig,
    CrawlResult,
    HtmlLoader,
    crawl,
)
from microcrawler.matching import PRESETS


def print_summary(result: CrawlResult) -> None:
    """Print crawl summary to stderr."""
    stats = result.stats
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("CRAWL SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Requests issued:        {stats.requests_issued}\n")
    sys.stderr.write(f"Pages parsed:           {stats.pages_parsed}\n")
    sys.stderr.write(f"Links discovered:       {stats.links_discovered}\n")
    sys.stderr.write(f"Left unvisited:         {result.frontier.pending}\n")
    sys.stderr.write(f"Distinct matches:       {len(result.collector)}\n\n")

    if stats.error_counts:
        sys.stderr.write("Errors by type:\n")
        for error_type, count in sorted(stats.error_counts.items()):
            if error_type == "connection_error":
                label = "Connection errors"
            elif error_type.isdigit():
                label = f"HTTP {error_type}"
            else:
                label = error_type.replace("_", " ").capitalize()
            sys.stderr.write(f"  {label}: {count}\n")
    else:
        sys.stderr.write("No errors encountered.\n")

    sys.stderr.write("\n")


def generate_output_path(seed_url: str) -> Path:
    """Generate output path: crawls/{hostname}_{datetime}.json"""
    parsed = urlparse(seed_url)
    hostname = parsed.hostname or "unknown"
    # Sanitize hostname for filename (replace dots with underscores)
    hostname_safe = hostname.replace(".", "_")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    crawls_dir = Path("crawls")
    crawls_dir.mkdir(exist_ok=True)

    return crawls_dir / f"{hostname_safe}_{timestamp}.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crawl pages reachable from a seed URL and collect every text matching a pattern."
    )
    parser.add_argument("seed_url", help="Seed URL (e.g. https://example.com)")
    pattern_group = parser.add_mutually_exclusive_group(required=True)
    pattern_group.add_argument("--pattern", help="Regular expression to search for")
    pattern_group.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        help="Use a predefined pattern instead of --pattern",
    )
    parser.add_argument(
        "--max-requests",
        type=int,
        default=DEFAULT_MAX_REQUESTS,
        help=f"Maximum number of pages to fetch (default: {DEFAULT_MAX_REQUESTS})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_S,
        help=f"Request timeout in seconds (default: {DEFAULT_TIMEOUT_S:g})",
    )
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument("--out", help="Output file path, or '-' for stdout (default: auto-generated in crawls/)")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--verbose", action="store_true", help="Show progress and summary")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the crawler CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = CrawlConfig.build(source=args.pattern, preset=args.preset, max_requests=args.max_requests)
    except (ValueError, re.error) as e:
        parser.error(str(e))

    try:
        result = crawl(
            seed_url=args.seed_url,
            config=config,
            fetcher=HtmlLoader(timeout_s=args.timeout, user_agent=args.user_agent),
            verbose=args.verbose,
        )
    except ValueError as e:
        parser.error(str(e))

    # Print summary if verbose
    if args.verbose:
        print_summary(result)

    # Output JSON
    payload = [asdict(record) for record in result.matches()]
    json_text = json.dumps(payload, ensure_ascii=False, indent=2 if args.pretty else None)

    if args.out == "-":
        print(json_text)
    else:
        # Auto-generate path if not specified
        output_path = Path(args.out) if args.out else generate_output_path(args.seed_url)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_text, encoding="utf-8")
        if args.verbose:
            sys.stderr.write(f"Results written to: {output_path}\n")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
