"""
Core crawling logic and data structures.

Breadth-first crawl from a seed URL under a fixed request budget. Every
fetched page is scanned with the crawl's pattern and its links are appended
to the frontier; each URL is fetched at most once.
"""
from __future__ import annotations

import re
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Protocol, Set
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup, ParserRejectedMarkup

from microcrawler.matching import MatchCollector, MatchRecord, compile_pattern, scan_document

DEFAULT_MAX_REQUESTS = 100
DEFAULT_TIMEOUT_S = 15.0
DEFAULT_USER_AGENT = "MicroCrawler/1.0"

CRAWLABLE_SCHEMES: frozenset[str] = frozenset(("http", "https"))


@dataclass(frozen=True, slots=True)
class CrawlConfig:
    """Immutable settings for one crawl: the pattern and the request budget."""
    pattern: re.Pattern[str]
    max_requests: int = DEFAULT_MAX_REQUESTS

    def __post_init__(self) -> None:
        if self.pattern is None:
            raise ValueError("A crawl needs a pattern; nothing would be matched without one")
        if not isinstance(self.pattern, re.Pattern):
            raise ValueError(f"pattern must be a compiled regular expression, got {type(self.pattern).__name__}")
        if isinstance(self.max_requests, bool) or not isinstance(self.max_requests, int) or self.max_requests < 1:
            raise ValueError(f"max_requests must be a positive integer, got {self.max_requests!r}")

    @classmethod
    def build(
        cls,
        source: Optional[str] = None,
        preset: Optional[str] = None,
        max_requests: int = DEFAULT_MAX_REQUESTS,
    ) -> "CrawlConfig":
        """Compile a pattern from raw source or a preset name and wrap it in a config."""
        return cls(pattern=compile_pattern(source=source, preset=preset), max_requests=max_requests)


@dataclass(slots=True)
class CrawlStats:
    """Statistics collected during crawl for summary output."""
    requests_issued: int = 0
    pages_parsed: int = 0
    links_discovered: int = 0
    error_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_error(self, reason: str) -> None:
        """Record a failed fetch by reason (connection_error, non_html or a status code)."""
        self.error_counts[reason] += 1

    def record_page(self, new_links: int) -> None:
        """Record a successfully parsed page."""
        self.pages_parsed += 1
        self.links_discovered += new_links


class FetchError(Exception):
    """A URL could not be turned into an HTML document."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class Fetcher(Protocol):
    def fetch(self, url: str) -> BeautifulSoup: ...


class HtmlLoader:
    """Fetches a URL over HTTP and parses it into a BeautifulSoup document."""

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent

    def fetch(self, url: str) -> BeautifulSoup:
        """
        Fetch and parse one page.

        Raises FetchError for transport failures, URLs the HTTP stack cannot
        parse, HTTP error statuses, non-HTML responses and undecodable or
        rejected markup.
        """
        try:
            resp = self.session.get(url, timeout=self.timeout_s, allow_redirects=True)
        except requests.RequestException as e:
            raise FetchError(url, "connection_error") from e
        except ValueError as e:
            # urllib3's LocationParseError, bad IDNA labels
            raise FetchError(url, "invalid_url") from e

        if resp.status_code >= 400:
            raise FetchError(url, str(resp.status_code), status_code=resp.status_code)

        # Only parse HTML content
        content_type = (resp.headers.get("content-type") or "").lower()
        if "text/html" not in content_type:
            raise FetchError(url, "non_html", status_code=resp.status_code)

        try:
            return BeautifulSoup(resp.text, "lxml")
        except (ParserRejectedMarkup, ValueError) as e:
            raise FetchError(url, "parse_error", status_code=resp.status_code) from e


def resolve_url(base: str, href: Optional[str]) -> Optional[str]:
    """
    Resolve href against base into an absolute, crawlable URL.

    - Joins relative and scheme-relative hrefs against base
    - Drops fragments (#...)
    - Normalizes scheme/host case
    - Removes default ports (:80, :443)
    - Keeps querystrings (they matter for uniqueness)

    Blank, unparsable and non-http(s) hrefs give None.
    """
    if not href or not href.strip():
        return None

    try:
        joined, _ = urldefrag(urljoin(base, href.strip()))
        parsed = urlparse(joined)
        port = parsed.port
    except ValueError:
        return None

    if parsed.scheme not in CRAWLABLE_SCHEMES:
        return None

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        return None
    if ":" in hostname:
        # IPv6 literal
        hostname = f"[{hostname}]"

    if (parsed.scheme == "http" and port == 80) or (parsed.scheme == "https" and port == 443):
        netloc = hostname
    elif port:
        netloc = f"{hostname}:{port}"
    else:
        netloc = hostname

    return urlunparse((
        parsed.scheme.lower(),
        netloc,
        parsed.path or "/",
        parsed.params,
        parsed.query,
        ""  # No fragment
    ))


def extract_links(doc: BeautifulSoup, base_url: str) -> Set[str]:
    """Return the absolute URLs of all anchors in doc, resolved against base_url."""
    links: Set[str] = set()
    for anchor in doc.find_all("a", href=True):
        target = resolve_url(base_url, anchor.get("href"))
        if target:
            links.add(target)
    return links


class CrawlState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"


class Frontier:
    """
    Ordered, duplicate-free set of every URL the crawl knows about.

    Serves as both queue and visited set: URLs are handed out in insertion
    order and a URL once added is never added or handed out again.
    """

    def __init__(self, seed_url: str) -> None:
        self._seen: Set[str] = {seed_url}
        self._order = [seed_url]
        self._cursor = 0
        self.state = CrawlState.PENDING

    def add_all(self, urls: Iterable[str]) -> int:
        """Append unseen URLs; returns how many were new."""
        added = 0
        for url in urls:
            if url not in self._seen:
                self._seen.add(url)
                self._order.append(url)
                added += 1
        return added

    def next_pending(self) -> Optional[str]:
        """Hand out the next unprocessed URL, or None when drained."""
        if self._cursor >= len(self._order):
            return None
        url = self._order[self._cursor]
        self._cursor += 1
        return url

    @property
    def pending(self) -> int:
        return len(self._order) - self._cursor

    @property
    def processed(self) -> int:
        return self._cursor

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)


@dataclass(slots=True)
class CrawlResult:
    """Outcome of a crawl: committed matches plus bookkeeping."""
    collector: MatchCollector
    stats: CrawlStats
    frontier: Frontier

    def matches(self) -> Iterator[MatchRecord]:
        """Lazily yield one MatchRecord per distinct matched value."""
        return self.collector.records()


def print_progress(
    processed: int,
    discovered: int,
    queue_size: int,
    max_requests: int,
) -> None:
    """Print real-time progress to stderr."""
    # Clear line and print progress
    progress = f"\r\033[K[{processed}/{max_requests}] Visited: {processed} | Discovered: {discovered} | Queue: {queue_size}"
    sys.stderr.write(progress)
    sys.stderr.flush()


def print_scan_line(url: str, new_links: int, new_matches: int) -> None:
    """Print single scan result line."""
    sys.stderr.write(f"\n  → OK {url} (+{new_links} links, {new_matches} matches)")
    sys.stderr.flush()


def crawl(
    seed_url: str,
    config: CrawlConfig,
    fetcher: Optional[Fetcher] = None,
    verbose: bool = False,
) -> CrawlResult:
    """
    Crawl breadth-first from seed_url, matching config.pattern on every page.

    Args:
        seed_url: The URL to start crawling from.
        config: Pattern and request budget for this crawl.
        fetcher: Object with a fetch(url) method returning a parsed document;
                 defaults to an HtmlLoader.
        verbose: Whether to print progress information.

    Returns:
        CrawlResult with the match records, statistics and final frontier.
    """
    # Normalize and validate seed URL
    seed = resolve_url(seed_url, seed_url)
    if not seed:
        raise ValueError(f"Invalid seed URL: {seed_url}")

    fetcher = fetcher or HtmlLoader()
    frontier = Frontier(seed)
    collector = MatchCollector()
    stats = CrawlStats()

    if verbose:
        sys.stderr.write(f"Starting crawl from: {seed}\n")
        sys.stderr.write(f"Max requests: {config.max_requests}\n")
        sys.stderr.write(f"Pattern: {config.pattern.pattern[:60]}\n\n")

    frontier.state = CrawlState.RUNNING
    while stats.requests_issued < config.max_requests:
        url = frontier.next_pending()
        if url is None:
            break

        if verbose:
            print_progress(stats.requests_issued, len(frontier), frontier.pending, config.max_requests)

        stats.requests_issued += 1
        try:
            doc = fetcher.fetch(url)
        except FetchError as e:
            if verbose:
                sys.stderr.write(f"\n  ✗ ERROR {url}: {e.reason}")
            stats.record_error(e.reason)
            continue

        new_matches = collector.fold(scan_document(doc, config.pattern))
        # Sorted so that the visiting order does not depend on set ordering
        new_links = frontier.add_all(sorted(extract_links(doc, url)))
        stats.record_page(new_links)

        if verbose:
            print_scan_line(url, new_links, new_matches)

    frontier.state = CrawlState.DONE
    if verbose:
        sys.stderr.write("\n\n")

    return CrawlResult(collector=collector, stats=stats, frontier=frontier)


def analyze(
    seed_url: str,
    source: Optional[str] = None,
    preset: Optional[str] = None,
    max_requests: int = DEFAULT_MAX_REQUESTS,
    fetcher: Optional[Fetcher] = None,
) -> Iterator[MatchRecord]:
    """Shortcut: build a config, crawl and return the match record stream."""
    config = CrawlConfig.build(source=source, preset=preset, max_requests=max_requests)
    return crawl(seed_url, config, fetcher=fetcher).matches()
