"""
Bounded breadth-first crawler that collects pattern matches from a seed URL.
Outputs one record per distinct matched value, with the surrounding page text.
"""
from microcrawler.core import (
    CrawlConfig,
    CrawlResult,
    CrawlState,
    CrawlStats,
    FetchError,
    Frontier,
    HtmlLoader,
    analyze,
    crawl,
    extract_links,
    resolve_url,
)
from microcrawler.matching import MatchRecord, compile_pattern, find_all, scan_document, walk

__version__ = "1.0.0"
__all__ = [
    "CrawlConfig",
    "CrawlResult",
    "CrawlState",
    "CrawlStats",
    "FetchError",
    "Frontier",
    "HtmlLoader",
    "MatchRecord",
    "analyze",
    "compile_pattern",
    "crawl",
    "extract_links",
    "find_all",
    "resolve_url",
    "scan_document",
    "walk",
]
