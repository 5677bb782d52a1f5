"""
Pytest fixtures: an in-memory site served through the fetcher interface.
"""
from typing import Dict, List

import pytest
from bs4 import BeautifulSoup

from microcrawler.core import FetchError


class FakeFetcher:
    """Serves HTML strings by URL and records every fetch."""

    def __init__(self, pages: Dict[str, str]):
        self.pages = pages
        self.calls: List[str] = []

    def fetch(self, url: str) -> BeautifulSoup:
        self.calls.append(url)
        if url not in self.pages:
            raise FetchError(url, "connection_error")
        return BeautifulSoup(self.pages[url], "lxml")


@pytest.fixture
def make_fetcher():
    """Build a FakeFetcher from a {url: html} mapping."""
    return FakeFetcher


@pytest.fixture
def two_page_site():
    return {
        "http://site.test/a": (
            "<html><body><p>contact: a@example.com</p>"
            '<a href="/b">next</a></body></html>'
        ),
        "http://site.test/b": "<html><body><p>contact: b@example.com</p></body></html>",
    }
