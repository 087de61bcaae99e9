"""
Job board adapter interface.

A board knows how to build its search URLs, recognise its result list and
pull listings out of a rendered page. Pagination, retries and pacing live in
crawler.PaginatedCrawler so every board gets the same behaviour.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from crawler import PaginatedCrawler
from models import Listing, SearchQuery


class AuthenticationError(RuntimeError):
    """Raised when a board login fails; the run cannot continue."""


class JobBoard(ABC):
    name: str = ""
    page_size: int = 10
    results_selector: str = ""

    def search(self, session, query: SearchQuery, crawler: Optional[PaginatedCrawler] = None) -> List[Listing]:
        """Crawl result pages for one query."""
        if crawler is None:
            crawler = PaginatedCrawler()
        return crawler.crawl(self, session, query)

    @abstractmethod
    def build_search_url(self, query: SearchQuery, page_index: int) -> str:
        """URL of result page `page_index` (0-based) for the query."""

    @abstractmethod
    def extract_listings(self, page) -> List[Listing]:
        """Listings on the currently rendered results page, in page order."""

    @abstractmethod
    def get_details(self, page, listing: Listing) -> Listing:
        """Navigate to the posting and return the listing with full details."""

    @abstractmethod
    def apply(self, page, listing: Listing) -> bool:
        """Submit an application. True only when the board confirmed it."""

    @abstractmethod
    def login(self, page) -> bool:
        """Sign in on the page. True when the session is authenticated."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name}>"
