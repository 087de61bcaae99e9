"""
Paginated Crawler - drives one job board through its result pages

A crawl is one bounded traversal for a single (board, keyword, location).
It never raises for board-side trouble: navigation failures, a missing result
list or an extraction error end pagination early and the listings gathered so
far are returned.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import List, Optional

from models import Listing, SearchQuery
from pacing import Pacer
from proxy_manager import ProxyManager
from run_metrics import RunMetrics

logger = logging.getLogger(__name__)

NAVIGATION_ATTEMPTS = 3
NAVIGATION_BACKOFF_SECONDS = 2.0
NAVIGATION_TIMEOUT_MS = 30_000
SELECTOR_TIMEOUT_MS = 15_000
PRE_NAVIGATION_PAUSE = (1.0, 3.0)
ROTATION_PAUSE = (5.0, 8.0)

_FRESH_RE = re.compile(r"\b(just posted|today)\b", re.IGNORECASE)
_DAYS_AGO_RE = re.compile(r"(\d+)\s*\+?\s*days?\s+ago", re.IGNORECASE)


def parse_posted_age(text: Optional[str]) -> Optional[int]:
    """
    Age in days of a board recency string, or None when it can't be read.

    "Just posted" / "Today" -> 0, "3 days ago" -> 3, "30+ days ago" -> 30.
    """
    if not text:
        return None
    value = " ".join(text.split())
    if _FRESH_RE.search(value):
        return 0
    match = _DAYS_AGO_RE.search(value)
    if match:
        return int(match.group(1))
    return None


class NavState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    SOFT_STOPPED = "soft_stopped"


class PaginatedCrawler:
    """Walks result pages with retry, pacing, identity rotation and a recency cutoff."""

    def __init__(
        self,
        pacer: Optional[Pacer] = None,
        proxy_manager: Optional[ProxyManager] = None,
        *,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        selector_timeout_ms: int = SELECTOR_TIMEOUT_MS,
        max_attempts: int = NAVIGATION_ATTEMPTS,
        backoff_seconds: float = NAVIGATION_BACKOFF_SECONDS,
        metrics: Optional[RunMetrics] = None,
    ) -> None:
        self.pacer = pacer or Pacer()
        self.proxy_manager = proxy_manager
        self.navigation_timeout_ms = navigation_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms
        self.max_attempts = max(int(max_attempts), 1)
        self.backoff_seconds = backoff_seconds
        self.metrics = metrics

    @classmethod
    def from_config(cls, config, *, pacer: Optional[Pacer] = None, proxy_manager: Optional[ProxyManager] = None,
                    metrics: Optional[RunMetrics] = None) -> "PaginatedCrawler":
        return cls(
            pacer=pacer,
            proxy_manager=proxy_manager,
            navigation_timeout_ms=config.get_navigation_timeout(),
            selector_timeout_ms=config.get_selector_timeout(),
            max_attempts=config.get_max_retries(),
            metrics=metrics,
        )

    def _inc(self, key: str, amount: int = 1) -> None:
        if self.metrics is not None:
            self.metrics.inc(key, amount)

    def _proxy_enabled(self) -> bool:
        return self.proxy_manager is not None and self.proxy_manager.is_enabled()

    def navigate(self, page, url: str) -> NavState:
        """Load `url`, retrying with linear backoff. Never raises."""
        attempt = 1
        state = NavState.ATTEMPTING
        while state is NavState.ATTEMPTING:
            try:
                page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
                state = NavState.SUCCEEDED
            except Exception as exc:
                self._inc("navigation_failures")
                logger.warning("Navigation failed (attempt %s/%s): %s", attempt, self.max_attempts, exc)
                if attempt >= self.max_attempts:
                    state = NavState.SOFT_STOPPED
                else:
                    self.pacer.wait(self.backoff_seconds * attempt, reason="navigation backoff")
                    attempt += 1
        return state

    def _wait_for_results(self, page, selector: str) -> bool:
        try:
            page.wait_for_selector(selector, timeout=self.selector_timeout_ms)
            return True
        except Exception as exc:
            logger.info("Results selector %r not found: %s", selector, exc)
            return False

    def _apply_cutoff(self, listings: List[Listing], max_days_old: Optional[int]) -> tuple[List[Listing], bool]:
        """Keep listings up to the first one older than max_days_old."""
        if max_days_old is None:
            return listings, False
        for index, listing in enumerate(listings):
            age = parse_posted_age(listing.posted_date)
            if age is not None and age > max_days_old:
                logger.info(
                    "Listing %s is %s days old (max %s); stopping pagination",
                    listing.id,
                    age,
                    max_days_old,
                )
                return listings[:index], True
        return listings, False

    def crawl(self, board, session, query: SearchQuery) -> List[Listing]:
        """Collect listings for a single query, starting from the first page."""
        accumulated: List[Listing] = []
        seen_ids: set[str] = set()
        max_pages = max(int(query.max_pages), 0)

        for page_index in range(max_pages):
            if page_index > 0 and self._proxy_enabled():
                try:
                    self.proxy_manager.rotate(reason="pagination")
                    session.refresh_identity()
                except Exception as exc:
                    logger.warning("Identity rotation failed before page %s: %s; returning partial results",
                                   page_index + 1, exc)
                    self._inc("soft_stops")
                    break
                self._inc("proxy_rotations")
                self.pacer.pause(*ROTATION_PAUSE, reason="identity switch")

            self.pacer.pause(*PRE_NAVIGATION_PAUSE, reason="pre-navigation")

            url = board.build_search_url(query, page_index)
            page_label = f"page {page_index + 1}/{max_pages}"
            logger.info("Searching %s: %s (%s)", board.name, query, page_label)
            page = session.page

            if self.navigate(page, url) is NavState.SOFT_STOPPED:
                logger.warning("Failed to load %s after %s attempts; returning partial results", page_label, self.max_attempts)
                self._inc("soft_stops")
                break

            if not self._wait_for_results(page, board.results_selector):
                logger.info("No results container on %s; treating as last page", page_label)
                self._inc("soft_stops")
                break

            try:
                raw = list(board.extract_listings(page))
            except Exception as exc:
                logger.error("Error extracting listings on %s: %s", page_label, exc)
                self._inc("soft_stops")
                break

            self._inc("pages_fetched")
            fresh: List[Listing] = []
            for listing in raw:
                key = listing.dedupe_key
                if key in seen_ids:
                    continue
                seen_ids.add(key)
                fresh.append(listing)

            kept, too_old = self._apply_cutoff(fresh, query.max_days_old)
            accumulated.extend(kept)
            self._inc("listings_kept", len(kept))
            logger.info(
                "Found %s listings on %s (%s new, %s kept)", len(raw), page_label, len(fresh), len(kept)
            )

            if too_old:
                self._inc("recency_stops")
                break

            if len(raw) < board.page_size:
                logger.info("Short page (%s < %s); no more pages", len(raw), board.page_size)
                break

        return accumulated
