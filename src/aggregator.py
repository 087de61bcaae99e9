"""
Job Aggregator - fans one keyword out over every (board, location) pair

Each pair is an independent crawl. Results are merged in registration order,
de-duplicated, and handed to the store on a best-effort basis: discovery
results are returned even when persistence fails.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from typing import Callable, ContextManager, Dict, List, Optional, Sequence

from boards.base import JobBoard
from crawler import PaginatedCrawler
from job_store import JobStore, JobStoreError
from models import Listing, SearchQuery
from run_metrics import RunMetrics

logger = logging.getLogger(__name__)


def merge_listings(batches: Sequence[Sequence[Listing]]) -> List[Listing]:
    """Flatten batches keeping first-seen order; a repeat id or url is dropped."""
    merged: List[Listing] = []
    seen_ids: set[str] = set()
    seen_urls: set[str] = set()
    for batch in batches:
        for listing in batch:
            if (listing.id and listing.id in seen_ids) or listing.url in seen_urls:
                continue
            if listing.id:
                seen_ids.add(listing.id)
            seen_urls.add(listing.url)
            merged.append(listing)
    return merged


class JobAggregator:
    """Registry of boards plus the multi-board, multi-location search."""

    def __init__(
        self,
        crawler: Optional[PaginatedCrawler] = None,
        store: Optional[JobStore] = None,
        *,
        max_workers: int = 1,
        session_factory: Optional[Callable[[], ContextManager]] = None,
        max_days_old: Optional[int] = 7,
        max_pages: int = 5,
        metrics: Optional[RunMetrics] = None,
    ) -> None:
        self.crawler = crawler or PaginatedCrawler()
        self.store = store
        self.max_workers = max(int(max_workers), 1)
        self.session_factory = session_factory
        self.max_days_old = max_days_old
        self.max_pages = max_pages
        self.metrics = metrics
        self._boards: Dict[str, JobBoard] = {}

    def add_board(self, board: JobBoard) -> None:
        if board.name in self._boards:
            logger.warning("Board %s already registered; replacing", board.name)
        self._boards[board.name] = board
        logger.info("Registered board: %s", board.name)

    def get_board(self, name: str) -> Optional[JobBoard]:
        return self._boards.get(name)

    @property
    def boards(self) -> List[JobBoard]:
        return list(self._boards.values())

    def _build_query(self, keyword: str, location: str, radius: int) -> SearchQuery:
        return SearchQuery(
            keyword=keyword,
            location=location,
            radius=radius,
            max_days_old=self.max_days_old,
            max_pages=self.max_pages,
        )

    def _run_branch(self, board: JobBoard, session, query: SearchQuery) -> List[Listing]:
        label = f"{board.name} / {query.location}"
        try:
            session_cm = nullcontext(session) if session is not None else self.session_factory()
            with session_cm as branch_session:
                listings = self.crawler.crawl(board, branch_session, query)
        except Exception as exc:
            logger.error("[%s] branch FAILED: %s", label, exc)
            if self.metrics is not None:
                self.metrics.record_event("branch_failed", board=board.name, location=query.location, error=str(exc))
            return []
        logger.info("[%s] returned %d listings", label, len(listings))
        return listings

    def search_across(
        self,
        boards: Sequence[JobBoard],
        session,
        keyword: str,
        locations: Sequence[str],
        radius: int = 25,
    ) -> List[Listing]:
        """
        Crawl every (board, location) pair and return merged, de-duplicated listings.

        With max_workers > 1 and a session factory, branches run on a thread pool
        with one browser session each; otherwise they share `session` serially.
        """
        branches = [
            (board, self._build_query(keyword, location, radius))
            for board in boards
            for location in locations
        ]
        if not branches:
            return []

        parallel = self.max_workers > 1 and self.session_factory is not None and len(branches) > 1
        if parallel:
            workers = min(self.max_workers, len(branches))
            logger.info("Searching %d branch(es) with %d workers...", len(branches), workers)
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self._run_branch, board, None, query) for board, query in branches]
                results = [future.result() for future in futures]
        else:
            if session is None and self.session_factory is None:
                raise ValueError("search_across needs a session or a session factory")
            results = [self._run_branch(board, session, query) for board, query in branches]

        merged = merge_listings(results)
        raw_total = sum(len(r) for r in results)
        logger.info("Merged %d listings into %d unique", raw_total, len(merged))
        if self.metrics is not None:
            self.metrics.inc("listings_discovered", raw_total)
            self.metrics.inc("listings_unique", len(merged))

        if merged and self.store is not None:
            try:
                written = self.store.upsert_many(merged)
                logger.info("Persisted %d listings", written)
                if self.metrics is not None:
                    self.metrics.inc("listings_persisted", written)
            except JobStoreError as exc:
                logger.error("Failed to persist discovered listings: %s", exc)

        return merged

    def search(self, session, keyword: str, locations: Sequence[str], radius: int = 25,
               board_names: Optional[Sequence[str]] = None) -> List[Listing]:
        """search_across over registered boards (all, or the named subset)."""
        if board_names:
            boards = [self._boards[name] for name in board_names if name in self._boards]
        else:
            boards = self.boards
        return self.search_across(boards, session, keyword, locations, radius)
