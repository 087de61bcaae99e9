"""
Application Loop - quota-bounded, paced application submission
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from boards.base import JobBoard
from job_store import JobStore, JobStoreError
from models import ApplicationOutcome, Listing
from pacing import Pacer
from run_metrics import RunMetrics

logger = logging.getLogger(__name__)

APPLICATION_PAUSE = (5.0, 10.0)


def start_of_today(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class ApplicationLoop:
    """
    Applies to candidates in order until the daily quota or the list runs out.

    Every attempt is recorded. A failed application never stops the loop and is
    not retried within the same run.
    """

    def __init__(
        self,
        boards: Dict[str, JobBoard],
        session,
        store: JobStore,
        pacer: Optional[Pacer] = None,
        *,
        dry_run: bool = False,
        metrics: Optional[RunMetrics] = None,
    ) -> None:
        self.boards = boards
        self.session = session
        self.store = store
        self.pacer = pacer or Pacer()
        self.dry_run = dry_run
        self.metrics = metrics

    def _inc(self, key: str) -> None:
        if self.metrics is not None:
            self.metrics.inc(key)

    def _record(self, outcome: ApplicationOutcome) -> None:
        try:
            self.store.record_outcome(outcome)
        except JobStoreError as exc:
            logger.error("Could not record outcome for %s: %s", outcome.job_id, exc)

    def _attempt(self, listing: Listing) -> ApplicationOutcome:
        board = self.boards.get(listing.source)
        if board is None:
            return ApplicationOutcome(job_id=listing.id, success=False, error=f"No board registered for source {listing.source!r}")

        page = self.session.page
        try:
            detailed = board.get_details(page, listing)
            submitted = board.apply(page, detailed)
        except Exception as exc:
            logger.warning("Application to %s raised: %s", listing, exc)
            return ApplicationOutcome(job_id=listing.id, success=False, error=str(exc)[:300])

        if not submitted:
            return ApplicationOutcome(job_id=listing.id, success=False, error="Board did not confirm submission")
        return ApplicationOutcome(job_id=listing.id, success=True)

    def _dry_run(self, listing: Listing) -> None:
        board = self.boards.get(listing.source)
        if board is None:
            logger.info("[dry-run] No board for %s; skipping", listing)
            return
        try:
            board.get_details(self.session.page, listing)
        except Exception as exc:
            logger.warning("[dry-run] Detail fetch failed for %s: %s", listing, exc)
        logger.info("[dry-run] Would apply: %s (%s)", listing, listing.url)

    def run(self, candidates: Iterable[Listing], daily_quota: int, already_submitted_today: int = 0) -> int:
        """Apply to unapplied candidates; returns how many were submitted this run."""
        submitted = 0
        for listing in candidates:
            if listing.applied:
                continue

            if already_submitted_today + submitted >= daily_quota:
                logger.info(
                    "Daily quota reached (%s/%s); stopping",
                    already_submitted_today + submitted,
                    daily_quota,
                )
                self._inc("quota_stops")
                break

            if self.dry_run:
                self._dry_run(listing)
                submitted += 1
            else:
                logger.info("Applying: %s", listing)
                outcome = self._attempt(listing)
                self._record(outcome)
                if outcome.success:
                    try:
                        self.store.mark_applied(listing.url, outcome.timestamp)
                    except JobStoreError as exc:
                        logger.error("Applied to %s but could not mark it: %s", listing.url, exc)
                    submitted += 1
                    self._inc("applications_submitted")
                    logger.info("  ✓ Applied to %s", listing)
                else:
                    self._inc("applications_failed")
                    logger.warning("  ✗ %s: %s", listing, outcome.error)

            self.pacer.pause(*APPLICATION_PAUSE, reason="between applications")

        return submitted
