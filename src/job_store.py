"""
Job Store - SQLite persistence for discovered listings and application attempts

Listings are keyed by url. Re-discovering a posting updates it in place and
never clears an existing applied mark. Application attempts go to an
append-only outcome log.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union

from models import ApplicationOutcome, JobFilter, JobStats, Listing

logger = logging.getLogger(__name__)


class JobStoreError(RuntimeError):
    """Raised when the underlying database rejects an operation."""


_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    url TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    title TEXT NOT NULL,
    company TEXT NOT NULL,
    location TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    source TEXT NOT NULL,
    salary TEXT,
    posted_date TEXT,
    applied INTEGER NOT NULL DEFAULT 0,
    applied_date TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_job_id ON jobs(job_id);
CREATE INDEX IF NOT EXISTS idx_jobs_title ON jobs(title);
CREATE INDEX IF NOT EXISTS idx_jobs_company ON jobs(company);
CREATE INDEX IF NOT EXISTS idx_jobs_location ON jobs(location);
CREATE INDEX IF NOT EXISTS idx_jobs_source ON jobs(source);
CREATE INDEX IF NOT EXISTS idx_jobs_applied ON jobs(applied);
CREATE INDEX IF NOT EXISTS idx_jobs_company_title ON jobs(company, title);
CREATE INDEX IF NOT EXISTS idx_jobs_applied_created ON jobs(applied, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_jobs_location_applied ON jobs(location, applied);
CREATE INDEX IF NOT EXISTS idx_jobs_source_applied ON jobs(source, applied);

CREATE TABLE IF NOT EXISTS application_outcomes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL,
    success INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    error TEXT
);

CREATE INDEX IF NOT EXISTS idx_outcomes_job_id ON application_outcomes(job_id);
CREATE INDEX IF NOT EXISTS idx_outcomes_success_ts ON application_outcomes(success, timestamp);
"""

# applied only ever moves false -> true here; created_at is never rewritten.
_UPSERT = """
INSERT INTO jobs (
    url, job_id, title, company, location, description, source, salary,
    posted_date, applied, applied_date, created_at, updated_at
) VALUES (
    :url, :job_id, :title, :company, :location, :description, :source, :salary,
    :posted_date, :applied, :applied_date, :now, :now
)
ON CONFLICT(url) DO UPDATE SET
    job_id = excluded.job_id,
    title = excluded.title,
    company = excluded.company,
    location = excluded.location,
    description = CASE WHEN excluded.description != '' THEN excluded.description ELSE jobs.description END,
    source = excluded.source,
    salary = COALESCE(excluded.salary, jobs.salary),
    posted_date = COALESCE(excluded.posted_date, jobs.posted_date),
    applied_date = CASE WHEN jobs.applied = 1 THEN jobs.applied_date ELSE excluded.applied_date END,
    applied = MAX(jobs.applied, excluded.applied),
    updated_at = excluded.updated_at
"""


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_to_listing(row: sqlite3.Row) -> Listing:
    applied_date = row["applied_date"]
    return Listing(
        id=row["job_id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        url=row["url"],
        description=row["description"] or "",
        source=row["source"],
        salary=row["salary"],
        posted_date=row["posted_date"],
        applied=bool(row["applied"]),
        applied_date=datetime.fromisoformat(applied_date) if applied_date else None,
    )


class JobStore:
    """Upsert-by-url listing store with an append-only application log."""

    def __init__(self, path: Union[str, Path] = "data/jobs.db") -> None:
        self.path = str(path)
        self._lock = threading.Lock()
        try:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path, timeout=10.0, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA busy_timeout = 10000;")
            with self._conn:
                self._conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise JobStoreError(f"Could not open job store at {self.path}: {exc}") from exc
        logger.info("Job store ready: %s", self.path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "JobStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # === Listings ===

    def _params(self, listing: Listing, now: str) -> dict:
        return {
            "url": listing.url,
            "job_id": listing.id,
            "title": listing.title,
            "company": listing.company,
            "location": listing.location,
            "description": listing.description or "",
            "source": listing.source,
            "salary": listing.salary,
            "posted_date": listing.posted_date,
            "applied": 1 if listing.applied else 0,
            "applied_date": _iso(listing.applied_date),
            "now": now,
        }

    def upsert_many(self, listings: Iterable[Listing]) -> int:
        """
        Insert or update each listing by url.

        Each listing is its own transaction; a rejected one is logged and
        skipped. Returns how many were written.
        """
        written = 0
        failures = 0
        for listing in listings:
            now = datetime.now().isoformat()
            try:
                with self._lock, self._conn:
                    cursor = self._conn.execute(_UPSERT, self._params(listing, now))
                written += max(cursor.rowcount, 0)
            except sqlite3.Error as exc:
                failures += 1
                logger.warning("Failed to upsert %s: %s", listing.url, exc)
        if failures:
            logger.warning("Upsert finished with %s failures (%s written)", failures, written)
        else:
            logger.debug("Upserted %s listings", written)
        return written

    def save(self, listing: Listing) -> Listing:
        """Upsert one listing and return the stored record."""
        now = datetime.now().isoformat()
        try:
            with self._lock, self._conn:
                self._conn.execute(_UPSERT, self._params(listing, now))
        except sqlite3.Error as exc:
            raise JobStoreError(f"Failed to save {listing.url}: {exc}") from exc
        stored = self.find_by_url(listing.url)
        return stored if stored is not None else listing

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise JobStoreError(str(exc)) from exc

    def find_all(self, job_filter: Optional[JobFilter] = None) -> List[Listing]:
        job_filter = job_filter or JobFilter()
        clauses: List[str] = []
        params: List = []

        if job_filter.source is not None:
            clauses.append("source = ?")
            params.append(job_filter.source)
        if job_filter.applied is not None:
            clauses.append("applied = ?")
            params.append(1 if job_filter.applied else 0)
        if job_filter.company:
            clauses.append("instr(lower(company), lower(?)) > 0")
            params.append(job_filter.company)
        if job_filter.location:
            clauses.append("instr(lower(location), lower(?)) > 0")
            params.append(job_filter.location)

        sql = "SELECT * FROM jobs"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, rowid DESC"
        if job_filter.limit:
            sql += " LIMIT ?"
            params.append(int(job_filter.limit))

        return [_row_to_listing(row) for row in self._query(sql, tuple(params))]

    def find_unapplied(self, limit: Optional[int] = None) -> List[Listing]:
        return self.find_all(JobFilter(applied=False, limit=limit))

    def find_by_url(self, url: str) -> Optional[Listing]:
        rows = self._query("SELECT * FROM jobs WHERE url = ?", (url,))
        return _row_to_listing(rows[0]) if rows else None

    def find_by_id(self, job_id: str) -> Optional[Listing]:
        rows = self._query(
            "SELECT * FROM jobs WHERE job_id = ? ORDER BY updated_at DESC LIMIT 1", (job_id,)
        )
        return _row_to_listing(rows[0]) if rows else None

    def mark_applied(self, url: str, applied_date: Optional[datetime] = None) -> Optional[Listing]:
        """Flag the listing stored under `url` as applied. None if unknown."""
        if not url:
            logger.warning("mark_applied: empty url ignored")
            return None
        applied_date = applied_date or datetime.now()
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    "UPDATE jobs SET applied = 1, applied_date = ?, updated_at = ? WHERE url = ?",
                    (_iso(applied_date), datetime.now().isoformat(), url),
                )
        except sqlite3.Error as exc:
            raise JobStoreError(f"Failed to mark {url} applied: {exc}") from exc
        if cursor.rowcount == 0:
            logger.warning("mark_applied: no stored listing at %s", url)
            return None
        return self.find_by_url(url)

    def stats(self) -> JobStats:
        total = self._query("SELECT COUNT(*) AS n FROM jobs")[0]["n"]
        applied = self._query("SELECT COUNT(*) AS n FROM jobs WHERE applied = 1")[0]["n"]
        # Counts are taken separately; clamp so the derived figure stays consistent.
        applied = min(applied, total)
        return JobStats(total=total, applied=applied, not_applied=total - applied)

    # === Application outcomes ===

    def record_outcome(self, outcome: ApplicationOutcome) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO application_outcomes (job_id, success, timestamp, error) VALUES (?, ?, ?, ?)",
                    (outcome.job_id, 1 if outcome.success else 0, outcome.timestamp.isoformat(), outcome.error),
                )
        except sqlite3.Error as exc:
            raise JobStoreError(f"Failed to record outcome for {outcome.job_id}: {exc}") from exc

    def outcomes_for(self, job_id: str) -> List[ApplicationOutcome]:
        rows = self._query(
            "SELECT * FROM application_outcomes WHERE job_id = ? ORDER BY id", (job_id,)
        )
        return [
            ApplicationOutcome(
                job_id=row["job_id"],
                success=bool(row["success"]),
                timestamp=datetime.fromisoformat(row["timestamp"]),
                error=row["error"],
            )
            for row in rows
        ]

    def count_successful_since(self, since: datetime) -> int:
        rows = self._query(
            "SELECT COUNT(*) AS n FROM application_outcomes WHERE success = 1 AND timestamp >= ?",
            (since.isoformat(),),
        )
        return int(rows[0]["n"])
