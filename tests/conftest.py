"""
Pytest fixtures and fakes for the job applier test suite.

Nothing here launches a browser: boards, pages and sessions are in-memory
stand-ins that behave like the Playwright objects the code talks to.
"""

from contextlib import contextmanager
from typing import Dict, List, Optional

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from boards.base import JobBoard
from job_store import JobStore
from models import Listing, SearchQuery
from pacing import Jitter, Pacer


ENV_VARS = (
    "USE_PROXY", "HEADLESS", "DRY_RUN", "LOG_LEVEL", "JOB_DB_PATH",
    "PROXY_PROVIDER", "PROXY_ROTATION", "PROXY_HOST", "PROXY_PORT", "PROXY_USER", "PROXY_PASS",
    "DECODO_HOST", "DECODO_PORT", "DECODO_USERNAME", "DECODO_PASSWORD",
    "INDEED_EMAIL", "INDEED_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer .env / shell settings out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# === Timing ===

class FixedJitter(Jitter):
    """Returns a fixed point inside the requested range."""

    def __init__(self, fraction: float = 0.0) -> None:
        self.fraction = fraction

    def duration(self, minimum: float, maximum: float) -> float:
        return minimum + (maximum - minimum) * self.fraction


class RecordingSleeper:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def pacer(sleeper):
    return Pacer(FixedJitter(0.0), sleeper=sleeper)


# === Listings ===

def make_listing(job_id: str, age=None, *, url: Optional[str] = None, **fields) -> Listing:
    if isinstance(age, int):
        posted = "Just posted" if age == 0 else f"Posted {age} days ago"
    else:
        posted = age
    data = dict(
        id=job_id,
        title=f"Node.js Developer {job_id}",
        company="Acme Corp",
        location="Dallas, TX",
        url=url or f"https://www.indeed.com/viewjob?jk={job_id}",
        description="Build APIs",
        source="fake",
        posted_date=posted,
    )
    data.update(fields)
    return Listing(**data)


def make_page(prefix: str, count: int, ages=None) -> List[Listing]:
    ages = ages if ages is not None else [0] * count
    return [make_listing(f"{prefix}{i}", ages[i]) for i in range(count)]


# === Browser stand-ins ===

class FakePage:
    """Records navigation; fails or hides results for configured urls."""

    def __init__(self, fail_urls: Optional[Dict[str, int]] = None, empty_urls=None) -> None:
        self.url = "about:blank"
        self.goto_calls: List[str] = []
        self.fail_urls = dict(fail_urls or {})  # url -> failures left (-1 = always)
        self.empty_urls = set(empty_urls or ())

    def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append(url)
        remaining = self.fail_urls.get(url, 0)
        if remaining:
            if remaining > 0:
                self.fail_urls[url] = remaining - 1
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded navigating to {url}")
        self.url = url

    def wait_for_selector(self, selector, timeout=None):
        if self.url in self.empty_urls:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms waiting for {selector}")
        return object()


class FakeSession:
    def __init__(self, page: Optional[FakePage] = None) -> None:
        self.page = page or FakePage()
        self.refresh_count = 0

    def refresh_identity(self) -> None:
        self.refresh_count += 1


class FakeBoard(JobBoard):
    """Serves canned result pages keyed by location."""

    name = "fake"
    page_size = 10
    results_selector = ".results"

    def __init__(self, pages_by_location: Dict[str, List[List[Listing]]], *, name: str = "fake",
                 apply_results: Optional[Dict[str, bool]] = None, detail_errors=(), login_result: bool = True) -> None:
        self.name = name
        self.pages_by_location = pages_by_location
        self.apply_results = apply_results or {}
        self.detail_errors = set(detail_errors)
        self.login_result = login_result
        self.extract_error_urls: set = set()
        self.applied: List[str] = []
        self.detailed: List[str] = []
        self.logins = 0

    def build_search_url(self, query: SearchQuery, page_index: int) -> str:
        return f"https://jobs.example/{self.name}/{query.location}?page={page_index}"

    def _locate(self, url: str):
        path, _, page_part = url.partition("?page=")
        location = path.rsplit("/", 1)[-1]
        return location, int(page_part)

    def extract_listings(self, page) -> List[Listing]:
        if page.url in self.extract_error_urls:
            raise ValueError("card markup changed")
        location, index = self._locate(page.url)
        pages = self.pages_by_location.get(location, [])
        return list(pages[index]) if index < len(pages) else []

    def get_details(self, page, listing: Listing) -> Listing:
        self.detailed.append(listing.id)
        if listing.id in self.detail_errors:
            raise PlaywrightTimeoutError("Timeout 15000ms waiting for #jobDescriptionText")
        return listing.model_copy(update={"description": f"Full description for {listing.id}"})

    def apply(self, page, listing: Listing) -> bool:
        self.applied.append(listing.id)
        return self.apply_results.get(listing.id, True)

    def login(self, page) -> bool:
        self.logins += 1
        return self.login_result


@contextmanager
def fake_session_cm():
    yield FakeSession()


@pytest.fixture
def store(tmp_path):
    job_store = JobStore(tmp_path / "jobs.db")
    yield job_store
    job_store.close()
