"""
Indeed board adapter - search URLs, card extraction, detail fetch, apply and login
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

from boards.base import JobBoard
from models import Listing, SearchQuery
from pacing import Pacer

logger = logging.getLogger(__name__)

BASE_URL = "https://www.indeed.com"
LOGIN_URL = "https://secure.indeed.com/auth"

# Indeed changes these frequently; first selector that yields cards wins.
CARD_SELECTORS = [
    ".job_seen_beacon",
    "[data-testid='slider_item']",
    ".jobsearch-ResultsList > li",
    ".resultContent",
    ".tapItem",
]
APPLY_BUTTON_SELECTORS = [
    "#indeedApplyButton",
    "button[id*='indeedApplyButton']",
    "[data-testid='indeedApply-button']",
    "button:has-text('Apply now')",
]
CONTINUE_SELECTORS = [
    "button:has-text('Submit your application')",
    "button:has-text('Review your application')",
    "button:has-text('Continue')",
]
CONFIRMATION_MARKERS = (
    "your application has been submitted",
    "application submitted",
    "you've applied",
)
ACCOUNT_MENU_SELECTOR = "[data-gnav-element-name='AccountMenu'], #AccountMenu"
MAX_APPLY_STEPS = 8


def _extract_text(element) -> str:
    if not element:
        return ""
    try:
        text = element.inner_text().strip()
    except Exception:
        text = ""
    if not text:
        try:
            text = (element.text_content() or "").strip()
        except Exception:
            text = ""
    return text


def _visible(locator) -> bool:
    """Safe visibility check that never throws."""
    try:
        return locator.count() > 0 and locator.first.is_visible(timeout=2000)
    except Exception:
        return False


def _click_first_visible(page, selectors: List[str]) -> Optional[str]:
    """Click the first visible element matching any selector; return that selector."""
    for sel in selectors:
        loc = page.locator(sel)
        if _visible(loc):
            loc.first.click()
            return sel
    return None


class IndeedBoard(JobBoard):
    name = "indeed"
    page_size = 10
    results_selector = "#mosaic-provider-jobcards, .job_seen_beacon"

    def __init__(
        self,
        email: str = "",
        password: str = "",
        *,
        resume_path: Optional[Path] = None,
        cover_letter_path: Optional[Path] = None,
        base_url: str = BASE_URL,
        pacer: Optional[Pacer] = None,
        detail_timeout_ms: int = 15_000,
    ) -> None:
        self.email = email
        self.password = password
        self.resume_path = resume_path
        self.cover_letter_path = cover_letter_path
        self.base_url = base_url.rstrip("/")
        self.pacer = pacer or Pacer()
        self.detail_timeout_ms = detail_timeout_ms

    @classmethod
    def from_config(cls, config, pacer: Optional[Pacer] = None) -> "IndeedBoard":
        creds = config.get_board_credentials("indeed")
        return cls(
            email=creds["email"],
            password=creds["password"],
            resume_path=config.get_resume_path(),
            cover_letter_path=config.get_cover_letter_path(),
            pacer=pacer,
            detail_timeout_ms=config.get_selector_timeout(),
        )

    # === Search ===

    def build_search_url(self, query: SearchQuery, page_index: int) -> str:
        params = {"q": query.keyword, "l": query.location, "radius": query.radius}
        if query.max_days_old:
            params["fromage"] = query.max_days_old
        if page_index > 0:
            params["start"] = page_index * self.page_size
        return f"{self.base_url}/jobs?{urlencode(params)}"

    def canonical_url(self, job_key: str) -> str:
        return f"{self.base_url}/viewjob?jk={job_key}"

    def extract_listings(self, page) -> List[Listing]:
        cards = []
        for selector in CARD_SELECTORS:
            cards = page.query_selector_all(selector)
            if cards:
                logger.debug("Found cards using selector: %s", selector)
                break

        listings: List[Listing] = []
        for index, card in enumerate(cards):
            listing = self._extract_listing_from_card(card)
            if listing is None:
                logger.debug("Skipping card %s: no title link", index)
                continue
            listings.append(listing)
        return listings

    def _extract_listing_from_card(self, card) -> Optional[Listing]:
        """Extract one listing from a result card element"""
        link_elem = card.query_selector("h2.jobTitle a, a.jcs-JobTitle")
        if not link_elem:
            return None

        href = link_elem.get_attribute("href") or ""
        job_key = (link_elem.get_attribute("data-jk") or "").strip()
        if not job_key and href:
            job_key = (parse_qs(urlparse(href).query).get("jk", [""])[0] or "").strip()

        if job_key:
            url = self.canonical_url(job_key)
        elif href:
            url = urljoin(self.base_url + "/", href)
        else:
            return None

        title = _extract_text(card.query_selector("h2.jobTitle span")) or _extract_text(link_elem)
        company = _extract_text(card.query_selector("[data-testid='company-name']"))
        location = _extract_text(card.query_selector("[data-testid='text-location']"))
        salary = _extract_text(
            card.query_selector("[data-testid='attribute_snippet_testid'].salary-snippet-container, .salary-snippet-container")
        )
        description = _extract_text(card.query_selector(".job-snippet"))
        posted = _extract_text(card.query_selector("[data-testid='myJobsStateDate'], .date"))

        return Listing(
            id=job_key,
            title=title or "Unknown Title",
            company=company,
            location=location,
            url=url,
            description=description,
            source=self.name,
            salary=salary or None,
            posted_date=posted or None,
        )

    # === Details / apply ===

    def get_details(self, page, listing: Listing) -> Listing:
        page.goto(listing.url, wait_until="domcontentloaded")
        page.wait_for_selector("#jobDescriptionText", timeout=self.detail_timeout_ms)

        updates = {}
        description = _extract_text(page.query_selector("#jobDescriptionText"))
        if description:
            updates["description"] = description
        salary = _extract_text(page.query_selector("#salaryInfoAndJobType"))
        if salary:
            updates["salary"] = salary
        company = _extract_text(page.query_selector("[data-testid='inlineHeader-companyName']"))
        if company:
            updates["company"] = company
        return listing.model_copy(update=updates)

    def _cover_letter_text(self) -> str:
        if self.cover_letter_path and self.cover_letter_path.exists():
            return self.cover_letter_path.read_text(encoding="utf-8", errors="ignore")
        return ""

    def _fill_step(self, page, cover_text: str) -> None:
        if self.resume_path and self.resume_path.exists():
            upload = page.locator("input[type='file']")
            if upload.count() > 0:
                upload.first.set_input_files(str(self.resume_path))
        if cover_text:
            letter = page.locator("textarea[name*='cover'], textarea[id*='cover']")
            if _visible(letter):
                letter.first.fill(cover_text)

    def _is_confirmed(self, page) -> bool:
        try:
            body = (page.inner_text("body") or "").lower()
        except Exception:
            return False
        return any(marker in body for marker in CONFIRMATION_MARKERS)

    def apply(self, page, listing: Listing) -> bool:
        """Walk Indeed's apply flow; external 'apply on company site' postings are not handled."""
        if page.url != listing.url:
            page.goto(listing.url, wait_until="domcontentloaded")

        pages_before = len(page.context.pages)
        if _click_first_visible(page, APPLY_BUTTON_SELECTORS) is None:
            logger.info("No Indeed apply button for %s (external application?)", listing.url)
            return False

        self.pacer.pause(2.0, 4.0, reason="apply form load")
        # The apply flow may open in a new tab.
        flow = page.context.pages[-1] if len(page.context.pages) > pages_before else page
        cover_text = self._cover_letter_text()

        for step in range(MAX_APPLY_STEPS):
            if self._is_confirmed(flow):
                return True
            self._fill_step(flow, cover_text)
            clicked = _click_first_visible(flow, CONTINUE_SELECTORS)
            if clicked is None:
                logger.warning("Apply flow stalled at step %s for %s", step + 1, listing.url)
                break
            self.pacer.pause(1.0, 2.5, reason="apply step")

        confirmed = self._is_confirmed(flow)
        if flow is not page:
            try:
                flow.close()
            except Exception:
                logger.debug("Apply tab close failed", exc_info=True)
        return confirmed

    # === Login ===

    def _is_logged_in(self, page) -> bool:
        return _visible(page.locator(ACCOUNT_MENU_SELECTOR))

    def login(self, page) -> bool:
        page.goto(self.base_url, wait_until="domcontentloaded")
        if self._is_logged_in(page):
            logger.info("Already signed in to Indeed")
            return True

        if not self.email or not self.password:
            logger.error("Indeed credentials are not configured")
            return False

        try:
            page.goto(LOGIN_URL, wait_until="domcontentloaded")
            page.fill("input[type='email']", self.email)
            page.click("button[type='submit']")
            page.wait_for_selector("input[type='password']", timeout=self.detail_timeout_ms)
            self.pacer.pause(0.5, 1.5, reason="login")
            page.fill("input[type='password']", self.password)
            page.click("button[type='submit']")
            page.wait_for_selector(ACCOUNT_MENU_SELECTOR, timeout=self.detail_timeout_ms * 2)
        except Exception as exc:
            logger.error("Indeed login failed: %s", exc)
            return False

        logger.info("Signed in to Indeed as %s", self.email)
        return True
