"""
Indeed adapter tests against in-memory DOM stand-ins
"""

from urllib.parse import parse_qs, urlparse

from boards import IndeedBoard, get_boards
from models import SearchQuery


class FakeElement:
    def __init__(self, text="", attrs=None, children=None):
        self.text = text
        self.attrs = attrs or {}
        self.children = children or {}

    def inner_text(self):
        return self.text

    def text_content(self):
        return self.text

    def get_attribute(self, name):
        return self.attrs.get(name)

    def query_selector(self, selector):
        return self.children.get(selector)


class FakeLocator:
    def __init__(self, visible=False):
        self.visible = visible
        self.clicks = 0

    def count(self):
        return 1 if self.visible else 0

    @property
    def first(self):
        return self

    def is_visible(self, timeout=None):
        return self.visible

    def click(self):
        self.clicks += 1


class FakeDomPage:
    def __init__(self, cards_by_selector=None, elements=None, locators=None):
        self.cards_by_selector = cards_by_selector or {}
        self.elements = elements or {}
        self.locators = locators or {}
        self.url = "about:blank"
        self.goto_calls = []

    def query_selector_all(self, selector):
        return self.cards_by_selector.get(selector, [])

    def query_selector(self, selector):
        return self.elements.get(selector)

    def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append(url)
        self.url = url

    def wait_for_selector(self, selector, timeout=None):
        return object()

    def locator(self, selector):
        return self.locators.setdefault(selector, FakeLocator())


def card(job_key="abc123", href=None, title="Node.js Engineer", company="Acme", location="Dallas, TX",
         posted="Posted 2 days ago", salary=None):
    attrs = {"href": href if href is not None else f"/rc/clk?jk={job_key}&from=serp"}
    if job_key:
        attrs["data-jk"] = job_key
    children = {
        "h2.jobTitle a, a.jcs-JobTitle": FakeElement(title, attrs),
        "h2.jobTitle span": FakeElement(title),
        "[data-testid='company-name']": FakeElement(company),
        "[data-testid='text-location']": FakeElement(location),
        "[data-testid='myJobsStateDate'], .date": FakeElement(posted),
        ".job-snippet": FakeElement("Build and ship APIs"),
    }
    if salary:
        children[
            "[data-testid='attribute_snippet_testid'].salary-snippet-container, .salary-snippet-container"
        ] = FakeElement(salary)
    return FakeElement(children=children)


def _params(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def test_first_page_url():
    board = IndeedBoard()
    query = SearchQuery(keyword="nodejs", location="Dallas, TX", radius=100, max_days_old=5)

    url = board.build_search_url(query, 0)

    assert url.startswith("https://www.indeed.com/jobs?")
    assert _params(url) == {"q": "nodejs", "l": "Dallas, TX", "radius": "100", "fromage": "5"}


def test_later_pages_offset_by_page_size():
    board = IndeedBoard()
    query = SearchQuery(keyword="nodejs", location="75495", max_days_old=None)

    assert _params(board.build_search_url(query, 2))["start"] == "20"
    assert "fromage" not in _params(board.build_search_url(query, 2))


def test_extract_listings_from_cards():
    board = IndeedBoard()
    page = FakeDomPage(cards_by_selector={
        ".job_seen_beacon": [card("abc123", salary="$120,000 a year"), card("def456", company="")],
    })

    listings = board.extract_listings(page)

    assert [l.id for l in listings] == ["abc123", "def456"]
    first = listings[0]
    assert first.url == "https://www.indeed.com/viewjob?jk=abc123"
    assert first.title == "Node.js Engineer"
    assert first.location == "Dallas, TX"
    assert first.salary == "$120,000 a year"
    assert first.posted_date == "Posted 2 days ago"
    assert first.source == "indeed"
    assert listings[1].company == "Unknown"


def test_falls_back_to_later_card_selectors():
    board = IndeedBoard()
    page = FakeDomPage(cards_by_selector={".tapItem": [card("zzz")]})

    assert [l.id for l in board.extract_listings(page)] == ["zzz"]


def test_job_key_from_href_when_attribute_missing():
    board = IndeedBoard()
    page = FakeDomPage(cards_by_selector={".job_seen_beacon": [card(job_key="", href="/rc/clk?jk=fromhref")]})

    listing = board.extract_listings(page)[0]

    assert listing.id == "fromhref"
    assert listing.url == "https://www.indeed.com/viewjob?jk=fromhref"


def test_cards_without_link_are_skipped():
    board = IndeedBoard()
    page = FakeDomPage(cards_by_selector={".job_seen_beacon": [FakeElement(), card("ok")]})

    assert [l.id for l in board.extract_listings(page)] == ["ok"]


def test_get_details_fills_description(pacer):
    board = IndeedBoard(pacer=pacer)
    listing = board.extract_listings(
        FakeDomPage(cards_by_selector={".job_seen_beacon": [card("abc123")]})
    )[0]
    page = FakeDomPage(elements={"#jobDescriptionText": FakeElement("We need a Node.js engineer to...")})

    detailed = board.get_details(page, listing)

    assert page.goto_calls == [listing.url]
    assert detailed.description == "We need a Node.js engineer to..."
    assert detailed.title == listing.title
    assert listing.description == "Build and ship APIs"


def test_apply_without_indeed_apply_button_returns_false(pacer):
    board = IndeedBoard(pacer=pacer)
    page = FakeDomPage()
    page.context = type("Ctx", (), {"pages": [page]})()
    listing = board.extract_listings(
        FakeDomPage(cards_by_selector={".job_seen_beacon": [card("abc123")]})
    )[0]

    assert board.apply(page, listing) is False


def test_login_short_circuits_when_already_signed_in(pacer):
    board = IndeedBoard(pacer=pacer)
    page = FakeDomPage(locators={
        "[data-gnav-element-name='AccountMenu'], #AccountMenu": FakeLocator(visible=True),
    })

    assert board.login(page) is True
    assert page.goto_calls == ["https://www.indeed.com"]


def test_login_without_credentials_fails(pacer):
    assert IndeedBoard(pacer=pacer).login(FakeDomPage()) is False


def test_get_boards_skips_unknown_names():
    class StubConfig:
        def get_job_boards(self):
            return ["Indeed", "monster"]

        def get_board_credentials(self, board):
            return {"email": "me@example.com", "password": "pw"}

        def get_resume_path(self):
            return None

        def get_cover_letter_path(self):
            return None

        def get_selector_timeout(self):
            return 15000

    boards = get_boards(StubConfig())

    assert len(boards) == 1
    assert boards[0].name == "indeed"
    assert boards[0].email == "me@example.com"


def test_card_without_job_key_is_identified_by_url():
    board = IndeedBoard()
    page = FakeDomPage(cards_by_selector={
        ".job_seen_beacon": [card(job_key="", href="/company/acme/jobs/Node-Engineer-77")],
    })

    listing = board.extract_listings(page)[0]

    assert listing.url == "https://www.indeed.com/company/acme/jobs/Node-Engineer-77"
    assert listing.id == listing.url
