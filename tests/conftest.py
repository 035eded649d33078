"""Shared fakes plus a guard that fails runs with skipped or deselected tests."""

from __future__ import annotations

from collections import Counter

import pytest

from policyscan.document import LoadedPage
from policyscan.errors import NavigationFailure

_UNRAN: Counter = Counter()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _UNRAN["deselected"] += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in {"setup", "call"}:
        return
    if getattr(report, "wasxfail", False):
        _UNRAN["xpassed" if report.outcome == "passed" else "xfailed"] += 1
    elif report.outcome == "skipped":
        _UNRAN["skipped"] += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    if not _UNRAN:
        return
    summary = ", ".join(f"{kind}={count}" for kind, count in sorted(_UNRAN.items()))
    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep("=", f"Every collected test must run and pass ({summary})")
    session.exitstatus = 1


POLICY_TEXT = (
    "We collect personal information that you provide when you create an "
    "account, including your name and email address. We may share this "
    "information with third-party service providers who process data on our "
    "behalf. You can opt out of marketing emails at any time. This policy "
    "describes your rights under applicable data protection law."
)


def policy_html(title: str = "Privacy Policy", body: str = POLICY_TEXT) -> str:
    return (
        f"<html><head><title>{title}</title></head><body>"
        "<nav><a href='/'>Home</a></nav>"
        f"<main><h1>{title}</h1><p>{body}</p></main>"
        "<footer>Copyright</footer></body></html>"
    )


def landing_html(links: str) -> str:
    return (
        "<html><head><title>Acme Store</title></head><body>"
        "<main><h1>Welcome to Acme</h1><p>Shop our catalogue of widgets.</p>"
        f"{links}</main></body></html>"
    )


class FakeLoader:
    """Stands in for PageLoader; serves pages registered on a FakeBrowser."""

    def __init__(self, browser: "FakeBrowser", options=None):
        self.browser = browser
        self.options = options

    async def __aenter__(self):
        self.browser.events.append("open")
        return self

    async def __aexit__(self, *exc_info):
        self.browser.events.append("close")
        return False

    async def load(self, url, options=None):
        self.browser.loads.append(url)
        value = self.browser.pages.get(url)
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if value is None:
            raise NavigationFailure(url, "net::ERR_NAME_NOT_RESOLVED")
        if isinstance(value, BaseException):
            raise value
        return value

    async def load_with_retry(self, url, options=None, wait_strategies=None):
        return await self.load(url, options)


class FakeBrowser:
    def __init__(self):
        self.pages = {}
        self.events = []
        self.loads = []

    def add(self, url, html, status_code=200, final_url=None):
        page = LoadedPage(
            request_url=url,
            final_url=final_url or url,
            html=html,
            status_code=status_code,
        )
        self.pages.setdefault(url, [])
        self.pages[url].append(page)
        return page

    def fail(self, url, exc):
        self.pages.setdefault(url, [])
        self.pages[url].append(exc)

    def factory(self, options=None):
        return FakeLoader(self, options)

    @property
    def opened(self) -> int:
        return self.events.count("open")

    @property
    def closed(self) -> int:
        return self.events.count("close")


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()
