"""Tests for the headless-browser fetcher, with Playwright faked out."""

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from pricewatch.discovery import discover_offers
from pricewatch.errors import FetchTimeout, NavigationError
from pricewatch.fetchers import rendered
from pricewatch.fetchers.rendered import BrowserSession, fetch_rendered


class FakePage:
    def __init__(self, goto_error: Exception | None = None, selector_appears: bool = True):
        self.goto_error = goto_error
        self.selector_appears = selector_appears
        self.visited: list[str] = []

    def set_default_timeout(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms

    def goto(self, url: str, wait_until: str = "load", timeout: int = 0) -> None:
        if self.goto_error:
            raise self.goto_error
        self.visited.append(url)

    def wait_for_timeout(self, ms: int) -> None:
        pass

    def wait_for_selector(self, selector: str, timeout: int = 0) -> None:
        if not self.selector_appears:
            raise PlaywrightTimeoutError("selector never appeared")

    def content(self) -> str:
        return "<html><body>rendered</body></html>"


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False

    def add_init_script(self, script: str) -> None:
        pass

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page: FakePage | None = None):
        self.page = page or FakePage()
        self.contexts: list[FakeContext] = []
        self.connected = True

    def new_context(self, **kwargs) -> FakeContext:
        context = FakeContext(self.page)
        self.contexts.append(context)
        return context

    def is_connected(self) -> bool:
        return self.connected

    def close(self) -> None:
        self.connected = False


class TestFetchRendered:
    def test_returns_content_and_closes_context(self) -> None:
        browser = FakeBrowser()

        html = fetch_rendered(browser, "https://a.test/offers", timeout=3)

        assert "rendered" in html
        assert browser.page.visited == ["https://a.test/offers"]
        assert browser.page.timeout_ms == 3000
        assert browser.contexts[0].closed

    def test_missing_product_links_still_returns_page(self) -> None:
        browser = FakeBrowser(FakePage(selector_appears=False))

        assert "rendered" in fetch_rendered(browser, "https://a.test/offers", timeout=1)

    def test_navigation_timeout(self) -> None:
        browser = FakeBrowser(FakePage(goto_error=PlaywrightTimeoutError("Timeout 20000ms exceeded")))

        with pytest.raises(FetchTimeout):
            fetch_rendered(browser, "https://a.test/offers", timeout=20)

        assert browser.contexts[0].closed

    def test_navigation_error(self) -> None:
        browser = FakeBrowser(FakePage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED")))

        with pytest.raises(NavigationError):
            fetch_rendered(browser, "https://a.test/offers", timeout=1)


class FakePlaywright:
    def __init__(self, launched: list[FakeBrowser]):
        self.launched = launched
        self.chromium = self
        self.stopped = False

    def launch(self, headless: bool = True, args=None) -> FakeBrowser:
        browser = FakeBrowser()
        self.launched.append(browser)
        return browser

    def stop(self) -> None:
        self.stopped = True


class FakeStarter:
    def __init__(self, launched: list[FakeBrowser]):
        self.launched = launched

    def start(self) -> FakePlaywright:
        return FakePlaywright(self.launched)


class TestBrowserSession:
    @pytest.fixture
    def launched(self, monkeypatch) -> list[FakeBrowser]:
        browsers: list[FakeBrowser] = []
        monkeypatch.setattr(rendered, "sync_playwright", lambda: FakeStarter(browsers))
        return browsers

    def test_browser_reused_across_batches(self, launched) -> None:
        session = BrowserSession("chromium")

        with session as first:
            pass
        with session as second:
            pass

        assert first is second
        assert len(launched) == 1
        assert session.is_usable()

    def test_disconnected_browser_relaunched(self, launched) -> None:
        session = BrowserSession("chromium")
        with session as first:
            pass
        first.connected = False

        assert not session.is_usable()
        with session as second:
            pass

        assert second is not first
        assert len(launched) == 2

    def test_close(self, launched) -> None:
        session = BrowserSession("chromium")
        with session:
            pass

        session.close()

        assert not session.is_usable()
        assert launched[0].connected is False


class DeadBrowser(FakeBrowser):
    def new_context(self, **kwargs):
        raise PlaywrightError("Target page, context or browser has been closed")


class DeadSession:
    def __enter__(self):
        return DeadBrowser()

    def __exit__(self, *exc_info) -> None:
        pass


class TestDeadBrowser:
    def test_closed_browser_is_navigation_error(self) -> None:
        with pytest.raises(NavigationError):
            fetch_rendered(DeadBrowser(), "https://a.test/offers", timeout=1)

    def test_discovery_skips_pages_of_closed_browser(self) -> None:
        offers = discover_offers(
            ["https://a.test/one", "https://a.test/two"],
            session=DeadSession(),
            sleep=lambda _: None,
        )

        assert offers == []

    def test_launch_failure_is_navigation_error(self, monkeypatch) -> None:
        started: list[FakePlaywright] = []

        class BrokenPlaywright(FakePlaywright):
            def launch(self, headless: bool = True, args=None):
                raise PlaywrightError("Executable doesn't exist")

        class BrokenStarter:
            def start(self):
                driver = BrokenPlaywright([])
                started.append(driver)
                return driver

        monkeypatch.setattr(rendered, "sync_playwright", lambda: BrokenStarter())
        session = BrowserSession("chromium")

        with pytest.raises(NavigationError):
            session.acquire()

        assert started[0].stopped is True
        assert not session.is_usable()
        with pytest.raises(NavigationError):
            session.acquire()
