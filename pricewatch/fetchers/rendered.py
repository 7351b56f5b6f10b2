"""
Headless-browser fetcher for JS-heavy listing pages.

Uses Playwright. The browser is expensive to start, so a BrowserSession
keeps one instance alive across renders and re-creates it lazily when it
has disconnected.
"""

import logging
import threading

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from pricewatch.config import USER_AGENT, get_browser_name, get_render_timeout
from pricewatch.errors import FetchTimeout, NavigationError

logger = logging.getLogger(__name__)

PRODUCT_LINK_SELECTOR = 'a[href*="/p/"]'
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


class BrowserSession:
    """Process-scoped owner of a reusable headless browser."""

    def __init__(self, browser_name: str | None = None):
        self.browser_name = browser_name or get_browser_name()
        self._playwright = None
        self._browser = None
        self._lock = threading.Lock()

    def is_usable(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    def acquire(self):
        """Return a connected browser, launching a new one if needed."""
        self._lock.acquire()
        try:
            if not self.is_usable():
                self._close()
                logger.info("Launching headless %s", self.browser_name)
                self._playwright = sync_playwright().start()
                launcher = getattr(self._playwright, self.browser_name)
                args = LAUNCH_ARGS if self.browser_name == "chromium" else None
                self._browser = launcher.launch(headless=True, args=args)
        except PlaywrightError as e:
            self._close()
            self._lock.release()
            raise NavigationError(f"browser launch ({self.browser_name})", cause=e) from e
        except Exception:
            self._lock.release()
            raise
        return self._browser

    def release(self) -> None:
        """Hand the browser back. It stays open for the next caller."""
        self._lock.release()

    def close(self) -> None:
        with self._lock:
            self._close()

    def _close(self) -> None:
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError as e:
                logger.debug("Browser close failed: %s", e)
        if self._playwright is not None:
            self._playwright.stop()
        self._browser = None
        self._playwright = None

    def __enter__(self):
        return self.acquire()

    def __exit__(self, *exc_info) -> None:
        self.release()


def fetch_rendered(browser, url: str, timeout: float | None = None) -> str:
    """
    Render ``url`` in a fresh page of ``browser`` and return the final HTML.

    Raises FetchTimeout when navigation exceeds ``timeout`` seconds and
    NavigationError for any other browser failure.
    """
    timeout = timeout if timeout is not None else get_render_timeout()
    timeout_ms = int(timeout * 1000)
    context = None
    try:
        context = browser.new_context(
            user_agent=USER_AGENT,
            viewport={"width": 1920, "height": 1080},
            extra_http_headers={
                "Accept-Language": "en-US,en;q=0.9",
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            },
        )
        context.add_init_script(
            "Object.defineProperty(navigator, 'webdriver', { get: () => false });"
        )
        page = context.new_page()
        page.set_default_timeout(timeout_ms)
        page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        page.wait_for_timeout(2000)
        try:
            page.wait_for_selector(PRODUCT_LINK_SELECTOR, timeout=5000)
        except PlaywrightTimeoutError:
            logger.debug("No product links appeared on %s within 5s", url)
        return page.content()
    except PlaywrightTimeoutError as e:
        raise FetchTimeout(url, timeout, cause=e) from e
    except PlaywrightError as e:
        raise NavigationError(url, cause=e) from e
    finally:
        if context is not None:
            try:
                context.close()
            except PlaywrightError as e:
                logger.debug("Context close failed: %s", e)
