"""
Offer discovery on rendered promotion listing pages.

Listing grids nest each product card inside several wrappers that sit next
to other cards' wrappers. Before reading a card's text or image we walk up
from its product link to the smallest ancestor that holds exactly one
product link, so nothing bleeds in from neighbouring cards.
"""

import logging
import random
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from pricewatch.config import CURRENCY, PROMOTION_URLS
from pricewatch.errors import FetchError
from pricewatch.extractor import find_price_candidates, is_plausible_image
from pricewatch.fetchers.rendered import PRODUCT_LINK_SELECTOR, BrowserSession, fetch_rendered
from pricewatch.models import DiscoveredOffer
from pricewatch.storage import KeyValueStore

logger = logging.getLogger(__name__)

MAX_ANCESTOR_DEPTH = 6
MIN_PRICE = 1
MAX_PRICE = 1_000_000
MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 200
MAX_OFFERS = 30
PAGE_DELAY_RANGE = (2.0, 4.0)
OFFER_CACHE_TTL = timedelta(hours=24)

DISCOUNT_BADGE = re.compile(r"(\d+)%\s*(?:OFF|discount|-)", re.IGNORECASE)
DISCOUNT_MINUS = re.compile(r"-(\d+)%")
TRAILING_DIGITS = re.compile(r"(\d+)$")


def _product_link_count(node: Tag) -> int:
    return len(node.select(PRODUCT_LINK_SELECTOR))


def isolate_container(link: Tag) -> Tag:
    """Smallest ancestor of ``link`` containing no other product link."""
    container = link.parent
    depth = 0
    while container is not None and depth < MAX_ANCESTOR_DEPTH:
        if _product_link_count(container) == 1:
            return container
        container = container.parent
        depth += 1
    return link.parent or link


def _clean_name(link: Tag) -> str:
    name = " ".join(link.get_text(" ").split())
    if CURRENCY in name:
        name = name.split(CURRENCY)[0].strip()
    return name


def _container_image(container: Tag, base_url: str) -> str | None:
    for img in container.find_all("img"):
        src = img.get("src") or img.get("data-src") or ""
        if is_plausible_image(src):
            return urljoin(base_url, src)
    return None


def _discount(text: str, price: float, original_price: float | None) -> str | None:
    match = DISCOUNT_BADGE.search(text) or DISCOUNT_MINUS.search(text)
    if match:
        return f"-{match.group(1)}%"
    if original_price:
        percent = round((original_price - price) / original_price * 100)
        if percent > 0:
            return f"-{percent}%"
    return None


def sku_from_url(url: str) -> str | None:
    """Trailing numeric path segment of a product URL."""
    match = TRAILING_DIGITS.search(urlparse(url).path.rstrip("/"))
    return match.group(1) if match else None


def _offer_from_link(link: Tag, base_url: str) -> DiscoveredOffer | None:
    href = link.get("href")
    if not href:
        return None
    url = urljoin(base_url, href)

    name = _clean_name(link)
    if len(name) < MIN_NAME_LENGTH:
        return None

    container = isolate_container(link)
    text = container.get_text(" ")
    prices = find_price_candidates(text)
    if not prices:
        return None
    price = min(prices)
    original_price = max(prices)
    if original_price == price:
        original_price = None

    if price < MIN_PRICE or price > MAX_PRICE:
        return None

    return DiscoveredOffer(
        name=name[:MAX_NAME_LENGTH],
        price=price,
        original_price=original_price,
        image_url=_container_image(container, base_url),
        url=url,
        sku=sku_from_url(url),
        discount=_discount(text, price, original_price),
    )


def discover(html: str, base_url: str = "") -> list[DiscoveredOffer]:
    """One offer per isolated product card, in document order. Never raises."""
    try:
        soup = BeautifulSoup(html or "", "html.parser")
    except Exception as e:  # discover() never raises
        logger.warning("Listing HTML parse failed: %s", e)
        return []

    offers: list[DiscoveredOffer] = []
    seen: set[str] = set()
    for link in soup.select(PRODUCT_LINK_SELECTOR):
        try:
            offer = _offer_from_link(link, base_url)
        except Exception as e:
            logger.debug("Skipping product card: %s", e)
            continue
        if offer is None or offer.url in seen:
            continue
        seen.add(offer.url)
        offers.append(offer)
    return offers


def discover_offers(
    urls: list[str] | None = None,
    session: BrowserSession | None = None,
    render: Callable[..., str] = fetch_rendered,
    sleep: Callable[[float], None] = time.sleep,
    limit: int = MAX_OFFERS,
) -> list[DiscoveredOffer]:
    """
    Render each promotion page in turn and collect its offers.

    Pages are visited one at a time with a randomized pause before each.
    A page that fails to render is logged and skipped. Offers are
    deduplicated by URL across the whole batch and capped at ``limit``.
    """
    urls = urls if urls is not None else PROMOTION_URLS
    owns_session = session is None
    session = session or BrowserSession()

    offers: list[DiscoveredOffer] = []
    seen: set[str] = set()
    try:
        with session as browser:
            for url in urls:
                sleep(random.uniform(*PAGE_DELAY_RANGE))
                path = urlparse(url).path
                logger.info("[%s] Navigating...", path)
                try:
                    html = render(browser, url)
                except FetchError as e:
                    logger.error("Error scraping %s: %s", url, e)
                    continue

                page_offers = [o for o in discover(html, url) if o.url not in seen]
                seen.update(o.url for o in page_offers)
                offers.extend(page_offers)
                logger.info("[%s] Found %d offers", path, len(page_offers))
    finally:
        if owns_session:
            session.close()

    logger.info("Total offers: %d", len(offers))
    return offers[:limit]


def load_or_discover(
    store: KeyValueStore,
    refresh: bool = False,
    now: datetime | None = None,
    run: Callable[[], list[DiscoveredOffer]] = discover_offers,
) -> tuple[list[DiscoveredOffer], bool]:
    """
    Return the cached offers while younger than OFFER_CACHE_TTL, else rediscover.

    The second element tells whether the cache was used.
    """
    now = now or datetime.now(timezone.utc)
    cached, fetched_at = store.load_offers()
    if not refresh and cached and fetched_at and now - fetched_at < OFFER_CACHE_TTL:
        logger.info("Using cached offers from %s", fetched_at.isoformat())
        return cached, True

    offers = run()
    store.save_offers(offers, now)
    return offers, False
