"""Plain HTTP fetcher for product detail pages."""

import logging
from urllib.parse import quote

import requests

from pricewatch.config import USER_AGENT, get_scrape_timeout, get_search_url_template
from pricewatch.errors import (
    FetchError,
    FetchTimeout,
    HttpError,
    NetworkFailure,
    NotFound,
    RateLimited,
)

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-store",
}


def _raise_for_status(resp: requests.Response, url: str) -> None:
    """Translate an HTTP status into the fetch error taxonomy."""
    status = resp.status_code
    if status == 429:
        raise RateLimited(url)
    if 400 <= status < 500:
        raise NotFound(status, url)
    if status >= 400:
        raise HttpError(status, url)


def fetch_static(url: str, timeout: float | None = None) -> str:
    """
    GET a page and return its HTML.

    Raises RateLimited (429), NotFound (other 4xx), HttpError (5xx),
    FetchTimeout or NetworkFailure.
    """
    timeout = timeout if timeout is not None else get_scrape_timeout()
    try:
        resp = requests.get(url, headers=HEADERS, timeout=timeout)
    except requests.Timeout as e:
        raise FetchTimeout(url, timeout, cause=e) from e
    except requests.RequestException as e:
        raise NetworkFailure(f"Request failed for {url}", details={"url": url}, cause=e) from e

    _raise_for_status(resp, url)
    return resp.text


def fetch_product_page(url: str, sku: str | None = None, timeout: float | None = None) -> str:
    """
    Fetch a product page, falling back to the site search for ``sku``.

    The search fallback only covers server and network failures: a 4xx on
    the product URL is an answer about the listing itself and is re-raised
    as is. If the search also fails, the original error is re-raised.
    """
    try:
        return fetch_static(url, timeout)
    except (RateLimited, NotFound):
        raise
    except FetchError as url_error:
        if not sku:
            raise
        search_url = get_search_url_template().format(sku=quote(sku))
        logger.info("Original URL failed (%s), trying SKU fallback for %s", url_error, sku)
        try:
            return fetch_static(search_url, timeout)
        except FetchError as search_error:
            logger.debug("SKU search fallback failed: %s", search_error)
            raise url_error from search_error
