"""Fetchers for product and listing pages."""

from pricewatch.fetchers.rendered import BrowserSession, fetch_rendered
from pricewatch.fetchers.static import fetch_product_page, fetch_static

__all__ = ["BrowserSession", "fetch_rendered", "fetch_product_page", "fetch_static"]
