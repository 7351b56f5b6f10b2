"""Price tracking for a single retail site: scraping, offer discovery and alerts."""

__version__ = "0.1.0"
