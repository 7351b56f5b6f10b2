"""
Exception hierarchy for pricewatch.

Fetchers raise FetchError subclasses; the tracking engine catches them and
decides between retiring an item (NotFound) and logging a transient failure
(everything else). The extractor never raises.
"""

from typing import Any


class PriceWatchError(Exception):
    """Base exception for all pricewatch errors."""

    def __init__(
        self,
        message: str,
        code: str = "PRICEWATCH_ERROR",
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for logs and CLI output."""
        result: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


# ============================================================
# Fetch errors
# ============================================================

class FetchError(PriceWatchError):
    """Base class for failures while retrieving a page."""

    def __init__(self, message: str, code: str = "FETCH_ERROR", **kwargs: Any):
        super().__init__(message, code, **kwargs)


class HttpError(FetchError):
    """Source answered with a non-success HTTP status."""

    def __init__(self, status: int, url: str = "", code: str = "HTTP_ERROR", message: str | None = None):
        super().__init__(message or f"HTTP {status}", code, details={"status": status, "url": url})
        self.status = status
        self.url = url


class RateLimited(HttpError):
    """Source answered 429. Must back off; never retires an item."""

    def __init__(self, url: str = ""):
        super().__init__(
            429,
            url,
            code="RATE_LIMITED",
            message="Rate limit exceeded. Please wait a few minutes before trying again.",
        )


class NotFound(HttpError):
    """Source confirms the listing is gone (404 or another 4xx)."""

    def __init__(self, status: int = 404, url: str = ""):
        super().__init__(status, url, code="NOT_FOUND")


class NetworkFailure(FetchError):
    """The request itself failed (DNS, connection reset, ...)."""

    def __init__(self, message: str, code: str = "NETWORK_FAILURE", **kwargs: Any):
        super().__init__(message, code, **kwargs)


class FetchTimeout(NetworkFailure):
    """Bounded wait exceeded."""

    def __init__(self, url: str, timeout_seconds: float, cause: Exception | None = None):
        super().__init__(
            f"Timed out after {timeout_seconds:g}s fetching {url}",
            code="TIMEOUT",
            details={"url": url, "timeout_seconds": timeout_seconds},
            cause=cause,
        )


class NavigationError(NetworkFailure):
    """Headless browser could not load the page."""

    def __init__(self, url: str, cause: Exception | None = None):
        super().__init__(
            f"Navigation failed for {url}",
            code="NAVIGATION_ERROR",
            details={"url": url},
            cause=cause,
        )


# ============================================================
# Extraction errors
# ============================================================

class TransientExtractionFailure(PriceWatchError):
    """Page fetched but no price could be extracted. Retried later."""

    def __init__(self, message: str = "Could not extract price from page", **kwargs: Any):
        super().__init__(message, "EXTRACTION_FAILED", **kwargs)


class NoPriceExtracted(TransientExtractionFailure):
    """First scrape of a new item yielded no price; the item is not created."""


# ============================================================
# Tracking errors
# ============================================================

class CooldownActive(PriceWatchError):
    """Manual check attempted inside the cooldown window. Informational."""

    def __init__(self, minutes_left: int):
        plural = "s" if minutes_left > 1 else ""
        super().__init__(
            f"Please wait {minutes_left} minute{plural} before checking again",
            "COOLDOWN",
            details={"minutes_left": minutes_left},
        )
        self.minutes_left = minutes_left


class CheckInProgress(PriceWatchError):
    """Another check on the same item has not finished yet."""

    def __init__(self, item_id: str):
        super().__init__(f"A check for item {item_id} is already running", "CHECK_IN_PROGRESS")


class ItemNotFound(PriceWatchError):
    """No tracked item with the given id."""

    def __init__(self, item_id: str):
        super().__init__(f"No tracked item with id {item_id}", "ITEM_NOT_FOUND")


class InvalidProductLink(PriceWatchError):
    """URL carries no product SKU."""

    def __init__(self, url: str):
        super().__init__("Could not extract SKU", "INVALID_LINK", details={"url": url})


def is_not_found(exc: Exception) -> bool:
    """True when a failure confirms the listing was removed at the source."""
    return isinstance(exc, NotFound)
