"""Environment-driven configuration."""

import os
from dataclasses import dataclass
from datetime import timedelta

SITE_NAME = "Carrefour Kenya"
CURRENCY = "KES"

DEFAULT_SEARCH_URL_TEMPLATE = "https://www.carrefourkenya.com/mafken/en/search/?text={sku}"

PROMOTION_URLS = [
    "https://www.carrefour.ke/mafken/en/c/ken-dod-offers",
    "https://www.carrefour.ke/mafken/en/c/ken-online-exclusives",
    "https://www.carrefour.ke/mafken/en/c/ken-flash-sale",
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_float(name: str, default: float) -> float:
    val = os.environ.get(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


def get_search_url_template() -> str:
    """Site search URL used as a fallback when a product URL fails."""
    return os.environ.get("SEARCH_URL_TEMPLATE", DEFAULT_SEARCH_URL_TEMPLATE)


def get_scrape_timeout() -> float:
    """Timeout in seconds for plain HTTP product-page fetches."""
    return _env_float("SCRAPE_TIMEOUT_SECONDS", 15)


def get_render_timeout() -> float:
    """Timeout in seconds for headless-browser page renders."""
    return _env_float("RENDER_TIMEOUT_SECONDS", 20)


def get_browser_name() -> str:
    return os.environ.get("PLAYWRIGHT_BROWSER", "chromium")


def get_poll_minutes() -> int:
    return int(_env_float("BACKGROUND_POLL_MINUTES", 30))


@dataclass
class TrackerPolicy:
    """
    Timing and policy knobs for the tracking engine.

    ``auto_restore_on_success`` decides whether a successful check on an item
    the user deleted by hand puts it back on the active list. Items retired
    because they went out of stock are always restored by a successful check.
    """

    min_check_interval: timedelta = timedelta(minutes=15)
    manual_cooldown: timedelta = timedelta(minutes=5)
    deep_discount_ratio: float = 0.5
    batch_delay_range: tuple[float, float] = (3.0, 5.0)
    recheck_delay: float = 1.0
    auto_restore_on_success: bool = False


def load_policy() -> TrackerPolicy:
    """Build a TrackerPolicy from the environment."""
    return TrackerPolicy(
        min_check_interval=timedelta(minutes=_env_float("MIN_CHECK_INTERVAL_MINUTES", 15)),
        manual_cooldown=timedelta(minutes=_env_float("MANUAL_COOLDOWN_MINUTES", 5)),
        auto_restore_on_success=_env_bool("AUTO_RESTORE_ON_SUCCESS"),
    )
