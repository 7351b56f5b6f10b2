"""
Tracking engine: per-item polling, throttling, offer lifecycle and alerts.

Every check goes through check_price(). It applies the eligibility gates,
fetches and extracts the page, then either

* records the new price (offer start/end, deep-discount alert, history),
* retires the item when the source says the listing is gone, or
* keeps the item untouched apart from bookkeeping on a transient failure.

Manual failures are surfaced to the caller; background failures are only
surfaced when they retire an item.
"""

import itertools
import logging
import math
import random
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from pricewatch.config import CURRENCY, TrackerPolicy, load_policy
from pricewatch.errors import (
    CheckInProgress,
    CooldownActive,
    InvalidProductLink,
    ItemNotFound,
    NoPriceExtracted,
    PriceWatchError,
    RateLimited,
    TransientExtractionFailure,
    is_not_found,
)
from pricewatch.extractor import extract
from pricewatch.fetchers.static import fetch_product_page
from pricewatch.models import (
    Alert,
    AlertType,
    ExtractionResult,
    ItemStatus,
    Project,
    TrackedItem,
)
from pricewatch.storage import KeyValueStore

logger = logging.getLogger(__name__)

AlertSink = Callable[[Alert], None]

SKU_PATTERN = re.compile(r"/p/(\d+)")
NAME_PATTERN = re.compile(r"/en/([^/]+)/([^/]+)/p/\d+")

_alert_ids = itertools.count()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_sku_from_link(link: str) -> str | None:
    match = SKU_PATTERN.search(link)
    return match.group(1) if match else None


def product_name_from_link(link: str) -> str:
    """'/en/food/fresh-milk-500ml/p/123' -> 'Fresh Milk 500ml'."""
    match = NAME_PATTERN.search(link)
    if match:
        return " ".join(word[:1].upper() + word[1:] for word in match.group(2).split("-"))
    return "Product"


def is_below_threshold(current_price: float | None, retail_price: float, ratio: float = 0.5) -> bool:
    if not current_price:
        return False
    return current_price < retail_price * ratio


def price_percentage(current_price: float | None, retail_price: float) -> str | None:
    """Current price as a percentage of the retail price, one decimal."""
    if not current_price:
        return None
    return f"{current_price / retail_price * 100:.1f}"


def format_duration(seconds: float) -> str:
    """Whole days when at least one day, otherwise whole hours."""
    days = int(seconds // 86400)
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''}"
    hours = int(seconds % 86400 // 3600)
    return f"{hours} hour{'s' if hours != 1 else ''}"


def _money(value: float) -> str:
    return f"{CURRENCY} {value:,.2f}"


class TrackingEngine:
    """Owns the tracked items and every state transition applied to them."""

    def __init__(
        self,
        store: KeyValueStore,
        fetch: Callable[[str, str | None], str] = fetch_product_page,
        extractor: Callable[..., ExtractionResult] = extract,
        sinks: list[AlertSink] | None = None,
        policy: TrackerPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.fetch = fetch
        self.extractor = extractor
        self.sinks = sinks if sinks is not None else []
        self.policy = policy or load_policy()
        self.clock = clock
        self.sleep = sleep

        self._items: dict[str, TrackedItem] = {item.id: item for item in store.load_items()}
        self._projects: list[Project] = store.load_projects()
        self._deleted_count = store.load_deleted_count()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ── Queries ───────────────────────────────────────────────────────────────

    def get_item(self, item_id: str) -> TrackedItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise ItemNotFound(item_id) from None

    def list_items(self, include_deleted: bool = False) -> list[TrackedItem]:
        return [i for i in self._items.values() if include_deleted or not i.is_deleted]

    def deleted_items(self) -> list[TrackedItem]:
        return [i for i in self._items.values() if i.is_deleted]

    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    @property
    def deleted_count(self) -> int:
        return self._deleted_count

    def is_due(self, item: TrackedItem, now: datetime | None = None) -> bool:
        """Background eligibility: active and not checked within the minimum interval."""
        if item.is_deleted:
            return False
        if item.last_updated is None:
            return True
        now = now or self.clock()
        return now - item.last_updated >= self.policy.min_check_interval

    def cooldown_minutes_left(self, item: TrackedItem, now: datetime | None = None) -> int:
        """Whole minutes until a manual check is allowed again; 0 when allowed."""
        if item.last_manual_check is None:
            return 0
        now = now or self.clock()
        remaining = self.policy.manual_cooldown - (now - item.last_manual_check)
        if remaining.total_seconds() <= 0:
            return 0
        return math.ceil(remaining.total_seconds() / 60)

    # ── Item lifecycle ────────────────────────────────────────────────────────

    def add_item(self, url: str, project_id: str | None = None) -> TrackedItem:
        """Scrape ``url`` once and start tracking it. Nothing is stored on failure."""
        sku = extract_sku_from_link(url)
        if not sku:
            raise InvalidProductLink(url)

        try:
            html = self.fetch(url, sku)
            result = self.extractor(html, url)
            if not result.ok:
                raise NoPriceExtracted("Could not extract price")
        except PriceWatchError as e:
            self._emit(AlertType.ERROR, sku="", name="Error", message=f"✗ {e}")
            raise

        now = self.clock()
        item = TrackedItem(
            id=uuid.uuid4().hex,
            sku=sku,
            name=result.name or product_name_from_link(url),
            link=url,
            retail_price=result.price,
            current_price=result.price,
            original_price=result.original_price,
            image_url=result.image_url,
            last_updated=now,
            date_added=now,
            project_id=project_id,
        )
        item.record_price(result.price, now)
        self._items[item.id] = item
        self._persist()

        logger.info("Added %s (%s) at %s", item.name[:50], sku, _money(result.price))
        self._emit(AlertType.SUCCESS, item=item, message=f"✓ Added {item.name}")
        return item

    def delete_item(self, item_id: str) -> TrackedItem:
        """Move an item to history."""
        item = self.get_item(item_id)
        if item.is_deleted:
            return item
        item.status = ItemStatus.DELETED
        self._deleted_count += 1
        self.store.save_deleted_count(self._deleted_count)
        self._persist()
        return item

    def restore_item(self, item_id: str) -> TrackedItem:
        """Bring an item back from history and clear its unavailability flags."""
        item = self.get_item(item_id)
        item.status = ItemStatus.ACTIVE
        item.is_unavailable = False
        item.out_of_stock = False
        self._persist()
        return item

    def reset_alert(self, item_id: str) -> TrackedItem:
        """Re-arm the deep-discount alert."""
        item = self.get_item(item_id)
        item.alert_triggered = False
        self._persist()
        return item

    def create_project(self, name: str, category: str = "General") -> Project:
        project = Project(
            id=uuid.uuid4().hex,
            name=name.strip(),
            category=category or "General",
            created_at=self.clock(),
        )
        self._projects.append(project)
        self.store.save_projects(self._projects)
        return project

    # ── Price checks ──────────────────────────────────────────────────────────

    def check_price(
        self,
        item_id: str,
        is_background: bool = False,
        restore: bool | None = None,
    ) -> TrackedItem | None:
        """
        Re-check one item.

        Background checks return None when the item is not due or already
        being checked. They raise only RateLimited, so the caller can stop
        its pass; other fetch or extraction failures are recorded and the
        item is returned. Manual checks raise CooldownActive,
        CheckInProgress, or the fetch / extraction error after recording it.

        ``restore`` overrides the policy on whether a success re-activates an
        item the user deleted by hand.
        """
        item = self.get_item(item_id)
        now = self.clock()

        if is_background:
            if not self.is_due(item, now):
                return None
        else:
            minutes_left = self.cooldown_minutes_left(item, now)
            if minutes_left:
                logger.info("Manual check of %s refused: cooldown, %d min left", item.sku, minutes_left)
                raise CooldownActive(minutes_left)

        lock = self._lock_for(item.id)
        if not lock.acquire(blocking=False):
            if is_background:
                logger.debug("Skipping %s: check already in progress", item.sku)
                return None
            raise CheckInProgress(item.id)

        try:
            try:
                html = self.fetch(item.link, item.sku)
                result = self.extractor(html, item.link)
                if not result.ok and not result.out_of_stock:
                    raise TransientExtractionFailure()
            except PriceWatchError as e:
                self._handle_failure(item, e, is_background, self.clock())
                if is_background and not isinstance(e, RateLimited):
                    return item
                raise

            now = self.clock()
            if result.out_of_stock:
                self._retire(item, is_background, now)
            else:
                self._apply_price(item, result, is_background, now, restore)
            self._persist()
            return item
        finally:
            lock.release()

    def check_all(self) -> int:
        """
        Background pass over every due item, one at a time.

        Items are checked in store order with a randomized pause between
        them. Returns how many items were checked.
        """
        now = self.clock()
        due = [item for item in self.list_items() if self.is_due(item, now)]
        if not due:
            logger.debug("No items due for a price check")
            return 0

        logger.info("Checking %d items", len(due))
        checked = 0
        for index, item in enumerate(due):
            if index:
                self.sleep(random.uniform(*self.policy.batch_delay_range))
            try:
                if self.check_price(item.id, is_background=True) is not None:
                    checked += 1
            except RateLimited:
                checked += 1
                logger.warning(
                    "Source rate limit hit; stopping pass, %d items left for the next run",
                    len(due) - index - 1,
                )
                break
            except Exception as e:
                logger.exception("Background check of %s crashed: %s", item.sku, e)
        return checked

    def check_selected(self, item_ids: list[str]) -> list[TrackedItem]:
        """
        Manually re-check items picked from history.

        A successful re-check puts the item back on the active list. Failures
        are already reported through the alert sinks and are only logged here.
        """
        selected = [self.get_item(i) for i in item_ids]
        selected = [i for i in selected if i.is_deleted]
        restored: list[TrackedItem] = []
        for index, item in enumerate(selected):
            if index:
                self.sleep(self.policy.recheck_delay)
            try:
                updated = self.check_price(item.id, is_background=False, restore=True)
            except RateLimited:
                logger.warning("Source rate limit hit; skipping %d remaining re-checks", len(selected) - index - 1)
                break
            except PriceWatchError as e:
                logger.info("Re-check of %s failed: %s", item.sku, e)
                continue
            if updated is not None and not updated.is_deleted:
                restored.append(updated)
        return restored

    # ── Transitions ───────────────────────────────────────────────────────────

    def _apply_price(
        self,
        item: TrackedItem,
        result: ExtractionResult,
        is_background: bool,
        now: datetime,
        restore: bool | None,
    ) -> None:
        price = result.price
        base_price = result.original_price or item.retail_price
        should_alert = price < base_price * self.policy.deep_discount_ratio and not item.alert_triggered

        has_offer = price < base_price
        had_offer = item.has_open_offer

        if has_offer and not had_offer:
            item.offer_start_date = now
            item.offer_end_date = None
            savings = base_price - price
            percent_off = round(savings / base_price * 100)
            self._emit(
                AlertType.ALERT,
                item=item,
                message=f"🎉 New offer on {item.name}! Save {CURRENCY} {savings:.2f} ({percent_off}% off)",
            )

        if not has_offer and had_offer:
            item.offer_end_date = now
            duration = (now - item.offer_start_date).total_seconds()
            item.last_offer_duration = duration
            self._emit(
                AlertType.UPDATE,
                item=item,
                message=f"⏰ Offer ended on {item.name}. It lasted {format_duration(duration)}",
            )

        if should_alert:
            item.alert_triggered = True
            self._emit(AlertType.ALERT, item=item, message=f"🎉 {item.name} dropped to {_money(price)}")

        item.record_price(price, now)
        item.current_price = price
        item.original_price = result.original_price or item.original_price
        item.image_url = result.image_url or item.image_url
        item.last_updated = now
        if not is_background:
            item.last_manual_check = now

        was_out_of_stock = item.out_of_stock or item.is_unavailable
        item.is_unavailable = False
        item.out_of_stock = False
        if item.is_deleted:
            auto_restore = self.policy.auto_restore_on_success if restore is None else restore
            if was_out_of_stock or auto_restore:
                item.status = ItemStatus.ACTIVE
                logger.info("%s is back in stock and active again", item.sku)

        logger.info("%s: %s", item.name[:50], _money(price))

    def _retire(self, item: TrackedItem, is_background: bool, now: datetime) -> None:
        item.is_unavailable = True
        item.out_of_stock = True
        item.status = ItemStatus.DELETED
        if not is_background:
            item.last_manual_check = now
        logger.warning("%s (%s) is out of stock, moved to history", item.name[:50], item.sku)

        if is_background:
            self._emit(AlertType.ERROR, item=item, message=f"Item out of stock: {item.name}")
        else:
            self._emit(
                AlertType.UPDATE,
                item=item,
                message=f"{item.name} is out of stock and moved to history",
            )

    def _handle_failure(
        self,
        item: TrackedItem,
        error: PriceWatchError,
        is_background: bool,
        now: datetime,
    ) -> None:
        item.last_updated = now
        if is_not_found(error):
            self._retire(item, is_background, now)
        elif not is_background:
            item.last_manual_check = now

        if isinstance(error, RateLimited):
            logger.warning("Rate limited while checking %s: backing off", item.sku)
        if is_background:
            logger.debug("Background check failed for %s: %s", item.name, error)
        else:
            self._emit(AlertType.ERROR, item=item, message=f"Error: {error}")
        self._persist()

    # ── Plumbing ──────────────────────────────────────────────────────────────

    def _lock_for(self, item_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(item_id, threading.Lock())

    def _persist(self) -> None:
        self.store.save_items(list(self._items.values()))

    def _emit(
        self,
        kind: AlertType,
        message: str,
        item: TrackedItem | None = None,
        sku: str = "",
        name: str = "",
    ) -> Alert:
        alert = Alert(
            id=f"{int(time.time() * 1000)}-{next(_alert_ids)}",
            sku=item.sku if item else sku,
            name=item.name if item else name,
            message=message,
            time=self.clock(),
            type=kind,
        )
        for sink in self.sinks:
            try:
                sink(alert)
            except Exception as e:
                logger.error("Alert sink failed: %s", e, exc_info=True)
        return alert
