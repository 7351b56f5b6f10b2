"""SQLite-backed keyed store for tracked items, projects and the offer cache."""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from pricewatch.models import DiscoveredOffer, Project, TrackedItem

logger = logging.getLogger(__name__)

ITEMS_KEY = "tracked-items"
PROJECTS_KEY = "projects"
DELETED_COUNT_KEY = "deleted-count"
OFFERS_KEY = "discovered-offers"
OFFERS_FETCHED_AT_KEY = "last-offers-fetch"


def get_db_path() -> Path:
    """Get database path from env or default."""
    path = os.environ.get("DB_PATH", "data/pricewatch.db")
    return Path(path)


class KeyValueStore:
    """
    Durable ``load(key)`` / ``save(key, value)`` over a single SQLite table.

    Values are stored as JSON. Each call opens its own connection, so there
    is no atomicity across keys.
    """

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path else get_db_path()
        self._init_db()

    @contextmanager
    def get_connection(self):
        """Context manager for SQLite connection."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)

    def load(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for key, or default when absent."""
        with self.get_connection() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def save(self, key: str, value: Any) -> None:
        """Insert or replace the value stored under key."""
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), datetime.now().isoformat()),
            )

    # ── Typed helpers ─────────────────────────────────────────────────────────

    def load_items(self) -> list[TrackedItem]:
        return [TrackedItem.from_dict(d) for d in self.load(ITEMS_KEY, [])]

    def save_items(self, items: list[TrackedItem]) -> None:
        self.save(ITEMS_KEY, [item.to_dict() for item in items])
        logger.debug("Saved %d tracked items", len(items))

    def load_projects(self) -> list[Project]:
        return [Project.from_dict(d) for d in self.load(PROJECTS_KEY, [])]

    def save_projects(self, projects: list[Project]) -> None:
        self.save(PROJECTS_KEY, [p.to_dict() for p in projects])

    def load_deleted_count(self) -> int:
        return int(self.load(DELETED_COUNT_KEY, 0))

    def save_deleted_count(self, count: int) -> None:
        self.save(DELETED_COUNT_KEY, count)

    def load_offers(self) -> tuple[list[DiscoveredOffer], datetime | None]:
        """Return the cached discovery batch and when it was fetched."""
        offers = [DiscoveredOffer.from_dict(d) for d in self.load(OFFERS_KEY, [])]
        fetched_at = self.load(OFFERS_FETCHED_AT_KEY)
        return offers, datetime.fromisoformat(fetched_at) if fetched_at else None

    def save_offers(self, offers: list[DiscoveredOffer], fetched_at: datetime) -> None:
        self.save(OFFERS_KEY, [o.to_dict() for o in offers])
        self.save(OFFERS_FETCHED_AT_KEY, fetched_at.isoformat())
