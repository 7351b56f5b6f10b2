"""Data models for price tracking."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

HISTORY_LIMIT = 30


class ItemStatus(str, Enum):
    """Tracked item status. DELETED means moved to history."""

    ACTIVE = "active"
    DELETED = "deleted"


class AlertType(str, Enum):
    """Kind of alert emitted by the tracking engine."""

    SUCCESS = "success"
    ALERT = "alert"
    UPDATE = "update"
    ERROR = "error"


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class PricePoint:
    """One observed price."""

    price: float
    date: datetime

    def to_dict(self) -> dict:
        return {"price": self.price, "date": self.date.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "PricePoint":
        return cls(price=float(data["price"]), date=datetime.fromisoformat(data["date"]))


@dataclass
class ExtractionResult:
    """
    Best-effort product fields parsed from a page.

    ``price`` of None is the failure signal; the other fields are optional
    even on success. ``out_of_stock`` is set only when the page says so
    explicitly (schema.org availability).
    """

    name: str | None = None
    price: float | None = None
    original_price: float | None = None
    image_url: str | None = None
    out_of_stock: bool = False

    @property
    def ok(self) -> bool:
        return self.price is not None


@dataclass
class DiscoveredOffer:
    """Product card found on a listing page."""

    name: str
    price: float
    url: str
    original_price: float | None = None
    image_url: str | None = None
    sku: str | None = None
    discount: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DiscoveredOffer":
        return cls(**data)


@dataclass
class TrackedItem:
    """Monitored product and its price state."""

    id: str
    sku: str
    name: str
    link: str
    retail_price: float
    current_price: float | None = None
    original_price: float | None = None
    image_url: str | None = None
    price_history: list[PricePoint] = field(default_factory=list)
    status: ItemStatus = ItemStatus.ACTIVE
    is_unavailable: bool = False
    out_of_stock: bool = False
    alert_triggered: bool = False
    offer_start_date: datetime | None = None
    offer_end_date: datetime | None = None
    last_offer_duration: float | None = None  # seconds
    last_updated: datetime | None = None
    last_manual_check: datetime | None = None
    date_added: datetime | None = None
    project_id: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.status == ItemStatus.DELETED

    @property
    def has_open_offer(self) -> bool:
        return self.offer_start_date is not None and self.offer_end_date is None

    def record_price(self, price: float, when: datetime) -> None:
        """Prepend a price point, keeping the newest HISTORY_LIMIT entries."""
        self.price_history.insert(0, PricePoint(price=price, date=when))
        del self.price_history[HISTORY_LIMIT:]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "link": self.link,
            "retail_price": self.retail_price,
            "current_price": self.current_price,
            "original_price": self.original_price,
            "image_url": self.image_url,
            "price_history": [p.to_dict() for p in self.price_history],
            "status": self.status.value,
            "is_unavailable": self.is_unavailable,
            "out_of_stock": self.out_of_stock,
            "alert_triggered": self.alert_triggered,
            "offer_start_date": _to_iso(self.offer_start_date),
            "offer_end_date": _to_iso(self.offer_end_date),
            "last_offer_duration": self.last_offer_duration,
            "last_updated": _to_iso(self.last_updated),
            "last_manual_check": _to_iso(self.last_manual_check),
            "date_added": _to_iso(self.date_added),
            "project_id": self.project_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrackedItem":
        return cls(
            id=data["id"],
            sku=data["sku"],
            name=data["name"],
            link=data["link"],
            retail_price=float(data["retail_price"]),
            current_price=data.get("current_price"),
            original_price=data.get("original_price"),
            image_url=data.get("image_url"),
            price_history=[PricePoint.from_dict(p) for p in data.get("price_history", [])],
            status=ItemStatus(data.get("status", ItemStatus.ACTIVE.value)),
            is_unavailable=data.get("is_unavailable", False),
            out_of_stock=data.get("out_of_stock", False),
            alert_triggered=data.get("alert_triggered", False),
            offer_start_date=_from_iso(data.get("offer_start_date")),
            offer_end_date=_from_iso(data.get("offer_end_date")),
            last_offer_duration=data.get("last_offer_duration"),
            last_updated=_from_iso(data.get("last_updated")),
            last_manual_check=_from_iso(data.get("last_manual_check")),
            date_added=_from_iso(data.get("date_added")),
            project_id=data.get("project_id"),
        )


@dataclass
class Alert:
    """Event emitted to alert sinks."""

    id: str
    sku: str
    name: str
    message: str
    time: datetime
    type: AlertType


@dataclass
class Project:
    """Named group of tracked items."""

    id: str
    name: str
    category: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            id=data["id"],
            name=data["name"],
            category=data.get("category", "General"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
