"""Shared fixtures: fake clock, scripted page source and engine factory."""

from datetime import datetime, timedelta, timezone

import pytest

from pricewatch.config import TrackerPolicy
from pricewatch.models import ExtractionResult
from pricewatch.notifiers import AlertLog
from pricewatch.storage import KeyValueStore
from pricewatch.tracker import TrackingEngine


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeSource:
    """Scripted fetch + extract pair. Each fetch consumes one queued outcome."""

    def __init__(self) -> None:
        self.queue: list[ExtractionResult | Exception] = []
        self.calls: list[tuple[str, str | None]] = []
        self._current: ExtractionResult | None = None

    def push(self, *outcomes: ExtractionResult | Exception) -> None:
        self.queue.extend(outcomes)

    def push_prices(self, *prices: float) -> None:
        self.push(*(ExtractionResult(name="Fresh Milk", price=p) for p in prices))

    def fetch(self, url: str, sku: str | None = None) -> str:
        self.calls.append((url, sku))
        outcome = self.queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        self._current = outcome
        return "<html></html>"

    def extract(self, html: str, base_url: str | None = None) -> ExtractionResult:
        return self._current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def store(tmp_path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "test.db")


@pytest.fixture
def alert_log() -> AlertLog:
    return AlertLog(maxlen=100)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_engine(store, source, clock, sleeps):
    """Build an engine over the fake source; extra sinks and policy are optional."""

    def _make(sinks=None, policy: TrackerPolicy | None = None) -> TrackingEngine:
        return TrackingEngine(
            store=store,
            fetch=source.fetch,
            extractor=source.extract,
            sinks=sinks if sinks is not None else [],
            policy=policy or TrackerPolicy(),
            clock=clock,
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def engine(make_engine, alert_log) -> TrackingEngine:
    return make_engine(sinks=[alert_log])
