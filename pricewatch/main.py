"""Entry point and background scheduler for pricewatch."""

import logging
import os
import random
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pricewatch.config import get_poll_minutes, load_policy
from pricewatch.notifiers import AlertLog, push_alert
from pricewatch.storage import KeyValueStore
from pricewatch.tracker import TrackingEngine

logger = logging.getLogger(__name__)

INITIAL_DELAY_SECONDS = 30


def setup_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_engine(alert_log: AlertLog | None = None) -> TrackingEngine:
    """Wire the engine to the SQLite store and the configured alert sinks."""
    sinks = [alert_log if alert_log is not None else AlertLog(), push_alert]
    return TrackingEngine(store=KeyValueStore(), sinks=sinks, policy=load_policy())


def run_check(engine: TrackingEngine) -> None:
    """Check every due item once."""
    try:
        checked = engine.check_all()
        logger.info("Background pass done: %d items checked", checked)
    except Exception as e:
        logger.exception("Background pass error: %s", e)


def run_check_with_jitter(engine: TrackingEngine) -> None:
    """
    Add randomized jitter before each scheduled check.

    The base interval is BACKGROUND_POLL_MINUTES; each run is preceded by a
    random delay of 0 to JITTER_MAX_SECONDS seconds (default 60).
    """
    jitter_max = int(os.environ.get("JITTER_MAX_SECONDS", "60"))
    delay = random.uniform(0, jitter_max)
    logger.debug("Jitter: sleeping %.1f s before check", delay)
    time.sleep(delay)
    run_check(engine)


def main() -> None:
    """Start the background scheduler: first pass after 30 s, then every interval."""
    setup_logging()
    engine = build_engine()
    interval_minutes = get_poll_minutes()
    jitter_max = int(os.environ.get("JITTER_MAX_SECONDS", "60"))

    logger.info("🚀 pricewatch started, tracking %d items", len(engine.list_items()))
    logger.info("Scheduler: every ~%d min ± %d s jitter", interval_minutes, jitter_max)

    time.sleep(INITIAL_DELAY_SECONDS)
    run_check(engine)

    scheduler = BlockingScheduler()
    scheduler.add_job(
        run_check_with_jitter,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[engine],
        id="price_check",
        max_instances=1,          # Prevent overlapping runs
        misfire_grace_time=300,   # 5 min grace if a run is missed
    )
    scheduler.start()


if __name__ == "__main__":
    main()
