"""Periodic ingest trigger built on APScheduler."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from silent_witness.engine import IngestionEngine
from silent_witness.errors import SourceNotFound

logger = logging.getLogger(__name__)


def run_ingest(engine: IngestionEngine):
    """Scheduler job: run one ingest and log the outcome."""
    result = engine.ingest()
    if isinstance(result.error, SourceNotFound):
        logger.debug("Nothing to ingest yet: %s", result.error)
    elif result.error is not None:
        logger.error("Scheduled ingest failed: %s", result.error)
    elif result.new_entries:
        logger.info("Scheduled ingest: %d new entries", result.new_entries)
    return result


def build_scheduler(engine: IngestionEngine, interval: int) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(run_ingest, "interval", seconds=interval, args=[engine],
                      id="silent_witness_ingest", max_instances=1, coalesce=True)
    return scheduler
