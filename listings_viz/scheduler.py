# listings_viz/scheduler.py
import os
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError
from . import crud
from .backfill import format_summary, run_backfill
from .db import SessionLocal
from .utils import env_flag, logger

BACKFILL_INTERVAL_HOURS = float(os.getenv("BACKFILL_INTERVAL_HOURS", "6"))

def backfill_all_scrapers():
    db = SessionLocal()
    try:
        for scraper_name in crud.scraper_names(db):
            try:
                result = run_backfill(db, scraper_name)
            except SQLAlchemyError:
                logger.exception("Scheduled backfill for %s failed", scraper_name)
                db.rollback()
                continue
            logger.info("Scheduled backfill for %s\n%s", scraper_name, format_summary(result))
    finally:
        db.close()

scheduler = BackgroundScheduler()
scheduler.add_job(backfill_all_scrapers, 'interval', hours=BACKFILL_INTERVAL_HOURS, id="coordinate-backfill")

def start():
    if not env_flag("BACKFILL_SCHEDULE", default=True):
        logger.info("Scheduled backfill disabled")
        return
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started, backfill every %s h", BACKFILL_INTERVAL_HOURS)
