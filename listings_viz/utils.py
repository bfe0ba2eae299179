"""Shared utilities: environment flags and logging setup.

Used by the API process, the scheduler and the backfill script alike.
"""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("apscheduler.executors.default", "apscheduler.scheduler")

def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")

def get_logger(name=__name__):
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=level
    )
    if level > logging.DEBUG:
        for noisy in QUIET_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)
    return logging.getLogger(name)

logger = get_logger("listings-viz")
