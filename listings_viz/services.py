from . import crud
from .geocode import resolve
from sqlalchemy.orm import Session
from .utils import logger
from typing import Dict, Optional

REQUIRED_FIELDS = ("scraper_name", "url", "run_id")

def _to_price(value) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.replace("\u00a0", "").replace(" ", "").replace(",", ".")
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

def ingest_snapshot(db: Session, payload: Dict):
    """Store one scraped listing as a new version.

    Coordinates the scraper did not supply are looked up from the location
    text; listings that stay unresolved are picked up by the backfill later.
    """
    missing = [f for f in REQUIRED_FIELDS if not payload.get(f)]
    if missing:
        raise ValueError("missing fields: %s" % ", ".join(missing))
    run = crud.get_run(db, payload["run_id"])
    if not run:
        raise ValueError("unknown run %s" % payload["run_id"])
    if run.scraper_name != payload["scraper_name"]:
        raise ValueError("run %s belongs to scraper %s, not %s"
                         % (run.id, run.scraper_name, payload["scraper_name"]))
    payload = dict(payload)
    payload["price"] = _to_price(payload.get("price"))
    if payload.get("coordinates_lat") is None and payload.get("location"):
        coords = resolve(payload["location"])
        if coords:
            payload["coordinates_lat"], payload["coordinates_lng"] = coords
        else:
            logger.debug("No coordinates for location %r", payload["location"])
    obj = crud.insert_snapshot(db, payload)
    logger.info("Ingested %s listing %s (run %s)", obj.scraper_name, obj.url, obj.run_id)
    return obj

def get_listing_detail(db: Session, listing_id: int, history_limit: Optional[int] = 10):
    obj = crud.get_snapshot(db, listing_id)
    if not obj:
        return None
    item = crud.snapshot_as_dict(obj)
    item.update(crud.change_flags(db, obj).as_dict())
    item["total_versions"] = crud.version_count(db, obj.scraper_name, obj.url)
    item["change_history"] = crud.listing_history(db, obj.scraper_name, obj.url, limit=history_limit)
    return item

def get_listing_history(db: Session, listing_id: int):
    obj = crud.get_snapshot(db, listing_id)
    if not obj:
        return None
    return crud.listing_history(db, obj.scraper_name, obj.url)
