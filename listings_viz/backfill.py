# listings_viz/backfill.py
"""Backfill coordinates for listings stored without them.

Each distinct location string of a source is resolved once and written to
every row sharing it, but only to rows whose coordinates are still NULL, so
re-running (or running two backfills at once) never overwrites anything.
"""
import argparse
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud
from .gazetteer import Coordinates
from .geocode import resolve
from .utils import logger


@dataclass
class BackfillResult:
    scraper_name: str
    locations: int = 0
    geocoded: int = 0
    failed: int = 0
    rows_updated: int = 0
    skipped_empty_location: int = 0
    remaining: int = 0
    total: int = 0
    unresolved: List[str] = field(default_factory=list)
    # False when the post-run totals could not be read
    counts_available: bool = True

    @property
    def with_coordinates(self) -> int:
        return self.total - self.remaining


def run_backfill(db: Session, scraper_name: str,
                 resolver: Callable[[str], Optional[Coordinates]] = resolve) -> BackfillResult:
    result = BackfillResult(scraper_name=scraper_name)
    # nothing to iterate without this list; let the error abort the run
    locations = crud.distinct_unresolved_locations(db, scraper_name)
    result.locations = len(locations)
    logger.info("Found %d distinct %s locations with NULL coordinates", len(locations), scraper_name)

    for location in locations:
        try:
            coords = resolver(location)
        except Exception:
            logger.exception("Geocoding %r raised", location)
            coords = None
        if not coords:
            result.failed += 1
            result.unresolved.append(location)
            logger.info("  x %r -> no match", location)
            continue
        lat, lng = coords
        try:
            updated = crud.set_coordinates_if_unset(db, scraper_name, location, lat, lng)
        except SQLAlchemyError:
            logger.exception("Updating coordinates for %r failed", location)
            db.rollback()
            result.failed += 1
            result.unresolved.append(location)
            continue
        result.geocoded += 1
        result.rows_updated += updated
        logger.info("  ok %r -> [%s, %s] (%d rows)", location, lat, lng, updated)

    try:
        result.skipped_empty_location = crud.count_missing_coordinates(db, scraper_name, empty_location_only=True)
        result.remaining = crud.count_missing_coordinates(db, scraper_name)
        result.total = crud.count_listings(db, scraper_name)
    except SQLAlchemyError:
        # updates above are already committed; report them without the totals
        logger.exception("Counting %s listings after backfill failed", scraper_name)
        db.rollback()
        result.counts_available = False
    return result


def format_summary(result: BackfillResult) -> str:
    lines = [
        "Results:",
        f"  Locations geocoded: {result.geocoded}",
        f"  Locations not matched: {result.failed}",
        f"  Total rows updated: {result.rows_updated}",
    ]
    if not result.counts_available:
        lines.append(f"  {result.scraper_name} listing totals unavailable")
        return "\n".join(lines)
    lines.extend([
        f"  Rows with empty/null location (skipped): {result.skipped_empty_location}",
        "",
        f"  {result.scraper_name} listings with coordinates: {result.with_coordinates} / {result.total}",
        f"  {result.scraper_name} listings still missing coordinates: {result.remaining}",
    ])
    return "\n".join(lines)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Backfill missing listing coordinates for one scraper.")
    parser.add_argument("scraper_name", help="scraper whose listings should be geocoded, e.g. gfr")
    args = parser.parse_args(argv)

    from .db import SessionLocal

    db = SessionLocal()
    try:
        result = run_backfill(db, args.scraper_name)
    except SQLAlchemyError:
        logger.exception("Backfill for %s failed", args.scraper_name)
        return 1
    finally:
        db.close()
    print(format_summary(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
