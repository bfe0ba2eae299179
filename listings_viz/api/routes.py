import os
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List
from .. import crud, schemas, services
from ..backfill import run_backfill
from ..db import get_db
from ..utils import logger

DEFAULT_LIMIT = int(os.getenv("LISTINGS_DEFAULT_LIMIT", 5000))

router = APIRouter()

@router.get("/health")
def health():
    return {"status": "ok"}

@router.get("/api/listings", response_model=List[schemas.ListingWithChanges])
def listings(
    skip: int = 0,
    limit: int = Query(DEFAULT_LIMIT, ge=1),
    category: str | None = Query(None),
    price_min: float | None = Query(None),
    price_max: float | None = Query(None),
    location: str | None = Query(None),
    search: str | None = Query(None),
    scraper_name: str | None = Query(None),
    with_coordinates: bool = Query(True),
    db: Session = Depends(get_db)
):
    filters = {
        "category": category,
        "price_min": price_min,
        "price_max": price_max,
        "location": location,
        "search": search,
        "scraper_name": scraper_name,
        "with_coordinates": with_coordinates,
    }
    return crud.list_latest_listings(db, filters=filters, skip=skip, limit=limit)


@router.post("/api/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(payload: schemas.SnapshotCreate, db: Session = Depends(get_db)):
    try:
        return services.ingest_snapshot(db, payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Listing version already stored for this run")


@router.get("/api/listings/{listing_id}", response_model=schemas.ListingDetail)
def get_listing(listing_id: int, db: Session = Depends(get_db)):
    detail = services.get_listing_detail(db, listing_id)
    if not detail:
        raise HTTPException(status_code=404, detail="Listing not found")
    return detail


@router.get("/api/listings/{listing_id}/history", response_model=List[schemas.ListingVersion])
def get_listing_history(listing_id: int, db: Session = Depends(get_db)):
    history = services.get_listing_history(db, listing_id)
    if history is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return history


@router.get("/api/categories", response_model=List[schemas.CategoryCount])
def categories(db: Session = Depends(get_db)):
    return crud.category_counts(db)


@router.get("/api/stats", response_model=schemas.ListingStats)
def stats(db: Session = Depends(get_db)):
    return crud.listing_stats(db)


@router.get("/api/runs", response_model=List[schemas.RunOut])
def runs(scraper_name: str | None = Query(None), limit: int = Query(10, ge=1), db: Session = Depends(get_db)):
    return crud.list_runs(db, scraper_name=scraper_name, limit=limit)


@router.post("/api/runs", response_model=schemas.RunOut, status_code=201)
def create_run(payload: schemas.RunCreate, db: Session = Depends(get_db)):
    return crud.create_run(db, payload.scraper_name, payload.external_run_id, payload.status)


@router.patch("/api/runs/{run_id}", response_model=schemas.RunOut)
def finish_run(run_id: int, payload: schemas.RunFinish, db: Session = Depends(get_db)):
    run = crud.finish_run(db, run_id, payload.status, payload.total_listings_scraped)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@router.post("/api/backfill/{scraper_name}", response_model=schemas.BackfillSummary)
def backfill(scraper_name: str, db: Session = Depends(get_db)):
    try:
        result = run_backfill(db, scraper_name)
    except SQLAlchemyError as e:
        logger.exception("Backfill for %s failed: %s", scraper_name, e)
        raise HTTPException(status_code=500, detail="Backfill failed")
    return schemas.BackfillSummary(
        scraper_name=result.scraper_name,
        locations=result.locations,
        geocoded=result.geocoded,
        failed=result.failed,
        rows_updated=result.rows_updated,
        skipped_empty_location=result.skipped_empty_location,
        remaining=result.remaining,
        total=result.total,
        unresolved=result.unresolved,
        counts_available=result.counts_available,
    )
