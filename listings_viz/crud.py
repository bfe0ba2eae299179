# listings_viz/crud.py
"""Version-store operations for listing snapshots.

Snapshots are append-only. A listing is identified by (scraper_name, url) and
its versions are ordered by ``run_id``; snapshots from superseded runs are
skipped when picking the latest or preceding version. The only in-place
write is the coordinate backfill, which is conditioned on the coordinates
still being NULL.
"""
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session, aliased

from .models import ActorRun, Listing, SUPERSEDED_RUN_STATUSES

SNAPSHOT_COLUMNS = tuple(c.name for c in Listing.__table__.columns if c.name != "id")

# field compared between versions -> flag it drives
TRACKED_FIELDS = {
    "price": "price_changed",
    "description": "description_changed",
    "title": "title_changed",
    "is_top": "top_status_changed",
}


@dataclass(frozen=True)
class ChangeFlags:
    price_changed: bool = False
    description_changed: bool = False
    title_changed: bool = False
    top_status_changed: bool = False
    # view counts move on every scrape; never flagged
    views_changed: bool = False

    def as_dict(self) -> Dict[str, bool]:
        return asdict(self)


def _field(obj, name):
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def compute_change_flags(current, previous) -> ChangeFlags:
    """Compare a snapshot with the version before it.

    Either argument may be a ``Listing`` or a mapping of column values. A
    field only counts as changed when both versions carry a value.
    """
    if previous is None:
        return ChangeFlags()
    changed = {}
    for field, flag in TRACKED_FIELDS.items():
        before, after = _field(previous, field), _field(current, field)
        changed[flag] = before is not None and after is not None and before != after
    return ChangeFlags(**changed)


def snapshot_as_dict(obj: Listing) -> Dict[str, Any]:
    return {c.name: getattr(obj, c.name) for c in Listing.__table__.columns}


# --- runs -----------------------------------------------------------------

def create_run(db: Session, scraper_name: str, external_run_id: Optional[str] = None,
               status: str = "RUNNING") -> ActorRun:
    run = ActorRun(scraper_name=scraper_name, external_run_id=external_run_id, status=status)
    db.add(run)
    db.commit()
    db.refresh(run)
    return run

def finish_run(db: Session, run_id: int, status: str = "SUCCEEDED",
               total_listings_scraped: Optional[int] = None) -> Optional[ActorRun]:
    run = get_run(db, run_id)
    if not run:
        return None
    run.status = status
    run.finished_at = datetime.now(timezone.utc)
    if total_listings_scraped is not None:
        run.total_listings_scraped = total_listings_scraped
    db.commit()
    db.refresh(run)
    return run

def get_run(db: Session, run_id: int) -> Optional[ActorRun]:
    return db.query(ActorRun).filter(ActorRun.id == run_id).first()

def list_runs(db: Session, scraper_name: Optional[str] = None, limit: int = 10) -> List[ActorRun]:
    """Most recently started runs first."""
    q = db.query(ActorRun)
    if scraper_name:
        q = q.filter(ActorRun.scraper_name == scraper_name)
    return q.order_by(ActorRun.started_at.desc(), ActorRun.id.desc()).limit(limit).all()


# --- snapshots ------------------------------------------------------------

def insert_snapshot(db: Session, data: Dict[str, Any]) -> Listing:
    values = {k: v for k, v in data.items() if k in SNAPSHOT_COLUMNS}
    if values.get("scraped_at") is None:
        values.pop("scraped_at", None)
    obj = Listing(**values)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_snapshot(db: Session, listing_id: int) -> Optional[Listing]:
    return db.query(Listing).filter(Listing.id == listing_id).first()

def _live_versions(db: Session, scraper_name: str, url: str):
    return (
        db.query(Listing)
        .join(ActorRun, Listing.run_id == ActorRun.id)
        .filter(
            Listing.scraper_name == scraper_name,
            Listing.url == url,
            ActorRun.status.notin_(SUPERSEDED_RUN_STATUSES),
        )
    )

def latest(db: Session, scraper_name: str, url: str) -> Optional[Listing]:
    return _live_versions(db, scraper_name, url).order_by(Listing.run_id.desc()).first()

def preceding(db: Session, snapshot: Listing) -> Optional[Listing]:
    return (
        _live_versions(db, snapshot.scraper_name, snapshot.url)
        .filter(Listing.run_id < snapshot.run_id)
        .order_by(Listing.run_id.desc())
        .first()
    )

def change_flags(db: Session, snapshot: Listing) -> ChangeFlags:
    return compute_change_flags(snapshot, preceding(db, snapshot))

def version_count(db: Session, scraper_name: str, url: str) -> int:
    count = (
        db.query(func.count(Listing.id))
        .filter(Listing.scraper_name == scraper_name, Listing.url == url)
        .scalar()
    )
    return count or 0

def listing_history(db: Session, scraper_name: str, url: str,
                    limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """All versions of a listing, newest first; ``version_number`` 1 is the newest."""
    q = (
        db.query(Listing, ActorRun.status)
        .join(ActorRun, Listing.run_id == ActorRun.id)
        .filter(Listing.scraper_name == scraper_name, Listing.url == url)
        .order_by(Listing.run_id.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    history = []
    for number, (obj, run_status) in enumerate(q.all(), start=1):
        item = snapshot_as_dict(obj)
        item["version_number"] = number
        item["run_status"] = run_status
        history.append(item)
    return history


# --- coordinates ----------------------------------------------------------

def set_coordinates_if_unset(db: Session, scraper_name: str, location: str, lat: float,
                             lng: float, url: Optional[str] = None) -> int:
    """Fill coordinates on rows with exactly this location that still have none.

    Returns the number of rows updated; 0 when another writer got there first
    or the location on file no longer matches.
    """
    conds = [
        Listing.scraper_name == scraper_name,
        Listing.location == location,
        Listing.coordinates_lat.is_(None),
    ]
    if url is not None:
        conds.append(Listing.url == url)
    stmt = (
        update(Listing)
        .where(*conds)
        .values(coordinates_lat=lat, coordinates_lng=lng)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount

def distinct_unresolved_locations(db: Session, scraper_name: str) -> List[str]:
    rows = (
        db.query(Listing.location)
        .filter(
            Listing.scraper_name == scraper_name,
            Listing.coordinates_lat.is_(None),
            Listing.location.isnot(None),
            Listing.location != "",
        )
        .distinct()
        .order_by(Listing.location)
        .all()
    )
    return [row[0] for row in rows]

def count_missing_coordinates(db: Session, scraper_name: str, empty_location_only: bool = False) -> int:
    q = db.query(func.count(Listing.id)).filter(
        Listing.scraper_name == scraper_name,
        Listing.coordinates_lat.is_(None),
    )
    if empty_location_only:
        q = q.filter(or_(Listing.location.is_(None), Listing.location == ""))
    return q.scalar() or 0

def count_listings(db: Session, scraper_name: str) -> int:
    return db.query(func.count(Listing.id)).filter(Listing.scraper_name == scraper_name).scalar() or 0

def scraper_names(db: Session) -> List[str]:
    rows = db.query(Listing.scraper_name).distinct().order_by(Listing.scraper_name).all()
    return [row[0] for row in rows]


# --- latest listings ------------------------------------------------------

# window column -> field it carries from the preceding version
PREVIOUS_COLUMNS = {
    "prev_price": "price",
    "prev_description": "description",
    "prev_title": "title",
    "prev_is_top": "is_top",
}

def _latest_subquery(scraper_name: Optional[str] = None):
    """Latest live version per (scraper_name, url), carrying the tracked
    fields of the version right before it."""
    key = (Listing.scraper_name, Listing.url)
    newest_first = Listing.run_id.desc()

    def over_key(expr):
        return expr.over(partition_by=key, order_by=newest_first)

    def previous(column):
        return over_key(func.lead(column, type_=column.type))

    ranked = (
        select(
            Listing,
            over_key(func.row_number()).label("version_rank"),
            previous(Listing.id).label("prev_id"),
            *(previous(getattr(Listing, field)).label(col) for col, field in PREVIOUS_COLUMNS.items()),
        )
        .join(ActorRun, Listing.run_id == ActorRun.id)
        .where(ActorRun.status.notin_(SUPERSEDED_RUN_STATUSES))
    )
    if scraper_name:
        ranked = ranked.where(Listing.scraper_name == scraper_name)
    ranked = ranked.subquery("ranked")
    return select(ranked).where(ranked.c.version_rank == 1).subquery("latest")

def _with_change_flags(row: Mapping) -> Dict[str, Any]:
    item = dict(row)
    item.pop("version_rank", None)
    prev_id = item.pop("prev_id", None)
    previous = {field: item.pop(col, None) for col, field in PREVIOUS_COLUMNS.items()}
    flags = compute_change_flags(item, previous if prev_id is not None else None)
    item.update(flags.as_dict())
    return item

def _geocoded(latest):
    return [latest.c.coordinates_lat.isnot(None), latest.c.coordinates_lng.isnot(None)]

def list_latest_listings(db: Session, filters: Dict = None, skip: int = 0, limit: int = 5000):
    filters = filters or {}
    latest = _latest_subquery(filters.get("scraper_name"))
    conds = []
    if filters.get("with_coordinates", True):
        conds.extend(_geocoded(latest))
    if filters.get("category"):
        conds.append(latest.c.category == filters["category"])
    if filters.get("price_min") is not None:
        conds.append(latest.c.price >= filters["price_min"])
    if filters.get("price_max") is not None:
        conds.append(latest.c.price <= filters["price_max"])
    if filters.get("location"):
        conds.append(latest.c.location.ilike(f"%{filters['location']}%"))
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        conds.append(or_(latest.c.title.ilike(pattern), latest.c.description.ilike(pattern)))

    all_versions = aliased(Listing)
    total_versions = (
        select(func.count(all_versions.id))
        .where(all_versions.scraper_name == latest.c.scraper_name, all_versions.url == latest.c.url)
        .correlate(latest)
        .scalar_subquery()
    )
    stmt = (
        select(latest, total_versions.label("total_versions"))
        .where(*conds)
        .order_by(latest.c.scraped_at.desc(), latest.c.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return [_with_change_flags(row) for row in db.execute(stmt).mappings().all()]

def category_counts(db: Session) -> List[Dict[str, Any]]:
    latest = _latest_subquery()
    count = func.count().label("count")
    stmt = (
        select(latest.c.category, count)
        .where(*_geocoded(latest))
        .group_by(latest.c.category)
        .order_by(count.desc(), latest.c.category)
    )
    return [dict(row) for row in db.execute(stmt).mappings().all()]

def listing_stats(db: Session) -> Dict[str, Any]:
    latest = _latest_subquery()
    stmt = select(
        func.count().label("total_listings"),
        func.count(latest.c.category.distinct()).label("total_categories"),
        func.avg(latest.c.price).label("avg_price"),
        func.min(latest.c.price).label("min_price"),
        func.max(latest.c.price).label("max_price"),
        func.count(case((latest.c.is_top.is_(True), 1))).label("top_listings"),
    ).where(*_geocoded(latest))
    return dict(db.execute(stmt).mappings().one())
