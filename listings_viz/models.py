# listings_viz/models.py
"""SQLAlchemy ORM models for persisted entities.

``ActorRun`` is one scrape batch of one source; its integer primary key is the
run identifier that orders listing versions. ``Listing`` rows are immutable
snapshots: every run appends a new row per (scraper_name, url).
"""
from sqlalchemy import (
    Boolean, Column, Float, ForeignKey, Index, Integer, JSON, Numeric, Text,
    TIMESTAMP, UniqueConstraint, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from .db import Base

# runs in these states never provide a "latest" or "preceding" version
SUPERSEDED_RUN_STATUSES = ("FAILED", "ABORTED", "TIMED-OUT")

class ActorRun(Base):
    __tablename__ = "actor_runs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    scraper_name = Column(Text, nullable=False, index=True)
    external_run_id = Column(Text, unique=True)
    status = Column(Text, nullable=False, default="RUNNING")
    started_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    finished_at = Column(TIMESTAMP(timezone=True))
    total_listings_scraped = Column(Integer)

class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    scraper_name = Column(Text, nullable=False)
    run_id = Column(Integer, ForeignKey("actor_runs.id"), nullable=False)
    url = Column(Text, nullable=False)
    title = Column(Text)
    category = Column(Text)
    price = Column(Numeric(14, 2, asdecimal=False))
    price_text = Column(Text)
    description = Column(Text)
    full_description = Column(Text)
    location = Column(Text)
    views = Column(Integer)
    posted_date = Column(Text)
    is_top = Column(Boolean, nullable=False, default=False)
    image_url = Column(Text)
    images = Column(JSON().with_variant(JSONB(), "postgresql"))
    contact_name = Column(Text)
    phone = Column(Text)
    coordinates_lat = Column(Float)
    coordinates_lng = Column(Float)
    scraped_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("scraper_name", "url", "run_id", name="uq_listing_version"),
    )

Index("idx_listings_missing_coords", Listing.scraper_name, Listing.coordinates_lat, Listing.location)
Index("idx_listings_category", Listing.category)
Index("idx_listings_scraped_at", Listing.scraped_at)
