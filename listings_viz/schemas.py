# listings_viz/schemas.py
from pydantic import BaseModel
from typing import Any, List, Optional
from datetime import datetime

class SnapshotBase(BaseModel):
    scraper_name: str
    url: str
    title: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    price_text: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    views: Optional[int] = None
    posted_date: Optional[str] = None
    is_top: bool = False
    image_url: Optional[str] = None
    coordinates_lat: Optional[float] = None
    coordinates_lng: Optional[float] = None

class SnapshotCreate(SnapshotBase):
    run_id: int
    full_description: Optional[str] = None
    images: Optional[List[Any]] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None

class ListingOut(SnapshotBase):
    id: int
    run_id: int
    full_description: Optional[str] = None
    images: Optional[List[Any]] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    scraped_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class ChangeFlagsOut(BaseModel):
    price_changed: bool = False
    description_changed: bool = False
    title_changed: bool = False
    top_status_changed: bool = False
    views_changed: bool = False

class ListingWithChanges(ListingOut, ChangeFlagsOut):
    total_versions: int

class ListingVersion(ListingOut):
    version_number: int
    run_status: Optional[str] = None

class ListingDetail(ListingWithChanges):
    change_history: List[ListingVersion] = []

class CategoryCount(BaseModel):
    category: Optional[str]
    count: int

class ListingStats(BaseModel):
    total_listings: int
    total_categories: int
    avg_price: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    top_listings: int

class BackfillSummary(BaseModel):
    scraper_name: str
    locations: int
    geocoded: int
    failed: int
    rows_updated: int
    skipped_empty_location: int
    remaining: int
    total: int
    unresolved: List[str] = []
    counts_available: bool = True

class RunCreate(BaseModel):
    scraper_name: str
    external_run_id: Optional[str] = None
    status: str = "RUNNING"

class RunFinish(BaseModel):
    status: str = "SUCCEEDED"
    total_listings_scraped: Optional[int] = None

class RunOut(RunCreate):
    id: int
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    total_listings_scraped: Optional[int] = None
    class Config:
        from_attributes = True
