import os

os.environ.setdefault("POSTGRES_URL", "sqlite://")
os.environ.setdefault("BACKFILL_SCHEDULE", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from listings_viz import crud, models  # noqa: F401 ensure models are imported so tables are known
from listings_viz.db import Base


@pytest.fixture
def db():
    # fresh in-memory database per test
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def make_snapshot(db):
    def _make(run, url="https://www.bazos.cz/inzerat/1/", **fields):
        data = {
            "scraper_name": run.scraper_name,
            "run_id": run.id,
            "url": url,
            "title": "Traktor Zetor",
            "category": "stroje",
            "price": 120000,
            "description": "Zachovalý traktor",
            "location": "Kolín",
            "views": 10,
            "is_top": False,
        }
        data.update(fields)
        return crud.insert_snapshot(db, data)
    return _make
