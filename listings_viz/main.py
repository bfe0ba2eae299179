from fastapi import FastAPI
from .db import Base, engine
from . import models  # noqa: F401 ensure models are imported so tables are known
from . import scheduler
from .api.routes import router as api_router
from .utils import logger

# create FastAPI instance
app = FastAPI(title="listings-visualization")
app.include_router(api_router)


@app.on_event("startup")
def on_startup():
    # Ensure database tables are created on startup
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        # migrations may own the schema; keep serving
        logger.exception("Creating tables failed")
    scheduler.start()


@app.on_event("shutdown")
def on_shutdown():
    if scheduler.scheduler.running:
        scheduler.scheduler.shutdown(wait=False)
