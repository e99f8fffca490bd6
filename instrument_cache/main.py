# instrument_cache/main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import (
    ALLOW_ORIGINS,
    REFRESH_HOUR,
    REFRESH_MINUTE,
    REFRESH_TIMEZONE,
    STARTUP_REFRESH_BLOCKING,
)
from .routes.instruments import router as instruments_router
from .services.catalog_store import CatalogStore
from .services.refresher import CatalogRefresher

logger = logging.getLogger(__name__)

# Process-wide catalog holder and its refresh job
store = CatalogStore()
refresher = CatalogRefresher(store)

# Global scheduler instance
scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan: startup and shutdown."""
    app.state.store = store
    app.state.refresher = refresher

    # Startup: load the catalog, then schedule the daily refresh
    startup_task = None
    if STARTUP_REFRESH_BLOCKING:
        logger.info("Starting up: loading instruments catalog...")
        await refresher.refresh()
        if store.is_populated():
            logger.info(f"Loaded {store.count()} instruments on startup")
        else:
            logger.error("Initial instruments load failed - lookups will return 503 until a refresh succeeds")
    else:
        logger.info("Starting up: loading instruments catalog in the background...")
        startup_task = asyncio.create_task(refresher.refresh())

    scheduler.add_job(
        refresher.refresh,
        trigger=CronTrigger(hour=REFRESH_HOUR, minute=REFRESH_MINUTE, timezone=REFRESH_TIMEZONE),
        id="refresh_instruments",
        name="Refresh instruments catalog daily",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started: instruments will refresh daily at {REFRESH_HOUR:02d}:{REFRESH_MINUTE:02d}")

    yield

    # Shutdown: stop the scheduler and any startup load still running
    logger.info("Shutting down: stopping scheduler...")
    scheduler.shutdown(wait=False)
    if startup_task is not None and not startup_task.done():
        startup_task.cancel()
        try:
            await startup_task
        except asyncio.CancelledError:
            logger.info("Cancelled instruments load still running at shutdown")


app = FastAPI(title="Instrument Cache", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in ALLOW_ORIGINS.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(instruments_router)


@app.get("/healthz")
def healthz():
    return {"ok": True}
