"""
Toronto Shelter Sync
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from shelter_sync.config import get_settings
from shelter_sync.utils.logger import log
from shelter_sync import __version__
from shelter_sync.api import health, locations, sync

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    try:
        from shelter_sync.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    if settings.enable_scheduler:
        try:
            from shelter_sync.scheduler import start_scheduler
            start_scheduler()
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    if settings.enable_scheduler:
        from shelter_sync.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Daily shelter & overnight service occupancy for Toronto.

    - Locations and their programs, filterable by sector, city and vacancy
    - Per-location occupancy with derived vacancy and occupancy rates
    - Refreshed daily from Toronto Open Data (CKAN)
    """,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(locations.router)
app.include_router(sync.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "shelter_sync.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
