from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from .config import settings
from .database import create_tables
from .utils.logging_config import setup_logging
from .services.sync_scheduler import start_sync_scheduler, stop_sync_scheduler, get_scheduler_status

from .routers import calendar_sync

logger = logging.getLogger("calsync")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(level=settings.log_level, json_format=settings.log_json or settings.is_production)
    
    logger.info("Starting calsync...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"CORS Origins: {settings.cors_origins}")
    
    create_tables()
    
    if settings.sync_scheduler_enabled:
        start_sync_scheduler()
    else:
        logger.warning("Calendar sync scheduler disabled, run worker.py or POST /api/calendar-sync/run")
    
    yield
    
    # Shutdown
    logger.info("Shutting down calsync...")
    stop_sync_scheduler()


# Create FastAPI app
app = FastAPI(
    title="Calendar Sync API",
    description="iCal feed synchronization and booking review queue",
    version="1.0.0",
    lifespan=lifespan
)


# ================================
# CORS MIDDLEWARE - MUST BE FIRST!
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Include routers
app.include_router(calendar_sync.router)


@app.get("")
@app.get("/")
async def root():
    return {
        "message": "Calendar Sync API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running",
    }


@app.get("/health")
@app.get("/health/")
async def health_check():
    return {"status": "healthy", "scheduler": get_scheduler_status()["running"]}
