"""FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from devsignal import __version__
from devsignal.config import settings
from devsignal.database import Base
from devsignal.redis_client import close_redis
from devsignal.routers import alert_routes, scoring_routes, signal_routes
from devsignal.scheduler import start_scheduler, stop_scheduler
from devsignal.services.event_bus import event_bus
from devsignal.services.score_queue import score_queue

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="DevSignal PQA API",
    description="Signal intake, identity resolution, account scoring and alerting",
    version=__version__,
    redirect_slashes=False
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(signal_routes.router)
app.include_router(scoring_routes.router)
app.include_router(alert_routes.router)


# ============================================
# HEALTH
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "registered_tables": len(Base.metadata.tables),
    }


# ============================================
# STARTUP & SHUTDOWN
# ============================================

@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting DevSignal PQA API ({settings.ENVIRONMENT})...")

    # Score recomputation follows every ingested signal
    event_bus.subscribe(score_queue.on_signal_received)

    if settings.ENABLE_SCHEDULER:
        start_scheduler()

    logger.info("Application started successfully!")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down DevSignal PQA API...")
    stop_scheduler()
    event_bus.unsubscribe(score_queue.on_signal_received)
    await score_queue.drain()
    await close_redis()
