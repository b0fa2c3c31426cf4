"""
Consultation Reminders - Main Application Entry Point

Hosts the reminder dispatcher and notification outbox for the consultation
booking backend, using FastAPI, SQLite and APScheduler.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.infrastructure.database import init_database
from app.infrastructure.scheduler import start_scheduler, stop_scheduler, get_scheduler
from app.config.settings import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting Consultation Reminders...")

    # Initialize database
    logger.info("Initializing database...")
    await init_database()
    logger.info("Database initialized")

    # Start scheduler
    logger.info("Starting scheduler...")
    await start_scheduler()
    logger.info("Scheduler started")

    logger.info("Application startup complete!")
    logger.info(f"Timezone: {settings.timezone} (IST)")
    logger.info(f"Email reminder poll interval: {settings.reminder_poll_seconds}s")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await stop_scheduler()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Consultation Reminders",
    description="Email and WhatsApp reminders for booked consultations",
    version="1.0.0",
    lifespan=lifespan
)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Consultation Reminders",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": "/health",
            "scheduler": "/scheduler/status"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/scheduler/status")
async def scheduler_status():
    """Get scheduler status and pending jobs."""
    scheduler = get_scheduler()

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs_count": len(jobs),
        "jobs": jobs
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
