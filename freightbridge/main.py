from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import OperationalError
from freightbridge.core.config import settings
from freightbridge.core.errors import FreightError, StorageUnavailable
from freightbridge.db.session import Base, engine
from freightbridge.api import admin, admin_jobs, amendments, invoices, notifications, quotes, shipments, vendor
from freightbridge.services.scheduler_service import scheduler_service
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import logging

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting FreightBridge API...")
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")

    if settings.SCHEDULER_ENABLED:
        try:
            scheduler_service.start()
            logger.info("Scheduler service started successfully")
        except Exception as e:
            logger.error(f"Failed to start scheduler: {str(e)}")

    yield

    # Shutdown
    logger.info("Shutting down FreightBridge API...")
    try:
        scheduler_service.stop()
        logger.info("Scheduler service stopped successfully")
    except Exception as e:
        logger.error(f"Error stopping scheduler: {str(e)}")


app = FastAPI(
    title="FreightBridge API",
    lifespan=lifespan
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(FreightError)
async def freight_error_handler(request: Request, exc: FreightError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(OperationalError)
async def storage_error_handler(request: Request, exc: OperationalError):
    logger.error(f"Database unavailable during {request.method} {request.url.path}: {exc}")
    error = StorageUnavailable("Database unavailable, please retry")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Include routers
app.include_router(quotes.router)
app.include_router(vendor.router)
app.include_router(shipments.router)
app.include_router(amendments.router)
app.include_router(invoices.router)
app.include_router(admin.router)
app.include_router(notifications.router)
app.include_router(admin_jobs.router)


@app.get("/")
@limiter.limit("60/minute")
def root(request: Request):
    return {"message": "Welcome to FreightBridge API"}


@app.get("/health")
@limiter.limit("200/minute")  # Allow more for monitoring
def health_check(request: Request):
    """Health check endpoint with scheduler status."""
    scheduler_jobs = scheduler_service.get_job_status()
    return {
        "status": "healthy",
        "scheduler": {
            "running": scheduler_service.scheduler.running,
            "jobs": scheduler_jobs
        }
    }
