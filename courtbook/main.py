"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtbook.api import admin, availability, profile, reservations
from courtbook.core.config import settings
from courtbook.core.database import init_models
from courtbook.core.errors import register_error_handlers
from courtbook.services.scheduler import hold_expiry_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Courtbook booking service")
    logger.info(f"Debug mode: {settings.DEBUG}")

    if settings.CREATE_TABLES_ON_STARTUP:
        await init_models()

    if settings.HOLD_EXPIRY_ENABLED:
        await hold_expiry_scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down Courtbook booking service")
    await hold_expiry_scheduler.stop()


# Create FastAPI app
app = FastAPI(
    title="Courtbook",
    description="Sports facility booking: courts, coaches and rental equipment",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers
app.include_router(reservations.router)
app.include_router(availability.router)
app.include_router(profile.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "scheduler_running": hold_expiry_scheduler.running,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("courtbook.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
