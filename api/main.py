"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, archives, pipeline
from api.middleware import RequestContextMiddleware
from api.dependencies import get_scheduler
from core.config import settings
from core.database import engine
from core.logging import setup_logging
from models import Base
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Takeout Fixer API",
    description="Status and control surface of the Takeout processing pipeline",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(archives.router)
app.include_router(pipeline.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Takeout Fixer API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else settings.DATABASE_URL}")
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    if settings.AUTOSTART_PIPELINE:
        await get_scheduler().start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Takeout Fixer API")
    scheduler = get_scheduler()
    scheduler.stop()
    await scheduler.wait_idle()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Takeout Fixer API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "archives": "/archives",
            "files": "/files",
            "media_records": "/media-records",
            "pipeline": "/pipeline"
        }
    }
