"""
FastAPI application: logging, error mapping, and route registration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from voice_engine import __version__
from voice_engine.errors import VoicePipelineError

from .database import init_db
from .voice_routes import router as voice_router

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


# ============================================================================
# APP SETUP
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    logger.info("🚀 Voice Actions starting up...")
    logger.info("📊 Initializing database...")
    init_db()
    logger.info("✅ Database initialized successfully")
    logger.info("🎙️  Voice Actions ready to turn voice notes into tasks!")
    yield
    logger.info("👋 Voice Actions shutting down...")


app = FastAPI(
    title="Voice Actions",
    description="Turn voice notes into tasks, reminders, health notes and drafted content",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(VoicePipelineError)
async def pipeline_error_handler(request: Request, exc: VoicePipelineError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
        content = {"success": False, **exc.to_dict()}
    else:
        logger.info(f"{request.method} {request.url.path} → {exc.status_code}: {exc.message}")
        content = exc.to_dict()
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(voice_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "version": __version__}
