"""
Espelho Meu API - Virtual Try-On Backend
FastAPI Backend Entry Point
"""

import io
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from sqlalchemy import text

from espelho import __version__
from espelho.api import assets, jobs, process_job, profile, revelacao, studio
from espelho.api.deps import get_session_factory, get_storage
from espelho.core.config import settings
from espelho.core.database import init_db
from espelho.core.logconfig import configure_logging
from espelho.core.redis import get_redis_manager, redis_health_check
from espelho.services.storage import StorageError, StorageService, content_type_for

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    configure_logging()
    logger.info(f"Starting {settings.APP_NAME} {__version__}...")
    init_db()
    logger.info("Database tables ready")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")
    get_redis_manager().close()


app = FastAPI(
    title="Espelho Meu API",
    description="Virtual try-on: dress a model photo in a garment photo with generative AI",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(revelacao.router, tags=["Generation Proxy"])
app.include_router(jobs.router, prefix="/api/jobs", tags=["Jobs"])
app.include_router(process_job.router, prefix="/api", tags=["Jobs"])
app.include_router(assets.router, prefix="/api/assets", tags=["Assets"])
app.include_router(studio.router, prefix="/api/studio", tags=["Studio"])
app.include_router(profile.router, prefix="/api", tags=["Profile"])


@app.get("/health", tags=["Health"])
async def health_check(session_factory=Depends(get_session_factory)):
    """
    Health check endpoint for Cloud Run and monitoring.
    Returns detailed status of critical services.
    """
    health = {
        "status": "healthy",
        "version": __version__,
        "environment": {
            "storage": "gcs" if settings.USE_GCS else "local",
            "database": "sqlite" if settings.DATABASE_URL.startswith("sqlite") else "postgresql",
            "worker_queue": settings.USE_WORKER_QUEUE,
        },
        "services": {},
    }

    # Check database connection
    try:
        db = session_factory()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        health["services"]["database"] = "ok"
    except Exception as e:
        health["services"]["database"] = f"error: {str(e)}"
        health["status"] = "degraded"

    # Redis only matters when something uses it
    if settings.USE_WORKER_QUEUE or settings.USE_REDIS_DRAFTS:
        redis_status = redis_health_check()
        if redis_status.get("connected"):
            health["services"]["redis"] = "ok"
            health["services"]["redis_version"] = redis_status.get("redis_version")
        else:
            health["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
            health["status"] = "degraded"

    # Check storage availability
    if settings.USE_GCS:
        health["services"]["storage"] = "ok" if settings.GCS_BUCKET_ASSETS else "error: GCS_BUCKET_ASSETS not set"
    else:
        health["services"]["storage"] = "ok" if os.path.isdir(settings.LOCAL_STORAGE_PATH) else "missing"

    # Provider keys (never echoed)
    health["services"]["gemini"] = "configured" if settings.GEMINI_API_KEY else "missing key"
    health["services"]["groq"] = "configured" if settings.GROQ_API_KEY else "missing key"

    return health


@app.get("/files/{file_path:path}", tags=["Files"])
async def serve_file(file_path: str, storage: StorageService = Depends(get_storage)):
    """Serve stored images (uploads and generated looks)."""
    try:
        file_bytes = await storage.get_file(file_path)
    except (FileNotFoundError, StorageError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"File not found: {str(e)}")

    return StreamingResponse(
        io.BytesIO(file_bytes),
        media_type=content_type_for(file_path),
        headers={
            "Cache-Control": "public, max-age=3600",
            "Access-Control-Allow-Origin": "*",
        },
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Espelho Meu API - Virtual Try-On",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "espelho.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
