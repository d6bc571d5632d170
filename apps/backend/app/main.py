"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.evaluation import list_detectors

VERSION = "0.1.0"

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and report the available detectors."""
    configure_logging(settings.log_level)
    logger.info(
        "%s %s starting (render scale %.1f, %d benchmark detectors)",
        settings.app_name,
        VERSION,
        settings.render_scale,
        len(list_detectors()),
    )

    yield


app = FastAPI(
    title=settings.app_name,
    description="Raster form field detection and detector evaluation",
    version=VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": VERSION,
        "docs": "/docs",
        "detection": f"{settings.api_v1_prefix}/detection/detect",
        "evaluation": f"{settings.api_v1_prefix}/evaluation/evaluate",
    }
