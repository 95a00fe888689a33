"""FastAPI application for the image gateway.

This module provides the main FastAPI application with health endpoints,
API routes, and lifecycle management.

Run with:
    uvicorn image_gateway.main:app --reload

Examples:
    >>> # Health check
    >>> curl http://localhost:8000/health

    >>> # API docs
    >>> # Open http://localhost:8000/docs

Tests:
    - tests/unit/test_api_images.py::TestHealth
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from image_gateway import __version__
from image_gateway.api.v1 import router as v1_router
from image_gateway.config import get_settings
from image_gateway.core.orchestrator import get_default_runtime, reset_default_runtime

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Response models
class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    providers: list[str]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Resolves the provider chain on startup so misconfiguration shows up in
    the logs immediately, and closes provider clients on shutdown.
    """
    logger.info(f"Starting image gateway v{__version__}")
    chain = get_default_runtime().chain
    if not chain:
        logger.warning("Starting without image providers; image requests will fail")

    yield

    logger.info("Shutting down image gateway")
    await get_default_runtime().close()
    reset_default_runtime()


app = FastAPI(
    title="Image Gateway",
    description="Multi-provider image generation with automatic fallback",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API v1 routes
app.include_router(v1_router)

# Serve the local blob store in development
if not settings.BLOB_READ_WRITE_TOKEN:
    app.mount(
        "/blobs",
        StaticFiles(directory=settings.BLOB_LOCAL_ROOT, check_dir=False),
        name="blobs",
    )


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent response format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# Health endpoints
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Check application health.

    Returns:
        HealthResponse with the active provider chain. Status is "degraded"
        when no provider is configured.
    """
    chain = get_default_runtime().chain
    return HealthResponse(
        status="healthy" if chain else "degraded",
        version=__version__,
        providers=list(chain.names),
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with basic info."""
    return {
        "name": "Image Gateway",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# Entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "image_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
