"""
Main FastAPI application.

Location intelligence service: neighbourhood analysis and hospitality
concept viability checks for points in the Netherlands.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from location_intel import __version__
from location_intel.api.v1 import location
from location_intel.core.config import get_settings
from location_intel.services.factory import build_engine

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Builds the engine on startup and closes its clients on shutdown.
    """
    settings = get_settings()
    logger.info("Starting Location Intelligence Service")
    logger.info(f"Log level: {settings.log_level}")

    app.state.engine = build_engine(settings)

    yield

    logger.info("Shutting down")
    await app.state.engine.close()


app = FastAPI(
    title="Location Intelligence Service",
    description="Neighbourhood analysis and hospitality concept viability for the Netherlands",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(location.router, prefix="/api/v1")


@app.get("/")
def root():
    """Root endpoint with service info."""
    return {
        "service": "Location Intelligence Service",
        "version": __version__,
        "endpoints": ["/api/v1/location/analysis", "/api/v1/location/concept-check"],
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Reports which optional integrations are configured.
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "running",
        "integrations": {
            "commercial_places": bool(settings.get_google_places_api_key()),
            "llm": bool(
                settings.get_groq_api_key()
                or settings.get_openai_api_key()
                or settings.get_anthropic_api_key()
            ),
            "cache": settings.cache_backend if settings.cache_backend != "auto" else (
                "upstash" if settings.is_cache_configured() else "none"
            ),
        },
    }
