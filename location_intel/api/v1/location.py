"""
Location intelligence endpoints.

Provides HTTP endpoints for the neighbourhood analysis and the concept
viability check. Points must lie inside the Netherlands.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from location_intel.core.api_errors import ConceptCheckTimeoutError
from location_intel.core.geo import is_in_netherlands
from location_intel.core.models import ConceptCheckResult, EnhancedLocationAnalysis
from location_intel.services.factory import LocationIntelligence

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/location", tags=["location"])

MIN_RADIUS = 50
MAX_RADIUS = 5000


class ConceptCheckRequest(BaseModel):
    """Request model for a concept viability check."""

    concept: str = Field(..., min_length=2, max_length=80, description="Hospitality concept, e.g. smoothiebar")
    lat: float = Field(..., ge=-90, le=90, description="Latitude (WGS84)")
    lng: float = Field(..., ge=-180, le=180, description="Longitude (WGS84)")
    radius: int = Field(500, ge=MIN_RADIUS, le=MAX_RADIUS, description="Search radius in meters")


def get_engine(request: Request) -> LocationIntelligence:
    return request.app.state.engine


def _require_netherlands(lat: float, lng: float) -> None:
    if not is_in_netherlands(lat, lng):
        raise HTTPException(
            status_code=422,
            detail="Coordinates must be inside the Netherlands",
        )


@router.get("/analysis", response_model=EnhancedLocationAnalysis)
async def get_location_analysis(
    lat: float = Query(..., description="Latitude (WGS84)"),
    lng: float = Query(..., description="Longitude (WGS84)"),
    radius: int = Query(500, ge=MIN_RADIUS, le=MAX_RADIUS, description="Search radius in meters"),
    engine: LocationIntelligence = Depends(get_engine),
):
    """
    Analyze the neighbourhood around a point.

    Combines demographics, building registry, public transport, open map
    places and (when configured) commercial places data. Sources that fail
    are left out; the response reports which ones answered.
    """
    _require_netherlands(lat, lng)
    try:
        return await engine.analyze_location(lat, lng, radius)
    except Exception as e:
        logger.error(f"Location analysis failed for {lat},{lng}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Location analysis failed")


@router.post("/concept-check", response_model=ConceptCheckResult)
async def check_concept(
    request: ConceptCheckRequest,
    engine: LocationIntelligence = Depends(get_engine),
):
    """
    Score how well a hospitality concept fits a location.

    **Examples:** smoothiebar, koffiebar, wijnbar, pizzeria, dark_kitchen.
    Unknown concepts are matched on keywords in their name.

    Returns 504 when the check does not finish within the deadline.
    """
    _require_netherlands(request.lat, request.lng)
    try:
        return await engine.check_concept_viability(
            request.concept.strip(), request.lat, request.lng, request.radius
        )
    except ConceptCheckTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except Exception as e:
        logger.error(f"Concept check failed for '{request.concept}': {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Concept check failed")
