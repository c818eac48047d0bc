"""
Pydantic models shared across providers, services and the API.

Everything that goes through the cache is a model here so it can be
stored as JSON and validated back on read.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

TransitMode = Literal["train", "bus", "tram", "metro"]
AccessibilityLabel = Literal["excellent", "good", "fair", "poor", "bad"]
Confidence = Literal["high", "medium", "low"]
CompetitorSource = Literal["openmap", "commercial"]
CompetitorCategory = Literal["direct", "indirect", "irrelevant"]
DataQuality = Literal["full", "partial", "basic"]
PlaceCategory = Literal[
    "hospitality_competitor",
    "hospitality_complementary",
    "supermarket",
    "transport",
    "office",
    "education",
    "retail",
    "culture",
]


# =============================================================================
# PROVIDER DATA
# =============================================================================


class AgeDistribution(BaseModel):
    """Share of residents per age bracket, in percent."""
    young_pct: float = 0
    working_pct: float = 0
    senior_pct: float = 0


class Demographics(BaseModel):
    """Neighbourhood statistics for the area containing the point."""
    area_code: str
    area_name: str
    municipality_name: str = ""
    population: int = 0
    avg_income: Optional[float] = Field(None, description="Average income per resident, x1000 EUR")
    age_distribution: AgeDistribution = Field(default_factory=AgeDistribution)
    density: Optional[float] = Field(None, description="Residents per km2")
    households: Optional[int] = None
    single_person_household_pct: Optional[float] = None


class BuildingInfo(BaseModel):
    """Registry data for the building at the point."""
    construction_year: Optional[int] = None
    allowed_uses: List[str] = Field(default_factory=list)
    floor_area: Optional[float] = None
    status: str = "unknown"
    is_hospitality_suitable: bool = False


class TransitStop(BaseModel):
    name: str
    mode: TransitMode
    distance_meters: int
    lines: Optional[List[str]] = None


class TransitAnalysis(BaseModel):
    stops: List[TransitStop] = Field(default_factory=list)
    score: float = 0
    accessibility_label: AccessibilityLabel = "bad"


class OpeningHours(BaseModel):
    weekday_descriptions: List[str] = Field(default_factory=list)


class CompetitorInfo(BaseModel):
    """A hospitality venue near the point, from either places source."""
    name: str
    type: str
    distance_meters: int
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = Field(None, ge=0, le=4)
    business_status: Optional[str] = None
    opening_hours: Optional[OpeningHours] = None
    source: CompetitorSource
    place_ref: Optional[str] = Field(
        None, description="Commercial place resource name, e.g. 'places/ChIJ...'"
    )


class PlaceReview(BaseModel):
    text: str
    rating: Optional[float] = None


class PlaceDetails(BaseModel):
    reviews: List[PlaceReview] = Field(default_factory=list)
    editorial_summary: Optional[str] = None


class FootTrafficEstimate(BaseModel):
    daily_estimate: int = Field(..., ge=100)
    confidence: Confidence
    sources: List[str] = Field(default_factory=list)


class NearbyPlace(BaseModel):
    """A point of interest from the open map data."""
    name: str
    type: str
    category: PlaceCategory
    distance_meters: int
    lat: float
    lng: float


# =============================================================================
# ANALYSIS
# =============================================================================


class AreaStats(BaseModel):
    hospitality_count: int = 0
    hospitality_density: Literal["low", "medium", "high"] = "low"
    transport_score: float = 0
    amenities_score: float = 0
    offices_nearby: int = 0
    competitor_radius: int = 500


class BaseAnalysis(BaseModel):
    """Open-map analysis of the neighbourhood."""
    nearby_competitors: List[NearbyPlace] = Field(default_factory=list)
    complementary: List[NearbyPlace] = Field(default_factory=list)
    transport: List[NearbyPlace] = Field(default_factory=list)
    amenities: List[NearbyPlace] = Field(default_factory=list)
    stats: AreaStats = Field(default_factory=AreaStats)
    buzz_index: int = Field(1, ge=1, le=10)
    summary: str = ""


class OpenMapResult(BaseModel):
    """Cached unit for the open-map provider."""
    places: List[NearbyPlace] = Field(default_factory=list)
    analysis: BaseAnalysis


class EnhancedLocationAnalysis(BaseAnalysis):
    """Composite analysis of every source for one point and radius."""
    demographics: Optional[Demographics] = None
    building: Optional[BuildingInfo] = None
    transit_analysis: Optional[TransitAnalysis] = None
    foot_traffic: Optional[FootTrafficEstimate] = None
    competitors: List[CompetitorInfo] = Field(default_factory=list)
    data_sources: List[str] = Field(default_factory=list)
    data_quality: DataQuality = "basic"
    fetched_at: str


# =============================================================================
# CLASSIFICATION & VIABILITY
# =============================================================================


class ClassifiedCompetitors(BaseModel):
    direct: List[CompetitorInfo] = Field(default_factory=list)
    indirect: List[CompetitorInfo] = Field(default_factory=list)
    irrelevant: List[CompetitorInfo] = Field(default_factory=list)
    ai_classified: bool = False
    investigated: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.direct) + len(self.indirect) + len(self.irrelevant)


class CompetitionScan(BaseModel):
    direct_count: int = 0
    indirect_count: int = 0
    nearest: Optional[CompetitorInfo] = None
    ai_classified: bool = False
    irrelevant_filtered: int = 0
    investigated_competitors: List[str] = Field(default_factory=list)


class AudienceMatch(BaseModel):
    score: int = Field(..., ge=0, le=100)
    explanation: str


class PricePositioning(BaseModel):
    average: Optional[float] = None
    label: str
    matches_concept: bool
    expected_concept_level: int


class TopCompetitor(BaseModel):
    name: str
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    distance_meters: int


class QualityReport(BaseModel):
    score: int = Field(..., ge=0, le=100)
    notes: List[str] = Field(default_factory=list)
    data_completeness: int = Field(..., ge=0, le=100)


class ConceptCheckResult(BaseModel):
    concept: str
    viability_score: int = Field(..., ge=0, le=100)
    competition_scan: CompetitionScan
    gap_narrative: str
    audience_match: AudienceMatch
    price_positioning: PricePositioning
    top_competitors: List[TopCompetitor] = Field(default_factory=list, max_length=5)
    opportunities: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    ai_insight: Optional[str] = None
    quality_score: Optional[int] = None
    quality_notes: Optional[List[str]] = None
    data_completeness: Optional[int] = None
