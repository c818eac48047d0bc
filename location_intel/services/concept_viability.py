"""
Concept viability engine.

Answers "does concept X fit at this point?" with a 0-100 viability score,
an explanation of the competition, the audience fit, price positioning,
opportunities and risks, an optional AI insight and a quality rating.

The whole check runs under one deadline; when it passes, the in-flight
work is cancelled and ConceptCheckTimeoutError is raised.
"""
import asyncio
import logging
from typing import List, Optional, Tuple

from location_intel.agentic.competitor_classifier import CompetitorClassifier, LocationContext
from location_intel.agentic.llm_client import LLMClient
from location_intel.core.api_errors import ConceptCheckTimeoutError
from location_intel.core.cache import LocationCache
from location_intel.core.mathutils import clamp, round_half_up
from location_intel.core.models import (
    AudienceMatch,
    ClassifiedCompetitors,
    CompetitionScan,
    CompetitorInfo,
    ConceptCheckResult,
    EnhancedLocationAnalysis,
    PricePositioning,
    TopCompetitor,
)
from location_intel.services.concept_metadata import (
    PRICE_LABELS,
    AudienceProfile,
    categories_for,
    price_label,
    profile_for,
)
from location_intel.services.location_analyzer import LocationAnalyzer
from location_intel.services.quality_scorer import assess_quality
from location_intel.sources.places import PlacesProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 25.0
MIN_PRICED_COMPETITORS = 3
INSUFFICIENT_PRICE_DATA = "insufficient data"
TOP_COMPETITORS = 5
URBAN_DENSITY = 3000
INSIGHT_MAX_TOKENS = 300
INSIGHT_CACHE_SOURCE = "ai"


# =============================================================================
# SCORING STEPS
# =============================================================================


def build_competition_scan(classified: ClassifiedCompetitors) -> CompetitionScan:
    nearest = min(classified.direct, key=lambda c: c.distance_meters) if classified.direct else None
    return CompetitionScan(
        direct_count=len(classified.direct),
        indirect_count=len(classified.indirect),
        nearest=nearest,
        ai_classified=classified.ai_classified,
        irrelevant_filtered=len(classified.irrelevant),
        investigated_competitors=list(classified.investigated),
    )


def analyze_price_positioning(
    competitors: List[CompetitorInfo],
    profile: AudienceProfile,
    all_competitors: Optional[List[CompetitorInfo]] = None,
) -> PricePositioning:
    """
    Average market price level over competitors that report one.

    competitors are the direct and indirect ones. When fewer than three of
    them are priced, all_competitors (irrelevant ones included) is averaged
    instead. Fewer than three priced competitors after that is
    "insufficient data", which never counts as a mismatch.
    """
    priced = [c.price_level for c in competitors if c.price_level is not None]
    if len(priced) < MIN_PRICED_COMPETITORS and all_competitors is not None:
        priced = [c.price_level for c in all_competitors if c.price_level is not None]
    if len(priced) < MIN_PRICED_COMPETITORS:
        return PricePositioning(
            average=None,
            label=INSUFFICIENT_PRICE_DATA,
            matches_concept=True,
            expected_concept_level=profile.price_level,
        )

    average = sum(priced) / len(priced)
    return PricePositioning(
        average=round_half_up(average * 10) / 10,
        label=price_label(average),
        matches_concept=abs(profile.price_level - average) <= 1,
        expected_concept_level=profile.price_level,
    )


def generate_gap_narrative(
    analysis: EnhancedLocationAnalysis,
    direct_count: int,
    concept: str,
    pricing: PricePositioning,
) -> str:
    hospitality = analysis.stats.hospitality_count
    radius = analysis.stats.competitor_radius

    if direct_count == 0 and hospitality > 5:
        text = (
            f"No {concept} within {radius}m, but {hospitality} other hospitality venues: "
            f"there is clear demand, yet this specific offer is missing."
        )
    elif direct_count == 0:
        text = f"No {concept} and little hospitality nearby: a pioneer location with room to grow."
    elif direct_count >= 5:
        text = (
            f"{direct_count} similar venues nearby: the market is saturated. "
            f"A highly distinctive concept is essential."
        )
    else:
        text = (
            f"{direct_count} similar venues and {hospitality} hospitality venues in total: "
            f"healthy competition with room for a strong concept."
        )

    if pricing.average is not None:
        text += f" Average price level: {pricing.label}."
    return text


def analyze_audience(analysis: EnhancedLocationAnalysis, profile: AudienceProfile) -> AudienceMatch:
    demographics = analysis.demographics
    if demographics is None:
        return AudienceMatch(score=50, explanation="No demographic data available for an accurate match.")

    score = 50
    parts = []
    ages = demographics.age_distribution

    if profile.ideal_age == "young":
        if ages.young_pct > 30:
            score += 20
            parts.append("many young residents")
        elif ages.young_pct < 15:
            score -= 15
            parts.append("few young residents")
    elif profile.ideal_age == "working":
        if ages.working_pct > 55:
            score += 15
            parts.append("many working-age residents")

    income = demographics.avg_income
    if income:
        if income >= profile.min_income * 1.2:
            score += 20
            parts.append("above-average income")
        elif income >= profile.min_income:
            score += 10
            parts.append("matching income level")
        else:
            score -= 15
            parts.append("income below the target minimum")

    if demographics.density and profile.density != "any":
        urban = demographics.density > URBAN_DENSITY
        if profile.density == "high" and urban:
            score += 10
            parts.append("urban location")
        elif profile.density == "high":
            score -= 10
            parts.append("not an urban area")

    explanation = (
        f"Audience match: {', '.join(parts)}." if parts else "Average match with the local population."
    )
    return AudienceMatch(score=int(clamp(score, 0, 100)), explanation=explanation)


def has_competitor_data(analysis: EnhancedLocationAnalysis, searched: Optional[List[CompetitorInfo]]) -> bool:
    """True when at least one competitor source answered."""
    return (
        searched is not None
        or "openmap" in analysis.data_sources
        or "commercial" in analysis.data_sources
    )


def has_foot_traffic(analysis: EnhancedLocationAnalysis) -> bool:
    return analysis.foot_traffic is not None and bool(analysis.foot_traffic.sources)


def generate_opportunities_and_risks(
    analysis: EnhancedLocationAnalysis,
    scan: CompetitionScan,
    audience: AudienceMatch,
    pricing: PricePositioning,
    competition_known: bool = True,
) -> Tuple[List[str], List[str]]:
    opportunities: List[str] = []
    risks: List[str] = []

    if competition_known and scan.direct_count == 0:
        opportunities.append("No direct competition: first-mover advantage")
    if scan.direct_count >= 5:
        risks.append("High competition: differentiation is crucial")

    if pricing.average is not None:
        if pricing.matches_concept:
            opportunities.append(f"Price level fits the neighbourhood ({pricing.label})")
        else:
            risks.append(f"Price level deviates from the market average ({pricing.label})")

    transit = analysis.transit_analysis
    if transit is not None:
        if transit.accessibility_label == "excellent":
            opportunities.append("Excellent public transport access draws a broad audience")
        elif transit.accessibility_label in ("poor", "bad"):
            risks.append("Limited accessibility: dependent on a local audience")

    if audience.score >= 70:
        opportunities.append("Strong match with the local population")
    elif audience.score < 30:
        risks.append("Weak match with the local target audience")

    if has_foot_traffic(analysis):
        daily = analysis.foot_traffic.daily_estimate
        if daily > 1500:
            opportunities.append(f"High foot traffic (~{daily:,}/day)")
        elif daily < 500:
            risks.append("Low foot traffic: a marketing-driven model is needed")

    if analysis.stats.offices_nearby > 5:
        opportunities.append("Many offices nearby: strong lunch potential")

    if analysis.building is not None and analysis.building.is_hospitality_suitable:
        opportunities.append("The building is zoned for hospitality use")

    return opportunities, risks


def calculate_viability_score(
    analysis: EnhancedLocationAnalysis,
    scan: CompetitionScan,
    audience: AudienceMatch,
    pricing: PricePositioning,
    competition_known: bool = True,
) -> int:
    """
    Base 50 plus additive adjustments, clamped to 0-100.

    Competition and foot traffic only count when those signals exist, so a
    run where every source failed scores 50 - 5 (buzz index penalty) = 45.
    """
    score = 50

    if competition_known:
        direct = scan.direct_count
        if direct == 0:
            score += 15
        elif direct <= 2:
            score += 5
        elif direct >= 10:
            score -= 20
        elif direct >= 5:
            score -= 15

    transit = analysis.transit_analysis
    if transit is not None:
        if transit.score >= 8:
            score += 15
        elif transit.score >= 5:
            score += 5
        elif transit.score < 2:
            score -= 10

    score += round_half_up((audience.score - 50) * 0.3)

    if has_foot_traffic(analysis):
        daily = analysis.foot_traffic.daily_estimate
        if daily > 2000:
            score += 10
        elif daily > 1000:
            score += 5
        elif daily < 300:
            score -= 5

    buzz = analysis.buzz_index or 0
    if buzz >= 7:
        score += 10
    elif buzz >= 4:
        score += 3
    else:
        score -= 5

    if pricing.average is not None:
        score += 5 if pricing.matches_concept else -5

    return int(clamp(score, 0, 100))


def build_top_competitors(direct: List[CompetitorInfo]) -> List[TopCompetitor]:
    return [
        TopCompetitor(
            name=c.name,
            rating=c.rating,
            review_count=c.review_count,
            price_level=c.price_level,
            distance_meters=c.distance_meters,
        )
        for c in direct[:TOP_COMPETITORS]
    ]


def summarize_direct_competitors(direct: List[CompetitorInfo]) -> List[str]:
    """One-line rating summaries of rated direct competitors for the insight prompt."""
    lines = []
    for c in [c for c in direct if c.rating is not None][:TOP_COMPETITORS]:
        line = f"{c.name}: ★{c.rating}"
        if c.review_count:
            line += f" ({c.review_count} reviews)"
        if c.price_level is not None:
            line += f" {PRICE_LABELS[c.price_level]}"
        lines.append(line)
    return lines


def location_context_for(analysis: EnhancedLocationAnalysis) -> LocationContext:
    demographics = analysis.demographics
    return LocationContext(
        area_name=demographics.area_name if demographics else None,
        municipality_name=demographics.municipality_name if demographics else None,
        density=demographics.density if demographics else None,
        age_distribution=demographics.age_distribution if demographics else None,
        hospitality_count=analysis.stats.hospitality_count,
        is_hospitality_suitable=analysis.building.is_hospitality_suitable if analysis.building else None,
        transit_label=analysis.transit_analysis.accessibility_label if analysis.transit_analysis else None,
    )


def build_insight_prompt(
    concept: str,
    analysis: EnhancedLocationAnalysis,
    viability_score: int,
    scan: CompetitionScan,
    audience: AudienceMatch,
    pricing: PricePositioning,
    competitor_lines: List[str],
) -> str:
    demographics = analysis.demographics
    transit = analysis.transit_analysis
    area = f"{demographics.area_name}, {demographics.municipality_name}" if demographics else "unknown"

    lines = [
        "You are an experienced hospitality consultant in the Netherlands. Give concise advice "
        f'(max 150 words, in English) on opening a "{concept}" at this location.',
        "",
        "Context:",
        f"- Area: {area}",
        f"- Viability score: {viability_score}/100",
        f"- Direct competitors: {scan.direct_count}",
        f"- Indirect competitors: {scan.indirect_count}",
        f"- Audience match: {audience.score}/100 ({audience.explanation})",
        f"- Public transport: {transit.accessibility_label if transit else 'unknown'}",
        f"- Foot traffic: ~{analysis.foot_traffic.daily_estimate if has_foot_traffic(analysis) else 'unknown'}/day",
        f"- Buzz index: {analysis.buzz_index}/10",
    ]
    if pricing.average is not None:
        lines.append(f"- Market price level: {pricing.label} (average {pricing.average:.1f}/4)")
    if competitor_lines:
        lines.append(f"- Top competitors: {'; '.join(competitor_lines)}")
    if demographics and demographics.avg_income:
        lines.append(f"- Average income: €{demographics.avg_income}k")
    if demographics:
        ages = demographics.age_distribution
        lines.append(
            f"- Age: {ages.young_pct}% young, {ages.working_pct}% working age, {ages.senior_pct}% 65+"
        )
    if demographics and demographics.density:
        lines.append(f"- Density: {demographics.density:g} residents/km²")
    lines.append("")
    lines.append(
        f"Give concrete advice: is this a promising location for a {concept}? "
        f"What is the main point of attention? End with one concrete tip."
    )
    return "\n".join(lines)


# =============================================================================
# ENGINE
# =============================================================================


class ConceptViabilityEngine:
    """
    Concept viability checks for a point.

    Usage:
        engine = ConceptViabilityEngine(analyzer, places, classifier, cache, llm)
        result = await engine.check("smoothiebar", 52.3676, 4.9041, 500)
    """

    def __init__(
        self,
        analyzer: LocationAnalyzer,
        places: PlacesProvider,
        classifier: CompetitorClassifier,
        cache: Optional[LocationCache] = None,
        llm: Optional[LLMClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.analyzer = analyzer
        self.places = places
        self.classifier = classifier
        self.cache = cache or LocationCache()
        self.llm = llm
        self.timeout = timeout

    async def check(self, concept: str, lat: float, lng: float, radius: int = 500) -> ConceptCheckResult:
        """
        Run the viability check under the global deadline.

        Raises:
            ConceptCheckTimeoutError: When the deadline passes
        """
        try:
            return await asyncio.wait_for(self._check(concept, lat, lng, radius), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[viability] '{concept}' at {lat:.4f},{lng:.4f} timed out after {self.timeout}s")
            raise ConceptCheckTimeoutError(concept, self.timeout)

    async def _check(self, concept: str, lat: float, lng: float, radius: int) -> ConceptCheckResult:
        analysis, searched = await asyncio.gather(
            self.analyzer.analyze(lat, lng, radius),
            self.places.search_concept(concept, lat, lng, radius),
        )

        categories = categories_for(concept)
        profile = profile_for(concept)

        candidates = searched if searched else analysis.competitors
        classified = await self.classifier.classify(
            concept, candidates, categories, location_context_for(analysis)
        )

        scan = build_competition_scan(classified)
        competition_known = has_competitor_data(analysis, searched)
        pricing = analyze_price_positioning(classified.direct + classified.indirect, profile, candidates)
        gap_narrative = generate_gap_narrative(analysis, scan.direct_count, concept, pricing)
        audience = analyze_audience(analysis, profile)
        opportunities, risks = generate_opportunities_and_risks(
            analysis, scan, audience, pricing, competition_known
        )
        viability_score = calculate_viability_score(analysis, scan, audience, pricing, competition_known)

        ai_insight = await self.generate_insight(
            concept, lat, lng, analysis, viability_score, scan, audience, pricing,
            summarize_direct_competitors(classified.direct),
        )

        result = ConceptCheckResult(
            concept=concept,
            viability_score=viability_score,
            competition_scan=scan,
            gap_narrative=gap_narrative,
            audience_match=audience,
            price_positioning=pricing,
            top_competitors=build_top_competitors(classified.direct),
            opportunities=opportunities,
            risks=risks,
            ai_insight=ai_insight,
        )

        quality = assess_quality(result, analysis)
        result.quality_score = quality.score
        result.quality_notes = quality.notes
        result.data_completeness = quality.data_completeness

        logger.info(
            f"[viability] '{concept}' at {lat:.4f},{lng:.4f}: score {viability_score}, "
            f"{scan.direct_count} direct, quality {quality.score}"
        )
        return result

    async def generate_insight(
        self,
        concept: str,
        lat: float,
        lng: float,
        analysis: EnhancedLocationAnalysis,
        viability_score: int,
        scan: CompetitionScan,
        audience: AudienceMatch,
        pricing: PricePositioning,
        competitor_lines: List[str],
    ) -> Optional[str]:
        """Short AI advice, cached 24 hours; None without an LLM or on any failure."""
        if self.llm is None or not self.llm.is_available:
            return None

        canonical = f"{concept.lower().strip()}::r{round_half_up(lat * 10000)}::{round_half_up(lng * 10000)}"
        cached = await self.cache.get_hashed(INSIGHT_CACHE_SOURCE, canonical)
        if isinstance(cached, str) and cached:
            return cached

        prompt = build_insight_prompt(concept, analysis, viability_score, scan, audience, pricing, competitor_lines)
        try:
            response = await self.llm.complete(prompt, max_tokens=INSIGHT_MAX_TOKENS)
        except Exception as e:
            logger.warning(f"[viability] AI insight failed: {e}")
            return None

        insight = response.content.strip() or None
        if insight:
            await self.cache.set_hashed(INSIGHT_CACHE_SOURCE, canonical, insight)
        return insight
