"""
Quality scorer for concept check results.

Pure computation over the assembled result and the analysis it was built
from; no I/O. Each check either awards its points or adds a caveat.

Bands (max 100):
- Data completeness: demographics 10, transit 8, commercial competitors 8,
  foot traffic from 2+ sources 7, building 7
- Classification: agent with review investigation 12, agent only 8, fallback 3
- Competition data: enough competitors 5, ratings 4, price data 4
- Consistency: score vs opportunities/risks 8, no extreme score on thin data 7
- Freshness: analysis fetched within 24 hours 15
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from location_intel.core.mathutils import clamp, round_half_up
from location_intel.core.models import (
    ConceptCheckResult,
    EnhancedLocationAnalysis,
    QualityReport,
)

FRESHNESS_WINDOW = timedelta(hours=24)

FALLBACK_NOTE = "Competitors classified by category fallback, less accurate"


@dataclass
class QualityCheck:
    points: int
    passed: bool
    note: str  # shown when the check fails


def classification_points(result: ConceptCheckResult) -> int:
    scan = result.competition_scan
    if not scan.ai_classified:
        return 3
    if scan.investigated_competitors:
        return 12
    return 8


def is_score_consistent(result: ConceptCheckResult) -> bool:
    """A very high score with far more risks (or the reverse) is suspicious."""
    opportunities = len(result.opportunities)
    risks = len(result.risks)
    if result.viability_score >= 85 and risks > opportunities + 2:
        return False
    if result.viability_score <= 15 and opportunities > risks + 2:
        return False
    return True


def is_score_realistic(result: ConceptCheckResult, analysis: EnhancedLocationAnalysis) -> bool:
    """Extreme scores backed by at most one data source are suspicious."""
    present = sum(
        1
        for source in (
            analysis.demographics,
            analysis.transit_analysis,
            analysis.building,
            analysis.foot_traffic,
        )
        if source is not None
    )
    if present <= 1 and (result.viability_score <= 5 or result.viability_score >= 95):
        return False
    return True


def is_fresh(analysis: EnhancedLocationAnalysis, now: Optional[datetime] = None) -> bool:
    if not analysis.fetched_at:
        return False
    try:
        fetched = datetime.fromisoformat(analysis.fetched_at.replace("Z", "+00:00"))
    except ValueError:
        return False
    if fetched.tzinfo is None:
        fetched = fetched.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return now - fetched < FRESHNESS_WINDOW


def has_commercial_competitors(analysis: EnhancedLocationAnalysis) -> bool:
    return any(c.source == "commercial" for c in analysis.competitors)


def data_completeness(analysis: EnhancedLocationAnalysis) -> int:
    """Percentage of the five named sources that returned data."""
    sources = [
        analysis.demographics is not None,
        analysis.transit_analysis is not None,
        analysis.building is not None,
        analysis.foot_traffic is not None,
        has_commercial_competitors(analysis),
    ]
    return round_half_up(sum(sources) / len(sources) * 100)


def assess_quality(
    result: ConceptCheckResult,
    analysis: EnhancedLocationAnalysis,
    now: Optional[datetime] = None,
) -> QualityReport:
    """
    Score the reliability of a concept check result.

    Args:
        result: Assembled result (quality fields are ignored)
        analysis: Location analysis the result was built on
        now: Reference time for the freshness check

    Returns:
        QualityReport with score, caveats and completeness
    """
    notes: List[str] = []
    if not result.competition_scan.ai_classified:
        notes.append(FALLBACK_NOTE)

    scan = result.competition_scan
    has_competitors = scan.direct_count > 0 or scan.indirect_count > 0
    foot_traffic = analysis.foot_traffic

    checks = [
        QualityCheck(10, analysis.demographics is not None, "Demographic statistics unavailable"),
        QualityCheck(8, analysis.transit_analysis is not None, "Public transport data missing"),
        QualityCheck(8, has_commercial_competitors(analysis), "No commercial places data, open map only"),
        QualityCheck(
            7,
            foot_traffic is not None and len(foot_traffic.sources) >= 2,
            "Foot traffic estimate based on few sources",
        ),
        QualityCheck(7, analysis.building is not None, "Building registry data unavailable"),
        QualityCheck(classification_points(result), True, ""),
        QualityCheck(
            5,
            not has_competitors or scan.direct_count >= 3 or scan.indirect_count >= 3,
            "Few competitors found, market analysis less reliable",
        ),
        QualityCheck(
            4,
            not has_competitors or any(c.rating is not None for c in result.top_competitors),
            "No ratings available for competitors",
        ),
        QualityCheck(
            4,
            result.price_positioning.average is not None,
            "Not enough price data for market positioning",
        ),
        QualityCheck(8, is_score_consistent(result), "Viability score looks inconsistent with opportunities and risks"),
        QualityCheck(7, is_score_realistic(result, analysis), "Viability score is extreme with incomplete data"),
        QualityCheck(15, is_fresh(analysis, now), "Data is older than 24 hours"),
    ]

    score = 0
    for check in checks:
        if check.passed:
            score += check.points
        elif check.note:
            notes.append(check.note)

    return QualityReport(
        score=int(clamp(score, 0, 100)),
        notes=notes,
        data_completeness=data_completeness(analysis),
    )
