"""
Daily foot traffic estimate.

Pure calculation over the other providers' output; no I/O and no cache.
Each contributing signal adds a weighted amount and is listed as a source.
"""
import re
from typing import List, Optional, Tuple

from location_intel.core.mathutils import round_half_up
from location_intel.core.models import (
    CompetitorInfo,
    Demographics,
    FootTrafficEstimate,
    TransitAnalysis,
)

# ~5% of the nearby population walks past daily
DENSITY_WALKOUT_RATE = 0.05
DENSITY_CAP = 2000
TRANSIT_WEIGHT = 150
HOSPITALITY_WEIGHT = 50
HOSPITALITY_CAP = 1000
EMPLOYEES_PER_OFFICE = 25
LUNCH_WALKOUT_RATE = 0.3
REVIEW_WEIGHT = 0.5
REVIEW_CAP = 800
EVENING_BONUS = 200
EVENING_MIN_VENUES = 2
UPSCALE_BONUS = 150
UPSCALE_MIN_PRICED = 3
UPSCALE_MIN_AVG_PRICE = 2.5
MINIMUM_ESTIMATE = 100

SOURCE_DENSITY = "population density"
SOURCE_TRANSIT = "transit accessibility"
SOURCE_HOSPITALITY = "hospitality cluster"
SOURCE_OFFICES = "office workers"
SOURCE_REVIEWS = "review popularity"
SOURCE_EVENING = "evening economy"
SOURCE_UPSCALE = "upscale destination"

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})\s*([AaPp][Mm])?")


def _to_24h(hour: str, minute: str, meridiem: str) -> Tuple[int, int]:
    h = int(hour)
    if meridiem:
        h = h % 12
        if meridiem.upper() == "PM":
            h += 12
    return h, int(minute)


def closes_late(weekday_description: str, late_hour: int = 22) -> bool:
    """
    Whether an opening-hours line shows closing at or after late_hour.

    "Friday: 11:00 – 23:30" closes late; "Monday: 09:00 – 01:00" closes
    after midnight which also counts. Lines are read as open – close
    pairs; both 24-hour and AM/PM notation are understood.
    """
    times = [_to_24h(h, m, ampm) for h, m, ampm in _TIME_RE.findall(weekday_description)]
    if len(times) < 2:
        return False
    for open_time, close_time in zip(times[0::2], times[1::2]):
        close_hour = close_time[0]
        if close_hour >= late_hour:
            return True
        # Closing time earlier than opening time wraps past midnight
        if close_time < open_time:
            return True
    return False


def has_evening_hours(competitor: CompetitorInfo) -> bool:
    if not competitor.opening_hours:
        return False
    return any(closes_late(line) for line in competitor.opening_hours.weekday_descriptions)


def estimate_foot_traffic(
    demographics: Optional[Demographics],
    transit: Optional[TransitAnalysis],
    hospitality_count: int,
    office_count: int,
    competitors: Optional[List[CompetitorInfo]] = None,
) -> FootTrafficEstimate:
    """
    Estimate daily passers-by from available signals.

    Args:
        demographics: Area statistics (density)
        transit: Transit analysis (score)
        hospitality_count: Hospitality venues in the base analysis
        office_count: Offices in the base analysis
        competitors: Merged competitor list (reviews, hours, prices)

    Returns:
        Estimate rounded to the nearest 100, never below 100
    """
    sources: List[str] = []
    estimate = 0.0

    if demographics and demographics.density:
        estimate += min(demographics.density * DENSITY_WALKOUT_RATE, DENSITY_CAP)
        sources.append(SOURCE_DENSITY)

    if transit is not None:
        estimate += transit.score * TRANSIT_WEIGHT
        sources.append(SOURCE_TRANSIT)

    if hospitality_count > 0:
        estimate += min(hospitality_count * HOSPITALITY_WEIGHT, HOSPITALITY_CAP)
        sources.append(SOURCE_HOSPITALITY)

    if office_count > 0:
        estimate += office_count * EMPLOYEES_PER_OFFICE * LUNCH_WALKOUT_RATE
        sources.append(SOURCE_OFFICES)

    if competitors:
        commercial = [c for c in competitors if c.source == "commercial"]

        total_reviews = sum(c.review_count or 0 for c in commercial)
        if total_reviews > 0:
            estimate += min(total_reviews * REVIEW_WEIGHT, REVIEW_CAP)
            sources.append(SOURCE_REVIEWS)

        late_venues = [c for c in competitors if has_evening_hours(c)]
        if len(late_venues) >= EVENING_MIN_VENUES:
            estimate += EVENING_BONUS
            sources.append(SOURCE_EVENING)

        priced = [c.price_level for c in commercial if c.price_level is not None]
        if len(priced) >= UPSCALE_MIN_PRICED and sum(priced) / len(priced) >= UPSCALE_MIN_AVG_PRICE:
            estimate += UPSCALE_BONUS
            sources.append(SOURCE_UPSCALE)

    daily = round_half_up(estimate / 100.0) * 100

    if len(sources) >= 5:
        confidence = "high"
    elif len(sources) >= 3:
        confidence = "medium"
    else:
        confidence = "low"

    return FootTrafficEstimate(
        daily_estimate=max(daily, MINIMUM_ESTIMATE),
        confidence=confidence,
        sources=sources,
    )
