"""
Loose name matching for merging records from different sources.

Open map data and the commercial places API spell the same venue or stop
differently ("Harkema" vs "Brasserie Harkema"). Records are
treated as the same when the first word of one name occurs in the other.

Example matches:
- "Bagels & Beans" vs "Bagels and Beans Utrecht"
- "Centraal Station" vs "Amsterdam Centraal"
"""
import logging
from typing import Iterable, List, Sequence

from location_intel.core.models import CompetitorInfo, TransitStop

logger = logging.getLogger(__name__)

STOP_DISTANCE_TOLERANCE = 200


def first_word(name: str) -> str:
    """Lowercased first whitespace-separated word, or empty string."""
    parts = name.lower().split()
    return parts[0] if parts else ""


def _contains_first_word(haystack: str, needle_name: str, min_word_len: int) -> bool:
    word = first_word(needle_name)
    if len(word) < max(min_word_len, 1):
        return False
    return word in haystack.lower()


def names_overlap(name1: str, name2: str, min_word_len: int = 2) -> bool:
    """
    Bidirectional first-word containment, case-insensitive.

    Args:
        name1: First name
        name2: Second name
        min_word_len: Shortest first word allowed to produce a match

    Returns:
        True if either name's first word appears in the other name
    """
    return _contains_first_word(name2, name1, min_word_len) or _contains_first_word(
        name1, name2, min_word_len
    )


def is_same_stop(stop1: TransitStop, stop2: TransitStop) -> bool:
    """Two stops are one stop when close in distance and their names overlap."""
    if abs(stop1.distance_meters - stop2.distance_meters) >= STOP_DISTANCE_TOLERANCE:
        return False
    return names_overlap(stop1.name, stop2.name, min_word_len=1)


def merge_stops(primary: Sequence[TransitStop], extra: Iterable[TransitStop]) -> List[TransitStop]:
    """Primary stops plus every extra stop not already present, sorted by distance."""
    merged = list(primary)
    for stop in extra:
        if not any(is_same_stop(existing, stop) for existing in merged):
            merged.append(stop)
    return sorted(merged, key=lambda s: s.distance_meters)


def merge_competitors(
    commercial: Sequence[CompetitorInfo],
    openmap: Sequence[CompetitorInfo],
) -> List[CompetitorInfo]:
    """
    Merge commercial and open-map competitor lists.

    Commercial entries are kept verbatim. An open-map entry is added unless
    its name overlaps a commercial entry's name. Open-map entries are not
    compared with each other, so merging a list with an empty list returns
    it unchanged. The result is sorted by distance.
    """
    merged = list(commercial)
    skipped = 0
    for candidate in openmap:
        if any(names_overlap(candidate.name, existing.name) for existing in commercial):
            skipped += 1
            continue
        merged.append(candidate)

    if skipped:
        logger.debug(f"Competitor merge: {skipped} open-map duplicates dropped")

    return sorted(merged, key=lambda c: c.distance_meters)
