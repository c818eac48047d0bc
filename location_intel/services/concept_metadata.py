"""
Hospitality concept reference data.

Each known concept maps to the place-type keywords its direct competitors
carry and to an audience profile used for the audience match and price
positioning. Concept keys are the Dutch trade names users type.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

PRICE_LABELS = ["Free", "€", "€€", "€€€", "€€€€"]


@dataclass(frozen=True)
class AudienceProfile:
    ideal_age: str  # young | working | any
    min_income: float  # thousands of EUR
    density: str  # high | medium | any
    price_level: int  # expected 1-4


CONCEPT_CATEGORIES: Dict[str, List[str]] = {
    "smoothiebar": ["cafe", "ice_cream", "fast_food"],
    "espressobar": ["cafe"],
    "koffiebar": ["cafe"],
    "wijnbar": ["bar", "pub"],
    "cocktailbar": ["bar", "pub"],
    "pokebowl": ["restaurant", "fast_food"],
    "bakkerij": ["cafe", "fast_food", "bakery"],
    "sushi": ["restaurant"],
    "pizzeria": ["restaurant", "fast_food"],
    "broodjeszaak": ["fast_food", "cafe"],
    "ijssalon": ["ice_cream", "cafe"],
    "lunchroom": ["cafe", "fast_food", "restaurant"],
    "restaurant": ["restaurant"],
    "cafe": ["cafe"],
    "bar": ["bar", "pub"],
    "dark_kitchen": ["restaurant", "fast_food", "meal_delivery"],
    "eetcafe": ["restaurant", "cafe", "bar"],
    "bistro": ["restaurant"],
    "brasserie": ["restaurant"],
}

AUDIENCE_PROFILES: Dict[str, AudienceProfile] = {
    "smoothiebar": AudienceProfile("young", 25, "high", 1),
    "espressobar": AudienceProfile("working", 28, "high", 2),
    "koffiebar": AudienceProfile("working", 25, "medium", 1),
    "wijnbar": AudienceProfile("working", 30, "high", 3),
    "cocktailbar": AudienceProfile("young", 28, "high", 3),
    "pokebowl": AudienceProfile("young", 25, "high", 2),
    "bakkerij": AudienceProfile("any", 20, "any", 1),
    "sushi": AudienceProfile("working", 30, "medium", 3),
    "pizzeria": AudienceProfile("any", 22, "medium", 2),
    "broodjeszaak": AudienceProfile("working", 22, "medium", 1),
    "ijssalon": AudienceProfile("young", 20, "high", 1),
    "lunchroom": AudienceProfile("working", 25, "medium", 2),
    "restaurant": AudienceProfile("working", 30, "medium", 3),
    "cafe": AudienceProfile("any", 22, "medium", 2),
    "bar": AudienceProfile("young", 22, "high", 2),
    "dark_kitchen": AudienceProfile("young", 20, "any", 1),
    "eetcafe": AudienceProfile("any", 22, "medium", 2),
    "bistro": AudienceProfile("working", 28, "medium", 3),
    "brasserie": AudienceProfile("working", 30, "medium", 3),
}

DEFAULT_PROFILE = AudienceProfile("any", 22, "medium", 2)

# (substrings, categories), first match wins
_INFERENCE_RULES = [
    (("koffie", "coffee"), ["cafe"]),
    (("bar",), ["bar", "pub"]),
    (("restaurant", "eet"), ["restaurant"]),
    (("pizza",), ["restaurant", "fast_food"]),
    (("sushi", "japan"), ["restaurant"]),
    (("ijs", "ice"), ["ice_cream", "cafe"]),
    (("brood", "sandwich"), ["fast_food", "cafe"]),
    (("bak",), ["cafe", "fast_food"]),
]
_INFERENCE_DEFAULT = ["restaurant", "cafe"]


def normalize_concept(concept: str) -> str:
    """Lowercase, trim and join words with underscores: "Dark Kitchen" -> "dark_kitchen"."""
    return "_".join(concept.lower().split())


def infer_categories(concept: str) -> List[str]:
    """Guess category keywords for a concept that is not in the table."""
    lower = concept.lower()
    for needles, categories in _INFERENCE_RULES:
        if any(needle in lower for needle in needles):
            return list(categories)
    return list(_INFERENCE_DEFAULT)


def categories_for(concept: str) -> List[str]:
    return list(CONCEPT_CATEGORIES.get(normalize_concept(concept)) or infer_categories(concept))


def profile_for(concept: str) -> AudienceProfile:
    return AUDIENCE_PROFILES.get(normalize_concept(concept), DEFAULT_PROFILE)


def price_label(level: Optional[float]) -> str:
    """Euro-sign label for a 0-4 price level (rounded)."""
    if level is None:
        return PRICE_LABELS[2]
    index = int(level + 0.5)
    if 0 <= index < len(PRICE_LABELS):
        return PRICE_LABELS[index]
    return PRICE_LABELS[2]
