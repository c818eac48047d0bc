"""
Competitor classification agent.

Sorts nearby businesses into direct, indirect and irrelevant competitors of
a hospitality concept. The LLM sees every competitor (name, type, rating,
distance, place reference) and may call one tool, fetch_competitor_reviews,
for ambiguous entries before it answers with a JSON classification.

Flow:
1. 7-day cache keyed by concept + sorted competitor names
2. Bounded agent loop (step budget + wall-clock timeout via task cancellation)
3. Parse the last "classifications" object in the agent's output
4. Reconcile: every competitor index gets an entry
5. Sanity check: a uniform result over 3+ competitors is discarded

Any failure falls back to keyword matching on the place type.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from location_intel.agentic.llm_client import LLMClient, ToolCall, ToolSpec
from location_intel.core.api_errors import AgentOutputError
from location_intel.core.cache import LocationCache
from location_intel.core.mathutils import clamp, round_half_up
from location_intel.core.models import AgeDistribution, ClassifiedCompetitors, CompetitorInfo
from location_intel.sources.places import PlacesProvider

logger = logging.getLogger(__name__)

CATEGORIES = ("direct", "indirect", "irrelevant")
CACHE_SOURCE = "ai-classify"
PLACE_REF_PREFIX = "places/"
MIN_PLACE_REF_LENGTH = 10
UNIFORM_MIN_COMPETITORS = 3
DEFAULT_AGENT_TIMEOUT = 15.0
DEFAULT_AGENT_MAX_STEPS = 8
RECONCILED_CONFIDENCE = 2
INVESTIGATED_CONFIDENCE = 5

REVIEWS_TOOL = ToolSpec(
    name="fetch_competitor_reviews",
    description=(
        "Fetch Google reviews and the editorial summary of one competitor. "
        "Use this ONLY when name and type are not enough to classify reliably "
        "(generic names such as 'Het Hoekje' or 'De Buren', or a cafe-type "
        "venue when the concept itself is cafe-like)."
    ),
    parameters={
        "type": "object",
        "properties": {
            "place_ref": {
                "type": "string",
                "description": "Google Places resource name, e.g. places/ChIJxyz...",
            },
            "competitor_name": {
                "type": "string",
                "description": "Name of the competitor (for logging)",
            },
        },
        "required": ["place_ref", "competitor_name"],
    },
)

SYSTEM_PROMPT = """You are an experienced hospitality market analyst in the Netherlands. You classify competitors for a new hospitality concept.
{location}
CLASSIFICATION RULES:
- direct: same kind of venue or directly competing offer (e.g. smoothie bar vs juice/acai bar)
- indirect: related hospitality serving part of the same audience (e.g. cafe or ice cream parlour for a smoothie bar)
- irrelevant: a different kind of hospitality that does not compete (e.g. McDonald's or a pizzeria for a smoothie bar)
- confidence: 1 = very unsure, 5 = very sure

METHOD:
1. Look at all competitors. Classify obvious cases straight away with high confidence.
2. For AMBIGUOUS cases where name and type are not enough, call fetch_competitor_reviews to read the reviews.
3. After your research ALWAYS give your final classification as JSON.

OUTPUT FORMAT - answer with valid JSON in exactly this format on the last line:
{{"classifications":[{{"index":0,"name":"Name","category":"direct","confidence":4}},{{"index":1,"name":"Name2","category":"irrelevant","confidence":5}}]}}

Make sure EVERY competitor (index 0 to {last_index}) is in the output. Do not skip any."""


class ClassificationEntry(BaseModel):
    category: str
    confidence: int = Field(..., ge=1, le=5)


class CachedClassification(BaseModel):
    """Cached agent outcome; names pin the index order it was made for."""
    names: List[str]
    entries: Dict[int, ClassificationEntry]
    investigated_refs: List[str] = Field(default_factory=list)


@dataclass
class LocationContext:
    """What the agent is told about the surroundings."""

    area_name: Optional[str] = None
    municipality_name: Optional[str] = None
    density: Optional[float] = None
    age_distribution: Optional[AgeDistribution] = None
    hospitality_count: Optional[int] = None
    is_hospitality_suitable: Optional[bool] = None
    transit_label: Optional[str] = None

    def describe(self) -> str:
        parts = []
        if self.area_name:
            suffix = f", {self.municipality_name}" if self.municipality_name else ""
            parts.append(f"Area: {self.area_name}{suffix}")
        if self.density:
            parts.append(f"Density: {self.density:g} residents/km²")
        if self.age_distribution:
            ages = self.age_distribution
            parts.append(
                f"Age: {ages.young_pct}% young, {ages.working_pct}% working age, {ages.senior_pct}% 65+"
            )
        if self.hospitality_count:
            parts.append(f"{self.hospitality_count} hospitality venues nearby")
        if self.transit_label:
            parts.append(f"Public transport: {self.transit_label}")
        return f"\nLocation: {' | '.join(parts)}\n" if parts else ""


@dataclass
class AgentRunState:
    """Bounded state of one agent run."""

    budget: int
    steps_taken: int = 0
    tool_results: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    investigated_refs: List[str] = field(default_factory=list)
    transcript: List[str] = field(default_factory=list)
    termination: Optional[str] = None  # final_answer | step_budget
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def exhausted(self) -> bool:
        return self.steps_taken >= self.budget


# =============================================================================
# PURE HELPERS
# =============================================================================


def classify_by_category(
    competitors: List[CompetitorInfo],
    categories: List[str],
) -> ClassifiedCompetitors:
    """
    Deterministic fallback: direct when the place type contains one of the
    concept's category keywords, indirect otherwise. Never irrelevant.
    """
    direct, indirect = [], []
    for competitor in competitors:
        type_lower = competitor.type.lower()
        if any(category in type_lower for category in categories):
            direct.append(competitor)
        else:
            indirect.append(competitor)
    return ClassifiedCompetitors(direct=direct, indirect=indirect, ai_classified=False)


def is_valid_place_ref(place_ref: Any) -> bool:
    return (
        isinstance(place_ref, str)
        and place_ref.startswith(PLACE_REF_PREFIX)
        and len(place_ref) >= MIN_PLACE_REF_LENGTH
    )


def extract_classifications_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Locate the last JSON object holding a "classifications" key.

    Earlier objects (tool arguments echoed in reasoning) are skipped by
    starting from the last key occurrence and walking back to its opening
    brace, then matching braces forward.
    """
    key_index = text.rfind('"classifications"')
    if key_index == -1:
        return None
    start = text.rfind("{", 0, key_index)
    if start == -1:
        return None

    depth = 0
    end = -1
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                end = i
                break
    if end == -1:
        return None

    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _resolve_index(item: Dict[str, Any], competitors: List[CompetitorInfo]) -> int:
    index = item.get("index")
    if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(competitors):
        return index
    name = item.get("name")
    if isinstance(name, str):
        wanted = name.lower()
        for i, competitor in enumerate(competitors):
            if competitor.name.lower() == wanted:
                return i
    return -1


def _confidence(value: Any) -> int:
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            value = None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        value = 3
    return int(clamp(round_half_up(value), 1, 5))


def parse_classifications(
    text: str,
    competitors: List[CompetitorInfo],
) -> Dict[int, ClassificationEntry]:
    """
    Parse agent output into a partial index -> entry map.

    Raises:
        AgentOutputError: When no usable classification is found
    """
    parsed = extract_classifications_json(text)
    if parsed is None or not isinstance(parsed.get("classifications"), list):
        raise AgentOutputError("Agent output holds no classifications JSON")

    entries: Dict[int, ClassificationEntry] = {}
    for item in parsed["classifications"]:
        if not isinstance(item, dict):
            continue
        index = _resolve_index(item, competitors)
        if index < 0:
            continue
        category = item.get("category")
        entries[index] = ClassificationEntry(
            category=category if category in CATEGORIES else "indirect",
            confidence=_confidence(item.get("confidence")),
        )

    if not entries:
        raise AgentOutputError("Agent classifications matched no competitor")
    return entries


def reconcile(
    entries: Dict[int, ClassificationEntry],
    competitors: List[CompetitorInfo],
    investigated_refs: Collection[str],
) -> Dict[int, ClassificationEntry]:
    """
    Complete the map over every index and lift investigated entries to full
    confidence. Investigation is matched by place reference, so a namesake of
    an investigated competitor keeps its own confidence.
    """
    complete = {}
    for i, competitor in enumerate(competitors):
        entry = entries.get(i)
        if entry is None:
            logger.warning(f"[classifier] Missing classification for '{competitor.name}', defaulting to indirect")
            entry = ClassificationEntry(category="indirect", confidence=RECONCILED_CONFIDENCE)
        if competitor.place_ref and competitor.place_ref in investigated_refs:
            entry = ClassificationEntry(category=entry.category, confidence=INVESTIGATED_CONFIDENCE)
        complete[i] = entry
    return complete


def apply_classifications(
    competitors: List[CompetitorInfo],
    entries: Dict[int, ClassificationEntry],
    investigated_refs: Collection[str],
) -> ClassifiedCompetitors:
    """Bucket competitors; confidence 1 is not trusted and lands in indirect."""
    buckets: Dict[str, List[CompetitorInfo]] = {category: [] for category in CATEGORIES}
    for i, competitor in enumerate(competitors):
        entry = entries.get(i)
        category = entry.category if entry and entry.confidence > 1 else "indirect"
        buckets[category].append(competitor)
    return ClassifiedCompetitors(
        direct=buckets["direct"],
        indirect=buckets["indirect"],
        irrelevant=buckets["irrelevant"],
        ai_classified=True,
        investigated=[c.name for c in competitors if c.place_ref and c.place_ref in investigated_refs],
    )


def is_uniform(result: ClassifiedCompetitors) -> bool:
    total = result.total
    if total < UNIFORM_MIN_COMPETITORS:
        return False
    return total in (len(result.direct), len(result.indirect), len(result.irrelevant))


def format_competitor_lines(competitors: List[CompetitorInfo]) -> str:
    lines = []
    for i, c in enumerate(competitors):
        extras = []
        if c.rating:
            extras.append(f"★{c.rating}")
        if c.distance_meters:
            extras.append(f"{c.distance_meters}m")
        if c.place_ref:
            extras.append(f"placeId: {c.place_ref}")
        extra = f" [{', '.join(extras)}]" if extras else ""
        lines.append(f"{i}. {c.name} (type: {c.type}){extra}")
    return "\n".join(lines)


def cache_canonical(concept: str, competitors: List[CompetitorInfo]) -> str:
    names = "|".join(sorted(c.name for c in competitors))
    return f"{concept.lower().strip()}::{names}"


# =============================================================================
# CLASSIFIER
# =============================================================================


class CompetitorClassifier:
    """
    Classify competitors for a concept with an LLM agent and a keyword fallback.

    Usage:
        classifier = CompetitorClassifier(llm=llm, places=places, cache=cache)
        result = await classifier.classify("smoothiebar", competitors, ["cafe"])
    """

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        places: Optional[PlacesProvider] = None,
        cache: Optional[LocationCache] = None,
        timeout: float = DEFAULT_AGENT_TIMEOUT,
        max_steps: int = DEFAULT_AGENT_MAX_STEPS,
    ):
        self.llm = llm
        self.places = places
        self.cache = cache or LocationCache()
        self.timeout = timeout
        self.max_steps = max_steps

    async def classify(
        self,
        concept: str,
        competitors: List[CompetitorInfo],
        categories: List[str],
        location_context: Optional[LocationContext] = None,
    ) -> ClassifiedCompetitors:
        """
        Classify every competitor exactly once.

        Args:
            concept: Concept name as entered
            competitors: Competitors to classify
            categories: Category keywords for the fallback
            location_context: Surroundings passed to the agent

        Returns:
            ClassifiedCompetitors; ai_classified is False when the fallback ran
        """
        if not competitors:
            return ClassifiedCompetitors()

        if self.llm is not None and self.llm.is_available:
            try:
                result = await self._classify_with_agent(concept, competitors, location_context)
                if is_uniform(result):
                    logger.warning(
                        f"[classifier] All {result.total} competitors in one category, using fallback"
                    )
                else:
                    return result
            except asyncio.TimeoutError:
                logger.warning(f"[classifier] Agent timed out after {self.timeout}s, using fallback")
            except Exception as e:
                logger.warning(f"[classifier] Agent classification failed, using fallback: {e}")

        return classify_by_category(competitors, categories)

    async def _classify_with_agent(
        self,
        concept: str,
        competitors: List[CompetitorInfo],
        location_context: Optional[LocationContext],
    ) -> ClassifiedCompetitors:
        canonical = cache_canonical(concept, competitors)
        names = [c.name for c in competitors]

        cached = await self.cache.get_hashed(CACHE_SOURCE, canonical, model=CachedClassification)
        if cached is not None and cached.names == names:
            logger.debug(f"[classifier] Cache hit for '{concept}'")
            entries = reconcile(cached.entries, competitors, cached.investigated_refs)
            return apply_classifications(competitors, entries, cached.investigated_refs)

        state = AgentRunState(budget=self.max_steps)
        await asyncio.wait_for(
            self._run_agent(concept, competitors, location_context, state),
            timeout=self.timeout,
        )

        logger.info(
            f"[classifier] Agent finished ({state.termination}): "
            f"steps {state.steps_taken}, investigated [{', '.join(state.investigated_refs)}], "
            f"tokens {state.input_tokens}in/{state.output_tokens}out "
            f"(client total {self.llm.total_tokens_used} tokens, ${self.llm.total_cost_usd:.4f})"
        )

        entries = parse_classifications("\n".join(state.transcript), competitors)
        entries = reconcile(entries, competitors, state.investigated_refs)

        await self.cache.set_hashed(
            CACHE_SOURCE,
            canonical,
            CachedClassification(names=names, entries=entries, investigated_refs=state.investigated_refs),
        )
        return apply_classifications(competitors, entries, state.investigated_refs)

    async def _run_agent(
        self,
        concept: str,
        competitors: List[CompetitorInfo],
        location_context: Optional[LocationContext],
        state: AgentRunState,
    ) -> None:
        system_prompt = SYSTEM_PROMPT.format(
            location=location_context.describe() if location_context else "",
            last_index=len(competitors) - 1,
        )
        prompt = (
            f'Classify these competitors for the concept "{concept}":\n\n'
            f"{format_competitor_lines(competitors)}"
        )
        known_refs = {c.place_ref for c in competitors if c.place_ref}

        conversation = self.llm.start_conversation(system_prompt, prompt, [REVIEWS_TOOL])

        while not state.exhausted:
            turn = await conversation.step()
            state.steps_taken += 1
            state.input_tokens += turn.input_tokens
            state.output_tokens += turn.output_tokens
            if turn.text:
                state.transcript.append(turn.text)

            if turn.is_final:
                state.termination = "final_answer"
                return

            results = []
            for call in turn.tool_calls:
                results.append((call, await self._run_tool(call, known_refs, state)))
            conversation.add_tool_results(results)

        state.termination = "step_budget"

    async def _run_tool(
        self,
        call: ToolCall,
        known_refs: Set[str],
        state: AgentRunState,
    ) -> Dict[str, Any]:
        if call.name != REVIEWS_TOOL.name:
            return {"error": f"Unknown tool {call.name}"}
        return await self.fetch_competitor_reviews(
            call.arguments.get("place_ref"),
            call.arguments.get("competitor_name") or "",
            known_refs,
            state,
        )

    async def fetch_competitor_reviews(
        self,
        place_ref: Any,
        competitor_name: str,
        known_refs: Set[str],
        state: AgentRunState,
    ) -> Dict[str, Any]:
        """
        Tool body: reviews for one competitor.

        The reference is checked before any upstream call. The model can
        invent a plausible reference for an entry that has none, so refs that
        are malformed or not in the competitor list get an empty payload.
        """
        empty = {"reviews": [], "editorial_summary": None}

        if not is_valid_place_ref(place_ref):
            logger.warning(f"[classifier] Invalid place reference {place_ref!r} for '{competitor_name}'")
            return {**empty, "note": "No reviews available (invalid place reference)"}
        if place_ref not in known_refs:
            logger.warning(f"[classifier] Unknown place reference {place_ref!r} for '{competitor_name}'")
            return {**empty, "note": "No reviews available (unknown place reference)"}

        if place_ref in state.tool_results:
            return state.tool_results[place_ref]
        if self.places is None:
            return {**empty, "note": "No reviews available"}

        details = await self.places.get_details(place_ref)
        if details is None:
            return {**empty, "note": "No reviews available"}

        if place_ref not in state.investigated_refs:
            state.investigated_refs.append(place_ref)

        result = {
            "reviews": [f"[{r.rating}/5] {r.text}" for r in details.reviews],
            "editorial_summary": details.editorial_summary,
        }
        state.tool_results[place_ref] = result
        return result
