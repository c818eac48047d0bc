"""
Neighbourhood demographics from CBS open data.

Primary: PDOK CBS wijken/buurten WFS, queried with a small RD bounding box
around the point, newest dataset year first.
Fallback: PDOK Locatieserver reverse geocode to a buurt code, then the CBS
OData "Kerncijfers wijken en buurten" tables, newest first.

No authentication required.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from location_intel.core.api_errors import APIError
from location_intel.core.cache import LocationCache
from location_intel.core.geo import rd_bbox
from location_intel.core.mathutils import round_half_up
from location_intel.core.models import AgeDistribution, Demographics
from location_intel.sources.base import BaseProvider

logger = logging.getLogger(__name__)

WFS_URL_TEMPLATE = "https://service.pdok.nl/cbs/wijkenbuurten/{year}/wfs/v1_0"
LOCATIESERVER_REVERSE_URL = "https://api.pdok.nl/bzk/locatieserver/search/v3_1/reverse"
ODATA_URL_TEMPLATE = "https://opendata.cbs.nl/ODataApi/odata/{table}/TypedDataSet"

WFS_YEARS = ["2023", "2022", "2021"]
ODATA_TABLES = ["86030NED", "85618NED", "85163NED", "85039NED"]

# CBS marks suppressed or unknown values with large negative numbers
# (-99995 secret, -99997 unknown, -99999999 no data)
SENTINEL_THRESHOLD = -99990

WFS_BBOX_HALF_SIZE = 10


def to_number(value: Any) -> Optional[float]:
    """Convert a CBS value to a number, mapping sentinels and junk to None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    if number <= SENTINEL_THRESHOLD:
        return None
    return number


def _to_int(value: Any) -> Optional[int]:
    number = to_number(value)
    return round_half_up(number) if number is not None else None


def map_wfs_properties(props: Dict[str, Any]) -> Demographics:
    """
    Map PDOK CBS WFS feature properties to Demographics.

    The WFS already reports age groups and single-person households as
    percentages.
    """
    young = (to_number(props.get("percentagePersonen0Tot15Jaar")) or 0) + (
        to_number(props.get("percentagePersonen15Tot25Jaar")) or 0
    )
    working = (to_number(props.get("percentagePersonen25Tot45Jaar")) or 0) + (
        to_number(props.get("percentagePersonen45Tot65Jaar")) or 0
    )
    senior = to_number(props.get("percentagePersonen65JaarEnOuder")) or 0

    return Demographics(
        area_code=props.get("buurtcode") or "",
        area_name=props.get("buurtnaam") or "",
        municipality_name=props.get("gemeentenaam") or "",
        population=_to_int(props.get("aantalInwoners")) or 0,
        avg_income=to_number(props.get("gemiddeldInkomenPerInwoner")),
        age_distribution=AgeDistribution(young_pct=young, working_pct=working, senior_pct=senior),
        density=to_number(props.get("bevolkingsdichtheidInwonersPerKm2")),
        households=_to_int(props.get("aantalHuishoudens")),
        single_person_household_pct=to_number(props.get("percentageEenpersoonshuishoudens")),
    )


def map_odata_row(
    row: Dict[str, Any],
    area_code: str,
    area_name: str,
    municipality_name: str,
) -> Demographics:
    """
    Map a CBS OData TypedDataSet row to Demographics.

    OData reports absolute counts per age group, so shares are computed
    here and rounded to whole percents.
    """
    households = _to_int(row.get("HuishoudensNaarSamenstelling_28"))
    single = to_number(row.get("Eenpersoonshuishoudens_29"))

    age_0_15 = to_number(row.get("k_0Tot15Jaar_8")) or 0
    age_15_25 = to_number(row.get("k_15Tot25Jaar_9")) or 0
    age_25_45 = to_number(row.get("k_25Tot45Jaar_10")) or 0
    age_45_65 = to_number(row.get("k_45Tot65Jaar_11")) or 0
    age_65_plus = to_number(row.get("k_65JaarOfOuder_12")) or 0

    total_age = age_0_15 + age_15_25 + age_25_45 + age_45_65 + age_65_plus
    if total_age > 0:
        ages = AgeDistribution(
            young_pct=round_half_up((age_0_15 + age_15_25) / total_age * 100),
            working_pct=round_half_up((age_25_45 + age_45_65) / total_age * 100),
            senior_pct=round_half_up(age_65_plus / total_age * 100),
        )
    else:
        ages = AgeDistribution()

    single_pct = None
    if single is not None and households:
        single_pct = float(round_half_up(single / households * 100))

    return Demographics(
        area_code=area_code,
        area_name=area_name,
        municipality_name=municipality_name,
        population=_to_int(row.get("AantalInwoners_5")) or 0,
        avg_income=to_number(row.get("GemiddeldInkomenPerInwoner_66")),
        age_distribution=ages,
        density=to_number(row.get("Bevolkingsdichtheid_33")),
        households=households,
        single_person_household_pct=single_pct,
    )


class DemographicsProvider(BaseProvider[Demographics]):
    """CBS neighbourhood statistics for the buurt containing a point."""

    SOURCE_NAME = "cbs"
    CACHE_SOURCE = "demographics"
    RESULT_MODEL = Demographics
    CACHE_BY_RADIUS = False

    def __init__(
        self,
        cache: Optional[LocationCache] = None,
        timeout: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
        wfs_years: Optional[List[str]] = None,
        odata_tables: Optional[List[str]] = None,
    ):
        super().__init__(cache=cache, timeout=timeout, http_client=http_client)
        self.wfs_years = wfs_years or WFS_YEARS
        self.odata_tables = odata_tables or ODATA_TABLES

    async def _fetch_uncached(self, lat: float, lng: float, radius: int) -> Optional[Demographics]:
        bbox = rd_bbox(lat, lng, WFS_BBOX_HALF_SIZE)

        for year in self.wfs_years:
            result = await self._fetch_wfs(bbox, year)
            if result is not None:
                logger.info(f"[{self.SOURCE_NAME}] {result.area_name} from WFS {year}")
                return result

        return await self._fetch_via_reverse_geocode(lat, lng)

    async def _fetch_wfs(self, bbox: str, year: str) -> Optional[Demographics]:
        params = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeName": "buurten",
            "outputFormat": "application/json",
            "bbox": bbox,
            "count": "1",
        }
        try:
            data = await self.get(
                WFS_URL_TEMPLATE.format(year=year),
                params=params,
                resource_id=f"wfs-{year}",
            )
        except APIError as e:
            logger.debug(f"[{self.SOURCE_NAME}] WFS {year} failed: {e}")
            return None

        features = data.get("features") if isinstance(data, dict) else None
        if not features:
            return None
        props = features[0].get("properties") or {}

        area_name = props.get("buurtnaam") or ""
        if not area_name or area_name == "Buitenland":
            return None

        return map_wfs_properties(props)

    async def _fetch_via_reverse_geocode(self, lat: float, lng: float) -> Optional[Demographics]:
        params = {
            "lat": lat,
            "lon": lng,
            "type": "buurt",
            "rows": 1,
            "fl": "identificatie,buurtnaam,gemeentenaam",
        }
        data = await self.get(LOCATIESERVER_REVERSE_URL, params=params, resource_id="reverse-buurt")
        docs = (data.get("response") or {}).get("docs") or []
        if not docs or not docs[0].get("identificatie"):
            return None

        doc = docs[0]
        area_code = doc["identificatie"]
        area_name = doc.get("buurtnaam") or ""
        municipality_name = doc.get("gemeentenaam") or ""

        for table in self.odata_tables:
            row = await self._fetch_odata_row(table, area_code)
            if row is not None:
                logger.info(f"[{self.SOURCE_NAME}] {area_code} from OData {table}")
                return map_odata_row(row, area_code, area_name, municipality_name)

        return None

    async def _fetch_odata_row(self, table: str, area_code: str) -> Optional[Dict[str, Any]]:
        # Area codes are stored right-padded to 10 characters in some tables
        trimmed = area_code.strip()
        padded = trimmed.ljust(10)
        params = {
            "$filter": f"WijkenEnBuurten eq '{padded}' or WijkenEnBuurten eq '{trimmed}'",
            "$top": "1",
        }
        try:
            data = await self.get(
                ODATA_URL_TEMPLATE.format(table=table),
                params=params,
                resource_id=f"odata-{table}",
            )
        except APIError as e:
            logger.debug(f"[{self.SOURCE_NAME}] OData {table} failed: {e}")
            return None

        rows = data.get("value") if isinstance(data, dict) else None
        return rows[0] if rows else None
