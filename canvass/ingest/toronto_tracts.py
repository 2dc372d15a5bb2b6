"""
D2D Neighborhood Atlas - Toronto census tract reference data

Static lookup tables for the Canadian provider:
- Tract centroids with catchment radii (coordinate -> tract)
- Postal FSA -> tract (reverse-geocoding fallback)
- Regional income / home value estimates used when Statistics Canada
  returns nothing for a characteristic

The estimate tables are hand-curated approximations (2021 Census income
averages, 2024 Toronto market home values). They are data, not derived
from anything, and cannot be checked algorithmically.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from canvass.schemas.neighborhood import Coordinate
from canvass.utils.geo import haversine_distances


@dataclass(frozen=True)
class TractCentroid:
    """A census tract's approximate centre and catchment radius"""
    tract_id: str
    name: str
    latitude: float
    longitude: float
    radius_m: float


@dataclass(frozen=True)
class TractMatch:
    tract_id: str
    name: str
    source: str  # 'centroid', 'postal_code' or 'default'


DEFAULT_TRACT = TractMatch(tract_id="5350000.00", name="Greater Toronto Area", source="default")

TORONTO_CENSUS_TRACTS: List[TractCentroid] = [
    # Downtown Toronto
    TractCentroid("5350001.00", "Downtown Toronto - Financial District", 43.6481, -79.3816, 1000),
    TractCentroid("5350002.00", "Downtown Toronto - Entertainment District", 43.6454, -79.3915, 1000),
    TractCentroid("5350003.00", "Downtown Toronto - Harbourfront", 43.6416, -79.3780, 1000),
    # Midtown
    TractCentroid("5350101.00", "Yonge-Eglinton", 43.7065, -79.3991, 1500),
    TractCentroid("5350102.00", "Forest Hill", 43.6940, -79.4102, 1500),
    TractCentroid("5350103.00", "Rosedale", 43.6782, -79.3790, 1200),
    # Scarborough
    TractCentroid("5350201.00", "Scarborough - Agincourt", 43.7853, -79.2807, 2000),
    TractCentroid("5350202.00", "Scarborough - Malvern", 43.8066, -79.2167, 2000),
    # North York
    TractCentroid("5350301.00", "North York - Willowdale", 43.7635, -79.4149, 1800),
    TractCentroid("5350302.00", "North York - York Mills", 43.7450, -79.4060, 1500),
    # Etobicoke
    TractCentroid("5350401.00", "Etobicoke - Kingsway", 43.6566, -79.5154, 1800),
    TractCentroid("5350402.00", "Etobicoke - Long Branch", 43.5959, -79.5451, 2000),
    # East York
    TractCentroid("5350501.00", "East York - Leaside", 43.7071, -79.3633, 1500),
    TractCentroid("5350502.00", "East York - The Danforth", 43.6828, -79.3487, 1200),
    # York
    TractCentroid("5350601.00", "York - Weston", 43.6980, -79.5203, 1800),
    TractCentroid("5350602.00", "York - Mount Dennis", 43.6884, -79.4958, 1500),
]

_FSA_GROUPS: List[Tuple[Tuple[str, ...], str, str]] = [
    (("M5A", "M5B", "M5C", "M5E", "M5G", "M5H", "M5J", "M5K", "M5L", "M5X"),
     "5350001.00", "Downtown Toronto"),
    (("M4N", "M4P", "M4R", "M4S", "M4T", "M5N", "M5P", "M5R"),
     "5350101.00", "Midtown Toronto"),
    (("M1B", "M1C", "M1E", "M1G", "M1H", "M1J", "M1K", "M1L", "M1M", "M1N", "M1P", "M1R",
      "M1S", "M1T", "M1V", "M1W", "M1X"),
     "5350201.00", "Scarborough"),
    (("M2H", "M2J", "M2K", "M2L", "M2M", "M2N", "M2P", "M2R", "M3A", "M3B", "M3C", "M3H",
      "M3J", "M3K", "M3L", "M3M", "M3N"),
     "5350301.00", "North York"),
    (("M8V", "M8W", "M8X", "M8Y", "M8Z", "M9A", "M9B", "M9C", "M9P", "M9R", "M9V", "M9W"),
     "5350401.00", "Etobicoke"),
    (("M4C", "M4E", "M4G", "M4H", "M4J", "M4K", "M4L", "M4M"),
     "5350501.00", "East York"),
    (("M6A", "M6B", "M6C", "M6E", "M6L", "M6M", "M6N"),
     "5350601.00", "York"),
]

FSA_TO_TRACT: Dict[str, Tuple[str, str]] = {
    fsa: (tract_id, name) for fsas, tract_id, name in _FSA_GROUPS for fsa in fsas
}

# (tract id substrings, estimate); first match wins
INCOME_ESTIMATES: List[Tuple[Tuple[str, ...], float]] = [
    (("5350001", "5350002"), 85000.0),   # Downtown
    (("5350101", "5350102"), 120000.0),  # Midtown / Forest Hill
    (("5350103",), 150000.0),            # Rosedale
    (("5350201",), 70000.0),             # Scarborough
    (("5350301", "5350302"), 95000.0),   # North York
    (("5350401", "5350402"), 80000.0),   # Etobicoke
    (("5350501", "5350502"), 85000.0),   # East York
    (("5350601", "5350602"), 75000.0),   # York
]
DEFAULT_INCOME_ESTIMATE = 85000.0  # GTA average

HOME_VALUE_ESTIMATES: List[Tuple[Tuple[str, ...], float]] = [
    (("5350001", "5350002"), 850000.0),   # Downtown condos/homes
    (("5350101",), 1400000.0),            # Yonge-Eglinton
    (("5350102",), 2200000.0),            # Forest Hill
    (("5350103",), 2800000.0),            # Rosedale
    (("5350201", "5350202"), 950000.0),   # Scarborough
    (("5350301", "5350302"), 1100000.0),  # North York
    (("5350401", "5350402"), 1000000.0),  # Etobicoke
    (("5350501", "5350502"), 1150000.0),  # East York / Danforth
    (("5350601", "5350602"), 900000.0),   # York / Weston
]
DEFAULT_HOME_VALUE_ESTIMATE = 1000000.0

DEFAULT_POPULATION_ESTIMATE = 5000.0
DEFAULT_OWNERSHIP_PCT_ESTIMATE = 65.0


def find_census_tract(coordinate: Coordinate) -> Optional[TractMatch]:
    """
    Nearest tract whose catchment radius contains the coordinate.

    Returns:
        TractMatch, or None when the point is outside every catchment
    """
    distances = haversine_distances(
        coordinate,
        [t.latitude for t in TORONTO_CENSUS_TRACTS],
        [t.longitude for t in TORONTO_CENSUS_TRACTS],
    )

    best: Optional[Tuple[float, TractCentroid]] = None
    for tract, distance in zip(TORONTO_CENSUS_TRACTS, distances):
        if distance <= tract.radius_m and (best is None or distance < best[0]):
            best = (float(distance), tract)

    if best is None:
        return None
    return TractMatch(tract_id=best[1].tract_id, name=best[1].name, source="centroid")


def tract_for_postal_code(postal_code: str) -> Optional[TractMatch]:
    """Map a postal code's FSA (first three characters) to a tract."""
    fsa = postal_code.replace(" ", "").upper()[:3]
    match = FSA_TO_TRACT.get(fsa)
    if match is None:
        return None
    return TractMatch(tract_id=match[0], name=match[1], source="postal_code")


def _estimate(tract_id: str, table: List[Tuple[Tuple[str, ...], float]], default: float) -> float:
    for patterns, value in table:
        if any(pattern in tract_id for pattern in patterns):
            return value
    return default


def estimated_income(tract_id: str) -> float:
    return _estimate(tract_id, INCOME_ESTIMATES, DEFAULT_INCOME_ESTIMATE)


def estimated_home_value(tract_id: str) -> float:
    return _estimate(tract_id, HOME_VALUE_ESTIMATES, DEFAULT_HOME_VALUE_ESTIMATE)
