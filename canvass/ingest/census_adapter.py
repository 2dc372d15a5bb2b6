"""
D2D Neighborhood Atlas - Geocoding / Census Adapter
Resolves a coordinate to an area identifier and raw demographic statistics

Routing:
- Coordinates inside Canada's bounding box -> Statistics Canada provider
- Everything else -> US Census Bureau provider

Failure policy:
- US: unresolvable tract -> ResolutionError; statistics failure -> DataFetchError
- Canada: tract resolution always succeeds (centroid table, postal FSA,
  then a default tract); missing statistics are filled from regional
  estimate tables instead of failing
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

import pandas as pd
import requests

from canvass.errors import DataFetchError, ResolutionError
from canvass.ingest import toronto_tracts
from canvass.ingest.toronto_tracts import TractMatch
from canvass.schemas.neighborhood import Coordinate, RawDemographics
from canvass.utils import data_sources
from canvass.utils.geo import is_canadian_coordinate
from canvass.utils.logging import get_logger
from config.settings import ACS_TRACT_VARIABLES, STATCAN_CHARACTERISTICS, get_settings

logger = get_logger(__name__)
settings = get_settings()

TRACT_FIPS_LENGTH = 11  # state(2) + county(3) + tract(6)
DEFAULT_TRACT_NAME = "Toronto Census Tract"
UNKNOWN_AREA_NAME = "Unknown Area"


class DemographicsProvider(ABC):
    """A source of area identifiers and statistics for one country."""

    name: str = "provider"

    @abstractmethod
    def resolve(self, coordinate: Coordinate) -> RawDemographics:
        """
        Resolve a coordinate to demographics.

        Raises:
            ResolutionError: If no area identifier can be determined
            DataFetchError: If statistics cannot be fetched and no fallback applies
        """
        pass


def _split_census_name(name: str) -> List[str]:
    # ACS 2021 separates with ", "; 2023+ uses "; "
    separator = ";" if ";" in name else ","
    return [part.strip() for part in name.split(separator) if part.strip()]


class USCensusProvider(DemographicsProvider):
    """FCC block lookup for the tract, then ACS 5-year estimates for that tract."""

    name = "us_census"

    def __init__(
        self,
        block_lookup: Callable[[Coordinate], Dict] = None,
        census_fetch: Callable[..., pd.DataFrame] = None,
        dataset: Optional[str] = None,
        year: Optional[int] = None,
    ):
        self.block_lookup = block_lookup or data_sources.fetch_fcc_block
        self.census_fetch = census_fetch or data_sources.fetch_census_data
        self.dataset = dataset or settings.ACS_DATASET
        self.year = year or settings.ACS_YEAR

    def resolve_tract_id(self, coordinate: Coordinate) -> str:
        try:
            payload = self.block_lookup(coordinate)
        except requests.exceptions.RequestException as e:
            raise ResolutionError(f"Census block lookup failed for {coordinate}: {e}") from e

        fips = ((payload or {}).get("Block") or {}).get("FIPS")
        if not fips or len(fips) < TRACT_FIPS_LENGTH:
            raise ResolutionError(f"No census block found for {coordinate}")

        # Census tract is the first 11 digits of the block FIPS
        return fips[:TRACT_FIPS_LENGTH]

    def fetch_statistics(self, tract_id: str) -> RawDemographics:
        state_code = tract_id[:2]
        county_code = tract_id[2:5]
        tract_code = tract_id[5:]
        variables = list(ACS_TRACT_VARIABLES.keys())

        try:
            df = self.census_fetch(
                dataset=self.dataset,
                variables=variables,
                geography=f"tract:{tract_code}",
                within=f"state:{state_code} county:{county_code}",
                year=self.year,
            )
        except requests.exceptions.RequestException as e:
            raise DataFetchError(f"Census statistics request failed for tract {tract_id}: {e}") from e

        if df.empty or not set(variables).issubset(df.columns):
            raise DataFetchError(f"Census API returned no usable data for tract {tract_id}")

        row = df.iloc[0]
        values = pd.to_numeric(row[variables], errors="coerce").rename(ACS_TRACT_VARIABLES)

        # ACS encodes suppressed/unavailable values as large negative sentinels
        invalid = values.isna() | (values < 0)
        if invalid.any():
            logger.warning(
                f"Tract {tract_id}: unavailable ACS values for {list(values[invalid].index)}, using 0"
            )
        values = values.mask(invalid, 0.0)

        total_units = float(values["total_housing_units"])
        ownership_rate = float(values["owner_occupied_units"]) / total_units if total_units > 0 else 0.0

        name = str(row.get("NAME") or "Unknown")
        parts = _split_census_name(name)
        city_name = parts[1] if len(parts) >= 3 else (parts[0] if parts else "Unknown")
        state_name = parts[-1] if parts else "Unknown"

        return RawDemographics(
            area_id=tract_id,
            name=name,
            city_name=city_name,
            state=state_name,
            median_household_income=float(values["median_household_income"]),
            total_population=float(values["total_population"]),
            average_home_value=float(values["median_home_value"]),
            home_ownership_rate=ownership_rate,
            provider=self.name,
        )

    def resolve(self, coordinate: Coordinate) -> RawDemographics:
        tract_id = self.resolve_tract_id(coordinate)
        logger.info(f"Resolved {coordinate} to US census tract {tract_id}")
        return self.fetch_statistics(tract_id)


class CanadianCensusProvider(DemographicsProvider):
    """Toronto tract tables for resolution, Statistics Canada census profile for statistics."""

    name = "statcan"
    province = "Ontario"

    def __init__(
        self,
        observation_fetch: Callable[[str, str], Optional[float]] = None,
        name_fetch: Callable[[str], Optional[str]] = None,
        postal_lookup: Callable[[Coordinate], Optional[str]] = None,
    ):
        self.observation_fetch = observation_fetch or data_sources.fetch_statcan_observation
        self.name_fetch = name_fetch or data_sources.fetch_statcan_geography_name
        self.postal_lookup = postal_lookup or data_sources.reverse_geocode_postal_code

    def resolve_tract(self, coordinate: Coordinate) -> TractMatch:
        tract = toronto_tracts.find_census_tract(coordinate)
        if tract is not None:
            logger.info(f"Found census tract by coordinate: {tract.tract_id} - {tract.name}")
            return tract

        try:
            postal_code = self.postal_lookup(coordinate)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Reverse geocoding failed for {coordinate}: {e}")
            postal_code = None

        if postal_code:
            tract = toronto_tracts.tract_for_postal_code(postal_code)
            if tract is not None:
                logger.info(f"Found census tract by postal code {postal_code}: {tract.tract_id}")
                return tract

        logger.warning(f"Using default census tract for {coordinate}")
        return toronto_tracts.DEFAULT_TRACT

    def _fetch_characteristics(self, tract_id: str) -> Dict[str, float]:
        values: Dict[str, float] = {}
        for code in STATCAN_CHARACTERISTICS:
            try:
                value = self.observation_fetch(tract_id, code)
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.warning(f"Failed to fetch characteristic {code} for {tract_id}: {e}")
                continue
            if value is not None:
                values[code] = value
        return values

    def _fetch_name(self, tract: TractMatch) -> str:
        # Unlisted tract -> generic Toronto label; failed request -> unknown
        try:
            name = self.name_fetch(tract.tract_id)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Failed to fetch geography name for {tract.tract_id}: {e}")
            return UNKNOWN_AREA_NAME
        return name or DEFAULT_TRACT_NAME

    @staticmethod
    def extract_city(name: str) -> str:
        # Typical StatCan name: "Census Tract 5350001.00, Toronto, Ontario"
        parts = [part.strip() for part in name.split(",")]
        if len(parts) > 1 and parts[1]:
            return parts[1]
        return "Toronto"

    def fetch_statistics(self, tract: TractMatch) -> RawDemographics:
        tract_id = tract.tract_id
        observed = self._fetch_characteristics(tract_id)
        estimated: List[str] = []

        income = observed.get("906")
        if income is None:
            income = toronto_tracts.estimated_income(tract_id)
            estimated.append("median_household_income")

        population = observed.get("1")
        if population is None:
            population = toronto_tracts.DEFAULT_POPULATION_ESTIMATE
            estimated.append("total_population")

        home_value = observed.get("1875")
        if home_value is None:
            home_value = toronto_tracts.estimated_home_value(tract_id)
            estimated.append("average_home_value")

        ownership_pct = observed.get("83")
        if ownership_pct is None:
            ownership_pct = toronto_tracts.DEFAULT_OWNERSHIP_PCT_ESTIMATE
            estimated.append("home_ownership_rate")

        if estimated:
            logger.warning(f"Tract {tract_id}: using regional estimates for {estimated}")

        name = self._fetch_name(tract)

        logger.info(
            f"StatCan results for {tract_id}: income=${income:,.0f} "
            f"home_value=${home_value:,.0f} population={population:,.0f}"
        )

        return RawDemographics(
            area_id=tract_id,
            name=name,
            city_name=self.extract_city(name),
            state=self.province,
            median_household_income=float(income),
            total_population=float(population),
            average_home_value=float(home_value),
            home_ownership_rate=float(ownership_pct) / 100.0,
            provider=self.name,
            estimated_fields=estimated,
        )

    def resolve(self, coordinate: Coordinate) -> RawDemographics:
        return self.fetch_statistics(self.resolve_tract(coordinate))


class GeocodingCensusAdapter:
    """
    Entry point used by the data service: picks the provider for a
    coordinate and returns its demographics.
    """

    def __init__(
        self,
        us_provider: Optional[DemographicsProvider] = None,
        canadian_provider: Optional[DemographicsProvider] = None,
    ):
        self.us_provider = us_provider or USCensusProvider()
        self.canadian_provider = canadian_provider or CanadianCensusProvider()

    def provider_for(self, coordinate: Coordinate) -> DemographicsProvider:
        if is_canadian_coordinate(coordinate):
            return self.canadian_provider
        return self.us_provider

    def resolve(self, coordinate: Coordinate) -> RawDemographics:
        provider = self.provider_for(coordinate)
        logger.info(f"Routing {coordinate} to {provider.name} provider")
        return provider.resolve(coordinate)


def postal_code_to_coordinate(postal_code: str) -> Coordinate:
    """
    Geocode a Canadian postal code.

    Raises:
        ResolutionError: If the postal code cannot be geocoded
    """
    try:
        return data_sources.geocode_postal_code(postal_code)
    except (requests.exceptions.RequestException, ValueError) as e:
        raise ResolutionError(f"Could not geocode postal code {postal_code!r}: {e}") from e
