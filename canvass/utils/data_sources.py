"""
D2D Neighborhood Atlas - Data Source Utilities
Helper functions for the geocoding and census APIs, with rate limiting

All calls are read-only GETs with explicit timeouts. Functions raise
``requests`` exceptions on transport/HTTP failures; callers decide whether
to degrade or surface them.
"""

import threading
import time
from functools import wraps
from typing import Any, Dict, List, Optional

import pandas as pd
import requests

from canvass.schemas.neighborhood import Coordinate
from canvass.utils.logging import get_logger
from config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class RateLimiter:
    """Simple rate limiter for API requests"""

    def __init__(self, calls_per_minute: int):
        self.calls_per_minute = calls_per_minute
        self.min_interval = 60.0 / calls_per_minute
        self.last_call = 0
        self._lock = threading.Lock()

    def __call__(self, func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            with self._lock:
                elapsed = time.time() - self.last_call
                if elapsed < self.min_interval:
                    time.sleep(self.min_interval - elapsed)
                self.last_call = time.time()
            return func(*args, **kwargs)
        return wrapper


# Rate limiters for different APIs
census_limiter = RateLimiter(settings.CENSUS_API_RATE_LIMIT)
statcan_limiter = RateLimiter(settings.STATCAN_API_RATE_LIMIT)
geocoder_limiter = RateLimiter(settings.GEOCODER_RATE_LIMIT)


@census_limiter
def fetch_fcc_block(coordinate: Coordinate) -> Dict[str, Any]:
    """
    Look up the census block containing a coordinate (FCC Census Block API).

    Args:
        coordinate: Point to resolve

    Returns:
        Parsed JSON payload (``Block.FIPS`` holds the 15-digit block FIPS)
    """
    params = {
        "latitude": coordinate.latitude,
        "longitude": coordinate.longitude,
        "format": "json",
    }

    logger.info(f"Fetching FCC census block for {coordinate}")

    try:
        response = requests.get(
            settings.FCC_BLOCK_API_URL, params=params, timeout=settings.HTTP_TIMEOUT_SECONDS
        )
        response.raise_for_status()
        return response.json()

    except requests.exceptions.RequestException as e:
        logger.error(f"FCC block API request failed: {e}")
        raise


@census_limiter
def fetch_census_data(
    dataset: str,
    variables: List[str],
    geography: str,
    within: str,
    year: Optional[int] = None,
    **kwargs
) -> pd.DataFrame:
    """
    Fetch data from Census API with rate limiting.

    Args:
        dataset: Dataset name (e.g., 'acs/acs5')
        variables: List of variable codes (e.g., ['B19013_001E'])
        geography: Geography level (e.g., 'tract:401200')
        within: Enclosing geography (e.g., 'state:06 county:075')
        year: Data year (default: settings.ACS_YEAR)
        **kwargs: Additional parameters for API

    Returns:
        DataFrame with census data, one row per returned geography
    """
    year = year or settings.ACS_YEAR

    url = f"{settings.CENSUS_API_BASE_URL}/{year}/{dataset}"

    params = {
        "get": ",".join(["NAME"] + variables),
        "for": geography,
        "in": within,
    }
    if settings.CENSUS_API_KEY:
        params["key"] = settings.CENSUS_API_KEY
    params.update(kwargs)

    logger.info(f"Fetching Census data: {dataset} ({year}), {geography} in {within}")

    try:
        response = requests.get(url, params=params, timeout=settings.HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()

        data = response.json()

        if not data or len(data) < 2:
            logger.warning(f"No data returned from Census API: {url}")
            return pd.DataFrame()

        # First row is headers
        df = pd.DataFrame(data[1:], columns=data[0])

        logger.info(f"Fetched {len(df)} records from Census API")
        return df

    except requests.exceptions.RequestException as e:
        logger.error(f"Census API request failed: {e}")
        raise


def _statcan_url(geo_id: str, characteristic: str) -> str:
    # SDMX key: A5.{GEO}.{GENDER}.{CHARACTERISTIC}.{STATISTIC}
    return (
        f"{settings.STATCAN_API_BASE_URL}/data/STC_CP,DF_CT,1.0/"
        f"A5.{geo_id}.1.{characteristic}.1"
    )


def _json_object(response: requests.Response, source: str) -> Dict[str, Any]:
    """Parse a JSON response that must be an object; raises ValueError otherwise."""
    payload = response.json()
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected {type(payload).__name__} payload from {source}")
    return payload


@statcan_limiter
def fetch_statcan_observation(geo_id: str, characteristic: str) -> Optional[float]:
    """
    Fetch one census profile characteristic for a Canadian census tract.

    Args:
        geo_id: Census tract identifier (e.g., '5350001.00')
        characteristic: Census profile characteristic code (e.g., '906')

    Returns:
        First observation value, or None when the payload has no observations

    Raises:
        ValueError: If the response body is not a JSON object
    """
    response = requests.get(
        _statcan_url(geo_id, characteristic),
        params={"format": "json"},
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    payload = _json_object(response, f"StatCan characteristic {characteristic} for {geo_id}")

    data_sets = payload.get("dataSets")
    if not isinstance(data_sets, list) or not data_sets or not isinstance(data_sets[0], dict):
        return None
    observations = data_sets[0].get("observations")
    if not isinstance(observations, dict):
        return None
    for observation in observations.values():
        if isinstance(observation, list) and observation and isinstance(observation[0], (int, float, str)):
            return float(observation[0])
    return None


@statcan_limiter
def fetch_statcan_geography_name(geo_id: str) -> Optional[str]:
    """
    Read the display name of a census tract from the SDMX structure block.

    Returns:
        Geography name, or None when the structure does not list ``geo_id``

    Raises:
        ValueError: If the response body is not a JSON object
    """
    response = requests.get(
        _statcan_url(geo_id, "1"),
        params={"format": "json"},
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    payload = _json_object(response, f"StatCan geography {geo_id}")

    structure = payload.get("structure")
    dimensions = structure.get("dimensions") if isinstance(structure, dict) else None
    if not isinstance(dimensions, dict) or not isinstance(dimensions.get("observation"), list):
        return None
    for dimension in dimensions["observation"]:
        if not isinstance(dimension, dict) or dimension.get("id") != "GEO":
            continue
        values = dimension.get("values")
        for value in values if isinstance(values, list) else []:
            if isinstance(value, dict) and value.get("id") == geo_id and value.get("name"):
                return str(value["name"])
    return None


@geocoder_limiter
def reverse_geocode_postal_code(coordinate: Coordinate) -> Optional[str]:
    """
    Reverse-geocode a coordinate to a Canadian postal code (geocoder.ca).

    Returns:
        Postal code without spaces, or None if the service has no match
    """
    params = {
        "latt": coordinate.latitude,
        "longt": coordinate.longitude,
        "reverse": 1,
        "json": 1,
    }
    response = requests.get(
        f"{settings.GEOCODER_CA_URL}/", params=params, timeout=settings.HTTP_TIMEOUT_SECONDS
    )
    response.raise_for_status()
    payload = _json_object(response, f"geocoder.ca reverse lookup for {coordinate}")

    postal = payload.get("postal")
    if not postal or not isinstance(postal, str):
        return None
    return postal.replace(" ", "").upper()


@geocoder_limiter
def geocode_postal_code(postal_code: str) -> Coordinate:
    """
    Convert a Canadian postal code to a coordinate (geocoder.ca).

    Raises:
        ValueError: If the postal code is empty or the response has no usable coordinates
        requests.exceptions.RequestException: On transport/HTTP failure
    """
    cleaned = postal_code.replace(" ", "").upper()
    if not cleaned:
        raise ValueError("Postal code is empty")

    response = requests.get(
        f"{settings.GEOCODER_CA_URL}/",
        params={"locate": cleaned, "json": 1},
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    payload = response.json()

    try:
        return Coordinate(latitude=float(payload["latt"]), longitude=float(payload["longt"]))
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"No coordinates returned for postal code {cleaned}") from e
