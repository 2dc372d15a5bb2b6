"""
Geographic helpers: great-circle distances and provider routing boxes.
"""

from typing import Sequence, Tuple

import numpy as np

from canvass.schemas.neighborhood import Coordinate
from config.settings import CANADA_BOUNDS

EARTH_RADIUS_M = 6371008.8  # mean Earth radius (IUGG)


def haversine_distances(
    origin: Coordinate, latitudes: Sequence[float], longitudes: Sequence[float]
) -> np.ndarray:
    """
    Great-circle distance in meters from ``origin`` to each (lat, lon) pair.

    Args:
        origin: Reference point
        latitudes: Target latitudes (degrees)
        longitudes: Target longitudes (degrees), same length as latitudes

    Returns:
        Array of distances in meters, in input order
    """
    lat1 = np.radians(origin.latitude)
    lon1 = np.radians(origin.longitude)
    lat2 = np.radians(np.asarray(latitudes, dtype=float))
    lon2 = np.radians(np.asarray(longitudes, dtype=float))

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))


def haversine_m(origin: Coordinate, target: Coordinate) -> float:
    """Great-circle distance in meters between two coordinates."""
    return float(haversine_distances(origin, [target.latitude], [target.longitude])[0])


def bounding_box(coordinate: Coordinate, tolerance: float) -> Tuple[float, float, float, float]:
    """(lat_min, lat_max, lon_min, lon_max) of the square cell centred on ``coordinate``."""
    return (
        coordinate.latitude - tolerance,
        coordinate.latitude + tolerance,
        coordinate.longitude - tolerance,
        coordinate.longitude + tolerance,
    )


def is_canadian_coordinate(coordinate: Coordinate) -> bool:
    """
    True when the coordinate falls in Canada's bounding box.

    The box overlaps the northern US (e.g. Detroit, Seattle); those points
    route to the Canadian provider, which degrades to regional estimates.
    """
    return (
        CANADA_BOUNDS["lat_min"] <= coordinate.latitude <= CANADA_BOUNDS["lat_max"]
        and CANADA_BOUNDS["lon_min"] <= coordinate.longitude <= CANADA_BOUNDS["lon_max"]
    )
