"""
D2D Neighborhood Atlas - Ranking
Top-N recommendations and nearest-neighborhood lookup over the cache
"""

from typing import List, Optional

import numpy as np

from canvass.schemas.neighborhood import Coordinate, GeographicArea
from canvass.storage.cache_store import NeighborhoodCacheStore
from canvass.utils.geo import haversine_distances
from canvass.utils.logging import get_logger
from config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class RankingService:
    """Read-only queries over cached, scored areas."""

    def __init__(self, store: NeighborhoodCacheStore):
        self.store = store

    def top_n(self, limit: Optional[int] = None) -> List[GeographicArea]:
        """
        Highest-scoring cached areas.

        Args:
            limit: Maximum number to return (default: settings.DEFAULT_TOP_N).
                Zero or negative returns an empty list.

        Returns:
            Areas ordered by score descending; ties keep insertion order
        """
        limit = settings.DEFAULT_TOP_N if limit is None else limit
        if limit <= 0:
            return []
        return self.store.top_by_score(limit)

    def nearest(self, coordinate: Coordinate) -> Optional[GeographicArea]:
        """
        Cached area whose centre is closest to ``coordinate`` by great-circle
        distance. Expired areas are included. None when the cache is empty.
        """
        areas = self.store.all_areas()
        if not areas:
            return None

        distances = haversine_distances(
            coordinate,
            [a.center_latitude for a in areas],
            [a.center_longitude for a in areas],
        )
        # argmin returns the first minimum, so ties go to the earliest record
        best = areas[int(np.argmin(distances))]
        logger.debug(f"Nearest neighborhood to {coordinate}: {best.area_id} ({distances.min():,.0f} m)")
        return best
