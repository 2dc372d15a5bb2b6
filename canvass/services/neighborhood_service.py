"""
D2D Neighborhood Atlas - Neighborhood Data Service
Cache-first access to area demographics

fetch_area:
1. Fresh cache hit -> return it, no network call
2. Miss -> resolve through the geocoding/census adapter, store, return
   (an expired record in the same cell is refreshed in place rather than
   duplicated)

Concurrent cold-cache fetches for the same cell are coalesced: the first
caller fetches, later callers wait and then read the stored record.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Generator, List, Optional, Tuple

from canvass.errors import DataFetchError, PersistenceError
from canvass.ingest.census_adapter import GeocodingCensusAdapter
from canvass.schemas.neighborhood import Coordinate, GeographicArea
from canvass.storage.cache_store import NeighborhoodCacheStore
from canvass.utils.datetime_utils import as_naive_utc
from canvass.utils.logging import get_logger

logger = get_logger(__name__)


class NeighborhoodDataService:
    """
    Orchestrates the adapter and the cache store.

    Args:
        store: Cache store holding GeographicArea records
        adapter: Coordinate -> demographics resolver (default: GeocodingCensusAdapter)
        clock: Returns "now" as naive UTC (default: the store's clock)
    """

    def __init__(
        self,
        store: NeighborhoodCacheStore,
        adapter: Optional[GeocodingCensusAdapter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.adapter = adapter or GeocodingCensusAdapter()
        self.clock = clock or store.clock
        self._inflight: Dict[Tuple[int, int], list] = {}
        self._inflight_guard = threading.Lock()

    def _cell_key(self, coordinate: Coordinate) -> Tuple[int, int]:
        tolerance = self.store.tolerance_degrees
        return (round(coordinate.latitude / tolerance), round(coordinate.longitude / tolerance))

    @contextmanager
    def _cell_lock(self, coordinate: Coordinate) -> Generator[None, None, None]:
        key = self._cell_key(coordinate)
        with self._inflight_guard:
            entry = self._inflight.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._inflight_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._inflight.pop(key, None)

    def fetch_area(self, coordinate: Coordinate) -> GeographicArea:
        """
        Return the cached area for ``coordinate``, fetching it on a miss.

        Raises:
            ResolutionError: If the coordinate maps to no area identifier
            DataFetchError: If statistics cannot be fetched or the cache cannot be
                read or written
        """
        cached = self._read_cache(self.store.lookup, coordinate)
        if cached is not None:
            logger.info(f"Using cached neighborhood data for {coordinate}")
            return cached

        with self._cell_lock(coordinate):
            # Another caller may have filled this cell while we waited
            cached = self._read_cache(self.store.lookup, coordinate)
            if cached is not None:
                logger.info(f"Using neighborhood data fetched concurrently for {coordinate}")
                return cached

            expired = self._read_cache(self.store.lookup_any, coordinate)
            if expired is not None:
                logger.info(f"Cached neighborhood {expired.area_id} expired, refreshing in place")
                return self._fetch_and_store(expired.coordinate, existing=expired)

            logger.info(f"Fetching new neighborhood data for {coordinate}")
            return self._fetch_and_store(coordinate)

    def refresh_if_stale(self, area: GeographicArea) -> GeographicArea:
        """
        Re-fetch ``area`` when it is older than the cache window.

        Returns:
            The refreshed area, or ``area`` unchanged if still fresh
        """
        if not area.is_stale(as_naive_utc(self.clock()), self.store.expiration):
            return area

        logger.info(f"Cache expired for {area.area_id}, refreshing neighborhood data")
        with self._cell_lock(area.coordinate):
            return self._fetch_and_store(area.coordinate, existing=area)

    def cached_areas(self) -> List[GeographicArea]:
        """All cached areas, highest score first."""
        return sorted(self.store.all_areas(), key=lambda a: a.score, reverse=True)

    def _read_cache(
        self, lookup: Callable[[Coordinate], Optional[GeographicArea]], coordinate: Coordinate
    ) -> Optional[GeographicArea]:
        try:
            return lookup(coordinate)
        except PersistenceError as e:
            raise DataFetchError(f"Could not read cached neighborhood for {coordinate}: {e}") from e

    def _fetch_and_store(
        self, coordinate: Coordinate, existing: Optional[GeographicArea] = None
    ) -> GeographicArea:
        data = self.adapter.resolve(coordinate)

        area = GeographicArea.from_demographics(coordinate, data)
        if existing is not None:
            area.record_id = existing.record_id
            area.user_notes = existing.user_notes

        try:
            self.store.upsert(area)
        except PersistenceError as e:
            raise DataFetchError(f"Could not store neighborhood {data.area_id}: {e}") from e

        logger.info(
            f"Stored neighborhood {area.name} ({area.area_id}): "
            f"income=${area.median_household_income:,.0f} "
            f"home_value=${area.average_home_value:,.0f} "
            f"population={area.population_density:,.0f} "
            f"ownership={area.home_ownership_rate:.1%}"
            + (f" estimated={data.estimated_fields}" if data.is_estimated else "")
        )
        return area
