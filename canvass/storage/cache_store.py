"""
D2D Neighborhood Atlas - Neighborhood Cache Store
Persists one record per discovered area, keyed approximately by coordinate

Cache hits use a square bounding box of +/- ``tolerance_degrees`` around
the query point rather than a true radius. Adjacent cells can overlap, so
two nearby coordinates may both miss and produce separate records; that is
an accepted approximation. Expired records are never deleted, they are
simply ignored by ``lookup`` and refreshed in place by the data service.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Generator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from canvass.errors import PersistenceError
from canvass.schemas.neighborhood import Coordinate, GeographicArea, LeadStatus
from canvass.utils.datetime_utils import as_naive_utc, utc_now
from canvass.utils.geo import bounding_box
from canvass.utils.logging import get_logger
from config.database import LeadRecord, NeighborhoodRecord, get_db
from config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()

_AREA_FIELDS = (
    "area_id",
    "name",
    "city_name",
    "state",
    "center_latitude",
    "center_longitude",
    "median_household_income",
    "average_home_value",
    "population_density",
    "home_ownership_rate",
    "score",
    "user_notes",
)


def _to_area(record: NeighborhoodRecord) -> GeographicArea:
    area = GeographicArea(
        area_id=record.area_id,
        center_latitude=record.center_latitude,
        center_longitude=record.center_longitude,
    )
    for field_name in _AREA_FIELDS:
        setattr(area, field_name, getattr(record, field_name))
    area.last_updated = record.last_updated
    area.record_id = record.id
    return area


class NeighborhoodCacheStore:
    """
    SQLAlchemy-backed store for GeographicArea records and the leads that
    reference them.

    Args:
        session_factory: sessionmaker bound to the target database (default: config.database.SessionLocal)
        expiration_days: Age after which a record no longer counts as a cache hit
        tolerance_degrees: Half-width of the lookup bounding box
        clock: Returns "now" as naive UTC (injected for tests)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        expiration_days: Optional[int] = None,
        tolerance_degrees: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.expiration = timedelta(
            days=expiration_days if expiration_days is not None else settings.CACHE_EXPIRATION_DAYS
        )
        self.tolerance_degrees = (
            tolerance_degrees if tolerance_degrees is not None else settings.CACHE_TOLERANCE_DEGREES
        )
        self.clock = clock

    @contextmanager
    def _session(self, action: str) -> Generator[Session, None, None]:
        try:
            with get_db(self.session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def _box_query(self, coordinate: Coordinate):
        lat_min, lat_max, lon_min, lon_max = bounding_box(coordinate, self.tolerance_degrees)
        return select(NeighborhoodRecord).where(
            NeighborhoodRecord.center_latitude >= lat_min,
            NeighborhoodRecord.center_latitude <= lat_max,
            NeighborhoodRecord.center_longitude >= lon_min,
            NeighborhoodRecord.center_longitude <= lon_max,
        )

    def lookup(self, coordinate: Coordinate) -> Optional[GeographicArea]:
        """
        Fresh cached area covering ``coordinate``, or None.

        A record older than the expiration window is treated as absent.
        """
        cutoff = as_naive_utc(self.clock()) - self.expiration
        query = (
            self._box_query(coordinate)
            .where(NeighborhoodRecord.last_updated >= cutoff)
            .order_by(NeighborhoodRecord.last_updated.desc(), NeighborhoodRecord.id)
            .limit(1)
        )
        with self._session("look up cached neighborhood") as db:
            record = db.execute(query).scalars().first()
            return _to_area(record) if record is not None else None

    def lookup_any(self, coordinate: Coordinate) -> Optional[GeographicArea]:
        """Like ``lookup`` but also returns expired records (oldest id first)."""
        query = self._box_query(coordinate).order_by(NeighborhoodRecord.id).limit(1)
        with self._session("look up neighborhood") as db:
            record = db.execute(query).scalars().first()
            return _to_area(record) if record is not None else None

    def upsert(self, area: GeographicArea) -> GeographicArea:
        """
        Insert ``area`` or overwrite the record with its ``record_id``.

        Always refreshes ``last_updated``. Mutates and returns ``area`` with
        its record id and timestamp filled in.
        """
        now = as_naive_utc(self.clock())
        with self._session("save neighborhood") as db:
            record = db.get(NeighborhoodRecord, area.record_id) if area.record_id is not None else None
            if record is None:
                record = NeighborhoodRecord()
                db.add(record)
            for field_name in _AREA_FIELDS:
                setattr(record, field_name, getattr(area, field_name))
            record.last_updated = now
            db.flush()
            record_id = record.id

        area.record_id = record_id
        area.last_updated = now

        logger.debug(f"Saved neighborhood {area.area_id} (record {area.record_id})")
        return area

    def update_score(self, area: GeographicArea) -> None:
        """Write ``area.score`` to its record without touching ``last_updated``."""
        if area.record_id is None:
            raise PersistenceError(f"Neighborhood {area.area_id} has not been saved", score=area.score)
        with self._session("save neighborhood score") as db:
            record = db.get(NeighborhoodRecord, area.record_id)
            if record is None:
                raise PersistenceError(
                    f"Neighborhood record {area.record_id} no longer exists", score=area.score
                )
            record.score = area.score

    def get(self, record_id: int) -> Optional[GeographicArea]:
        with self._session("load neighborhood") as db:
            record = db.get(NeighborhoodRecord, record_id)
            return _to_area(record) if record is not None else None

    def all_areas(self) -> List[GeographicArea]:
        """Every cached area, expired or not, in insertion order."""
        with self._session("list neighborhoods") as db:
            records = db.execute(select(NeighborhoodRecord).order_by(NeighborhoodRecord.id)).scalars()
            return [_to_area(r) for r in records]

    def top_by_score(self, limit: int) -> List[GeographicArea]:
        """Highest-scoring areas; equal scores keep insertion order."""
        if limit <= 0:
            return []
        query = (
            select(NeighborhoodRecord)
            .order_by(NeighborhoodRecord.score.desc(), NeighborhoodRecord.id)
            .limit(limit)
        )
        with self._session("rank neighborhoods") as db:
            return [_to_area(r) for r in db.execute(query).scalars()]

    def count(self) -> int:
        with self._session("count neighborhoods") as db:
            return db.execute(select(func.count(NeighborhoodRecord.id))).scalar_one()

    # Leads

    def add_lead(
        self,
        latitude: float,
        longitude: float,
        status: str = LeadStatus.NOT_CONTACTED.value,
        name: Optional[str] = None,
        address: Optional[str] = None,
        neighborhood_id: Optional[int] = None,
    ) -> int:
        """Insert a lead (normally written by the host app). Returns its id."""
        with self._session("save lead") as db:
            lead = LeadRecord(
                latitude=latitude,
                longitude=longitude,
                status=LeadStatus.from_raw(status).value,
                name=name,
                address=address,
                neighborhood_id=neighborhood_id,
            )
            db.add(lead)
            db.flush()
            return lead.id

    def assign_lead(self, lead_id: int, record_id: int) -> None:
        with self._session("link lead to neighborhood") as db:
            lead = db.get(LeadRecord, lead_id)
            if lead is None:
                raise PersistenceError(f"Lead {lead_id} does not exist")
            lead.neighborhood_id = record_id

    def sample_leads(self, limit: int) -> List[Dict]:
        """First ``limit`` leads as plain dicts (id, latitude, longitude, status)."""
        query = select(LeadRecord).order_by(LeadRecord.id).limit(limit)
        with self._session("list leads") as db:
            return [
                {
                    "id": lead.id,
                    "latitude": lead.latitude,
                    "longitude": lead.longitude,
                    "status": lead.status,
                }
                for lead in db.execute(query).scalars()
            ]

    def lead_status_counts(self, record_id: int) -> Dict[str, int]:
        """Status -> count for leads that reference the given area record."""
        query = (
            select(LeadRecord.status, func.count(LeadRecord.id))
            .where(LeadRecord.neighborhood_id == record_id)
            .group_by(LeadRecord.status)
        )
        with self._session("count leads") as db:
            return {status: count for status, count in db.execute(query).all()}
