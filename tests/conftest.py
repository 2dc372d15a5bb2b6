"""
Pytest configuration and shared fixtures for D2D Neighborhood Atlas tests.
"""

from datetime import datetime, timedelta
from typing import Optional

import pytest

from canvass.processing.ranking import RankingService
from canvass.processing.scoring import NeighborhoodScoreEngine
from canvass.schemas.neighborhood import Coordinate, GeographicArea, RawDemographics
from canvass.services.neighborhood_service import NeighborhoodDataService
from canvass.storage.cache_store import NeighborhoodCacheStore
from config.database import create_db_engine, init_db, make_session_factory


FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0)


class FixedClock:
    """Mutable stand-in for utc_now()"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_demographics(area_id: str = "06075012345", **overrides) -> RawDemographics:
    values = {
        "area_id": area_id,
        "name": "Census Tract 123.45, San Francisco County, California",
        "city_name": "San Francisco County",
        "state": "California",
        "median_household_income": 95000.0,
        "total_population": 4500.0,
        "average_home_value": 450000.0,
        "home_ownership_rate": 0.62,
    }
    values.update(overrides)
    return RawDemographics(**values)


class FakeAdapter:
    """Records every resolve() call; returns canned demographics or raises."""

    def __init__(self, demographics: Optional[RawDemographics] = None, error: Optional[Exception] = None):
        self.calls = []
        self.demographics = demographics
        self.error = error

    def resolve(self, coordinate: Coordinate) -> RawDemographics:
        self.calls.append(coordinate)
        if self.error is not None:
            raise self.error
        if self.demographics is not None:
            return self.demographics
        return make_demographics(area_id=f"tract-{coordinate.latitude:.3f}-{coordinate.longitude:.3f}")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def store(session_factory, clock) -> NeighborhoodCacheStore:
    return NeighborhoodCacheStore(
        session_factory=session_factory,
        expiration_days=30,
        tolerance_degrees=0.01,
        clock=clock,
    )


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def service(store, fake_adapter) -> NeighborhoodDataService:
    return NeighborhoodDataService(store, adapter=fake_adapter)


@pytest.fixture
def scorer(store) -> NeighborhoodScoreEngine:
    return NeighborhoodScoreEngine(store)


@pytest.fixture
def ranking(store) -> RankingService:
    return RankingService(store)


@pytest.fixture
def add_area(store):
    """Insert a GeographicArea with the given centre and score; returns it."""

    def _add(latitude: float, longitude: float, score: float = 0.0, **fields) -> GeographicArea:
        area = GeographicArea(
            area_id=fields.pop("area_id", f"area-{latitude}-{longitude}"),
            center_latitude=latitude,
            center_longitude=longitude,
            score=score,
            **fields,
        )
        return store.upsert(area)

    return _add
