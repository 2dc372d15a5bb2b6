import pytest
from sqlalchemy.exc import OperationalError

from canvass.errors import PersistenceError
from canvass.schemas.neighborhood import Coordinate, GeographicArea
from canvass.storage.cache_store import NeighborhoodCacheStore


def test_upsert_inserts_and_sets_record_id(store, clock):
    area = GeographicArea(area_id="06075012345", center_latitude=37.77, center_longitude=-122.41)

    saved = store.upsert(area)

    assert saved is area
    assert area.record_id is not None
    assert area.last_updated == clock.now
    assert store.count() == 1


def test_upsert_overwrites_existing_record_and_refreshes_timestamp(store, clock, add_area):
    area = add_area(37.77, -122.41, median_household_income=50000.0)
    record_id = area.record_id

    clock.advance(days=5)
    area.median_household_income = 70000.0
    store.upsert(area)

    reloaded = store.get(record_id)
    assert store.count() == 1
    assert reloaded.median_household_income == 70000.0
    assert reloaded.last_updated == clock.now


def test_lookup_hits_within_bounding_box(store, add_area):
    add_area(37.7700, -122.4100, area_id="sf")

    hit = store.lookup(Coordinate.of(37.7790, -122.4010))
    assert hit is not None
    assert hit.area_id == "sf"


def test_lookup_misses_outside_bounding_box(store, add_area):
    add_area(37.7700, -122.4100, area_id="sf")

    assert store.lookup(Coordinate.of(37.7850, -122.4100)) is None
    assert store.lookup(Coordinate.of(37.7700, -122.3950)) is None


def test_lookup_ignores_expired_records_without_deleting(store, clock, add_area):
    add_area(37.77, -122.41, area_id="sf")

    clock.advance(days=31)

    assert store.lookup(Coordinate.of(37.77, -122.41)) is None
    assert store.count() == 1
    expired = store.lookup_any(Coordinate.of(37.77, -122.41))
    assert expired is not None
    assert expired.area_id == "sf"


def test_lookup_still_hits_on_day_30(store, clock, add_area):
    add_area(37.77, -122.41, area_id="sf")

    clock.advance(days=30)

    assert store.lookup(Coordinate.of(37.77, -122.41)) is not None


def test_configurable_tolerance(session_factory, clock, add_area):
    add_area(37.77, -122.41, area_id="sf")
    wide = NeighborhoodCacheStore(session_factory=session_factory, tolerance_degrees=0.05, clock=clock)

    assert wide.lookup(Coordinate.of(37.80, -122.41)) is not None


def test_update_score_requires_saved_area(store):
    area = GeographicArea(area_id="x", center_latitude=1.0, center_longitude=1.0, score=42.0)

    with pytest.raises(PersistenceError) as exc:
        store.update_score(area)

    assert exc.value.score == 42.0


def test_update_score_missing_record(store):
    area = GeographicArea(area_id="x", center_latitude=1.0, center_longitude=1.0, score=12.0, record_id=999)

    with pytest.raises(PersistenceError):
        store.update_score(area)


def test_top_by_score_orders_and_breaks_ties_by_insertion(store, add_area):
    add_area(1.0, 1.0, score=50.0, area_id="first-50")
    add_area(2.0, 2.0, score=80.0, area_id="80")
    add_area(3.0, 3.0, score=50.0, area_id="second-50")

    ranked = store.top_by_score(3)

    assert [a.area_id for a in ranked] == ["80", "first-50", "second-50"]
    assert store.top_by_score(0) == []


def test_lead_status_counts_and_assignment(store, add_area):
    area = add_area(37.77, -122.41)
    lead_a = store.add_lead(37.77, -122.41, status="Converted")
    lead_b = store.add_lead(37.77, -122.41, status="closed")
    store.add_lead(37.77, -122.41, status="interested", neighborhood_id=area.record_id)

    store.assign_lead(lead_a, area.record_id)
    store.assign_lead(lead_b, area.record_id)

    assert store.lead_status_counts(area.record_id) == {"converted": 2, "interested": 1}


def test_assign_unknown_lead_raises(store, add_area):
    area = add_area(37.77, -122.41)

    with pytest.raises(PersistenceError):
        store.assign_lead(12345, area.record_id)


def test_sample_leads_respects_limit(store):
    for i in range(5):
        store.add_lead(43.0 + i, -79.0, status="new")

    leads = store.sample_leads(3)

    assert [lead["latitude"] for lead in leads] == [43.0, 44.0, 45.0]
    assert all(lead["status"] == "not_contacted" for lead in leads)


def test_sqlalchemy_errors_become_persistence_errors(store, monkeypatch):
    def broken_factory():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "session_factory", broken_factory)

    with pytest.raises(PersistenceError, match="database is locked"):
        store.count()
