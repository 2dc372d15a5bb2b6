import pytest
from sqlalchemy import select

import config.database as database
from config.database import LeadRecord, NeighborhoodRecord, get_db


def _record(**fields):
    values = {"area_id": "t1", "center_latitude": 1.0, "center_longitude": 2.0}
    values.update(fields)
    return NeighborhoodRecord(**values)


def test_get_db_commits_on_success(session_factory, clock):
    with get_db(session_factory) as db:
        db.add(_record(last_updated=clock.now))

    with get_db(session_factory) as db:
        assert db.execute(select(NeighborhoodRecord)).scalars().one().area_id == "t1"


def test_get_db_rolls_back_on_error(session_factory, clock):
    with pytest.raises(RuntimeError):
        with get_db(session_factory) as db:
            db.add(_record(last_updated=clock.now))
            db.flush()
            raise RuntimeError("boom")

    with get_db(session_factory) as db:
        assert db.execute(select(NeighborhoodRecord)).scalars().all() == []


def test_lead_defaults_to_not_contacted(session_factory):
    with get_db(session_factory) as db:
        lead = LeadRecord(latitude=43.0, longitude=-79.0)
        db.add(lead)
        db.flush()
        assert lead.status == "not_contacted"
        assert lead.neighborhood_id is None


def test_connection_check(session_factory):
    assert database.test_connection(session_factory) is True


def test_connection_check_failure():
    def broken_factory():
        raise RuntimeError("no database")

    assert database.test_connection(broken_factory) is False


def test_in_memory_engine_shares_one_connection():
    engine = database.create_db_engine("sqlite://")
    database.init_db(engine)
    factory = database.make_session_factory(engine)

    with get_db(factory) as db:
        db.add(LeadRecord(latitude=1.0, longitude=1.0))
    with get_db(factory) as db:
        assert len(db.execute(select(LeadRecord)).scalars().all()) == 1

    engine.dispose()
