import sys

import pytest

import canvass.run_recommendations as runner
from canvass.errors import ResolutionError
from canvass.schemas.neighborhood import Coordinate
from canvass.schemas.preferences import TargetProfile
from canvass.services.neighborhood_service import NeighborhoodDataService

from conftest import FakeAdapter


@pytest.fixture
def wired(monkeypatch, service, scorer, ranking):
    monkeypatch.setattr(runner, "init_db", lambda: None)
    monkeypatch.setattr(runner, "test_connection", lambda: True)
    monkeypatch.setattr(runner, "build_components", lambda: (service, scorer, ranking))
    return service


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["prog", *args])
    with pytest.raises(SystemExit) as exc:
        runner.main()
    return exc.value.code


def test_runner_scans_leads_and_scores(monkeypatch, wired, store, fake_adapter):
    store.add_lead(37.77, -122.41, status="converted")
    store.add_lead(40.71, -74.00, status="interested")

    code = _run(monkeypatch, "--profile", "SOLAR_PANELS", "--top-n", "3")

    assert code == 0
    assert len(fake_adapter.calls) == 2
    assert store.count() == 2
    assert all(area.score > 0 for area in store.all_areas())


def test_runner_skip_scan(monkeypatch, wired, store, fake_adapter):
    store.add_lead(37.77, -122.41)

    assert _run(monkeypatch, "--skip-scan") == 0
    assert fake_adapter.calls == []


def test_runner_looks_up_coordinate(monkeypatch, wired, store, fake_adapter):
    code = _run(monkeypatch, "--skip-scan", "--lat", "37.77", "--lon", "-122.41")

    assert code == 0
    assert fake_adapter.calls == [Coordinate.of(37.77, -122.41)]
    assert store.all_areas()[0].score > 0


def test_runner_rejects_lone_latitude(monkeypatch, wired, fake_adapter):
    assert _run(monkeypatch, "--skip-scan", "--lat", "37.77") == 2
    assert fake_adapter.calls == []


def test_runner_rejects_lone_longitude(monkeypatch, wired, fake_adapter):
    assert _run(monkeypatch, "--skip-scan", "--lon", "-122.41") == 2
    assert fake_adapter.calls == []


def test_runner_looks_up_postal_code(monkeypatch, wired, fake_adapter):
    monkeypatch.setattr(runner, "postal_code_to_coordinate", lambda code: Coordinate.of(43.65, -79.38))

    assert _run(monkeypatch, "--skip-scan", "--postal-code", "M5H 2N2") == 0
    assert fake_adapter.calls == [Coordinate.of(43.65, -79.38)]


def test_runner_fails_on_unresolvable_location(monkeypatch, wired, store, scorer, ranking):
    failing = NeighborhoodDataService(store, adapter=FakeAdapter(error=ResolutionError("no tract")))
    monkeypatch.setattr(runner, "build_components", lambda: (failing, scorer, ranking))

    assert _run(monkeypatch, "--skip-scan", "--lat", "37.77", "--lon", "-122.41") == 1


def test_runner_prereq_fail(monkeypatch):
    monkeypatch.setattr(runner, "init_db", lambda: None)
    monkeypatch.setattr(runner, "test_connection", lambda: False)

    assert _run(monkeypatch) == 1


def test_build_preferences():
    custom = runner.build_preferences("CUSTOM")
    roofing = runner.build_preferences("ROOFING")

    assert custom.profile is TargetProfile.CUSTOM
    assert roofing.profile is TargetProfile.ROOFING
    assert (roofing.income_min, roofing.income_max) == (60000.0, 100000.0)
