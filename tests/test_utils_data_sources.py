import pandas as pd
import pytest
import requests

import canvass.utils.data_sources as ds
from canvass.schemas.neighborhood import Coordinate


class DummyResponse:
    def __init__(self, *, status_code=200, json_data=None):
        self.status_code = status_code
        self._json_data = json_data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._json_data


def _capture_get(monkeypatch, response):
    captured = {}

    def fake_get(url, params=None, timeout=None):
        captured.update(url=url, params=params, timeout=timeout)
        return response

    monkeypatch.setattr(ds.requests, "get", fake_get)
    return captured


def test_rate_limiter_sleeps_when_called_too_fast(monkeypatch):
    limiter = ds.RateLimiter(calls_per_minute=60)  # 1 call/sec
    calls = []
    sleeps = []

    def target():
        calls.append("ok")
        return "done"

    times = iter([100.0, 100.0, 100.1, 100.1])
    monkeypatch.setattr(ds.time, "time", lambda: next(times))
    monkeypatch.setattr(ds.time, "sleep", lambda s: sleeps.append(s))

    wrapped = limiter(target)
    wrapped()
    wrapped()

    assert calls == ["ok", "ok"]
    assert sleeps and sleeps[0] == pytest.approx(0.9)


def test_fetch_fcc_block_success(monkeypatch):
    payload = {"Block": {"FIPS": "060750123451000"}, "status": "OK"}
    captured = _capture_get(monkeypatch, DummyResponse(json_data=payload))

    result = ds.fetch_fcc_block.__wrapped__(Coordinate.of(37.77, -122.41))

    assert result["Block"]["FIPS"] == "060750123451000"
    assert captured["params"]["latitude"] == 37.77
    assert captured["params"]["format"] == "json"
    assert captured["timeout"] == ds.settings.HTTP_TIMEOUT_SECONDS


def test_fetch_fcc_block_http_error(monkeypatch):
    _capture_get(monkeypatch, DummyResponse(status_code=503))

    with pytest.raises(requests.exceptions.HTTPError):
        ds.fetch_fcc_block.__wrapped__(Coordinate.of(37.77, -122.41))


def test_fetch_census_data_success(monkeypatch):
    json_payload = [
        ["NAME", "B19013_001E", "state", "county", "tract"],
        ["Census Tract 123.45; San Francisco County; California", "95000", "06", "075", "012345"],
    ]
    monkeypatch.setattr(ds.settings, "CENSUS_API_KEY", "secret", raising=False)
    captured = _capture_get(monkeypatch, DummyResponse(json_data=json_payload))

    df = ds.fetch_census_data.__wrapped__(
        dataset="acs/acs5",
        variables=["B19013_001E"],
        geography="tract:012345",
        within="state:06 county:075",
        year=2021,
    )

    assert isinstance(df, pd.DataFrame)
    assert df["B19013_001E"].tolist() == ["95000"]
    assert captured["url"].endswith("/2021/acs/acs5")
    assert captured["params"]["get"] == "NAME,B19013_001E"
    assert captured["params"]["in"] == "state:06 county:075"
    assert captured["params"]["key"] == "secret"


def test_fetch_census_data_empty(monkeypatch):
    monkeypatch.setattr(ds.settings, "CENSUS_API_KEY", None, raising=False)
    captured = _capture_get(monkeypatch, DummyResponse(json_data=[["NAME"]]))

    df = ds.fetch_census_data.__wrapped__(
        dataset="acs/acs5", variables=["B19013_001E"], geography="tract:1", within="state:06 county:075"
    )

    assert df.empty
    assert "key" not in captured["params"]


def test_fetch_statcan_observation_reads_first_value(monkeypatch):
    payload = {"dataSets": [{"observations": {"0:0:0:0:0": [98000.0, 0]}}]}
    captured = _capture_get(monkeypatch, DummyResponse(json_data=payload))

    value = ds.fetch_statcan_observation.__wrapped__("5350001.00", "906")

    assert value == 98000.0
    assert "A5.5350001.00.1.906.1" in captured["url"]


def test_fetch_statcan_observation_missing(monkeypatch):
    _capture_get(monkeypatch, DummyResponse(json_data={"dataSets": []}))

    assert ds.fetch_statcan_observation.__wrapped__("5350001.00", "906") is None


def test_fetch_statcan_geography_name(monkeypatch):
    payload = {
        "structure": {
            "dimensions": {
                "observation": [
                    {"id": "FREQ", "values": [{"id": "A5", "name": "Census"}]},
                    {
                        "id": "GEO",
                        "values": [{"id": "5350001.00", "name": "5350001.00, Toronto, Ontario"}],
                    },
                ]
            }
        }
    }
    _capture_get(monkeypatch, DummyResponse(json_data=payload))

    assert ds.fetch_statcan_geography_name.__wrapped__("5350001.00") == "5350001.00, Toronto, Ontario"
    assert ds.fetch_statcan_geography_name.__wrapped__("5350002.00") is None


@pytest.mark.parametrize(
    "fetch,args",
    [
        (ds.fetch_statcan_observation, ("5350001.00", "906")),
        (ds.fetch_statcan_geography_name, ("5350001.00",)),
        (ds.reverse_geocode_postal_code, (Coordinate.of(43.65, -79.38),)),
    ],
)
def test_non_object_payload_raises_value_error(monkeypatch, fetch, args):
    _capture_get(monkeypatch, DummyResponse(json_data=["unexpected"]))

    with pytest.raises(ValueError, match="Unexpected list payload"):
        fetch.__wrapped__(*args)


@pytest.mark.parametrize(
    "payload",
    [
        {"dataSets": ["unexpected"]},
        {"dataSets": {"observations": {}}},
        {"dataSets": [{"observations": ["98000"]}]},
        {"dataSets": [{"observations": {"0:0:0:0:0": {"value": 98000}}}]},
    ],
)
def test_fetch_statcan_observation_malformed_shapes(monkeypatch, payload):
    _capture_get(monkeypatch, DummyResponse(json_data=payload))

    assert ds.fetch_statcan_observation.__wrapped__("5350001.00", "906") is None


def test_fetch_statcan_geography_name_malformed_structure(monkeypatch):
    payload = {"structure": {"dimensions": {"observation": ["GEO", {"id": "GEO", "values": "none"}]}}}
    _capture_get(monkeypatch, DummyResponse(json_data=payload))

    assert ds.fetch_statcan_geography_name.__wrapped__("5350001.00") is None


def test_reverse_geocode_postal_code(monkeypatch):
    captured = _capture_get(monkeypatch, DummyResponse(json_data={"postal": "m5h 2n2"}))

    assert ds.reverse_geocode_postal_code.__wrapped__(Coordinate.of(43.65, -79.38)) == "M5H2N2"
    assert captured["params"]["reverse"] == 1


def test_reverse_geocode_postal_code_no_match(monkeypatch):
    _capture_get(monkeypatch, DummyResponse(json_data={"error": {"code": "008"}}))

    assert ds.reverse_geocode_postal_code.__wrapped__(Coordinate.of(43.65, -79.38)) is None


def test_geocode_postal_code(monkeypatch):
    captured = _capture_get(monkeypatch, DummyResponse(json_data={"latt": "43.6487", "longt": "-79.3854"}))

    coordinate = ds.geocode_postal_code.__wrapped__("m5h 2n2")

    assert coordinate == Coordinate.of(43.6487, -79.3854)
    assert captured["params"]["locate"] == "M5H2N2"


def test_geocode_postal_code_rejects_bad_input(monkeypatch):
    _capture_get(monkeypatch, DummyResponse(json_data={"error": {"code": "008"}}))

    with pytest.raises(ValueError):
        ds.geocode_postal_code.__wrapped__("  ")
    with pytest.raises(ValueError):
        ds.geocode_postal_code.__wrapped__("ZZZ 999")
