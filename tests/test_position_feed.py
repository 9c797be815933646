"""Tests for the live position fallback chain."""

from __future__ import annotations

import pytest
import requests

from conftest import FakeResponse, FakeSession
from position_feed import (
    NOMINAL_ALTITUDE_KM,
    NOMINAL_VELOCITY_KMH,
    OPEN_NOTIFY_URL,
    WTIA_URL,
    LivePosition,
    PositionResolver,
    PositionUnavailableError,
    parse_open_notify,
    parse_wtia,
)
from sources import SourceError, SourcesExhaustedError, proxied
from ttl_cache import TimedCache

WTIA_PAYLOAD = {
    "name": "iss",
    "id": 25544,
    "latitude": -12.3456,
    "longitude": 123.4567,
    "altitude": 421.8,
    "velocity": 27581.2,
    "visibility": "daylight",
    "timestamp": 1716128524,
}

LEGACY_PAYLOAD = {
    "message": "success",
    "timestamp": 1716128530,
    "iss_position": {"latitude": "-12.5000", "longitude": "124.0000"},
}

LEGACY_URL = proxied(OPEN_NOTIFY_URL)


class TestParsers:
    def test_wtia(self):
        pos = parse_wtia(WTIA_PAYLOAD)
        assert pos == LivePosition(-12.3456, 123.4567, 1716128524, 421.8, 27581.2,
                                   "daylight", "wheretheiss")

    def test_wtia_missing_telemetry_uses_nominal(self):
        pos = parse_wtia({"latitude": 1.0, "longitude": 2.0, "altitude": None})
        assert pos.altitude_km == NOMINAL_ALTITUDE_KM
        assert pos.velocity_kmh == NOMINAL_VELOCITY_KMH
        assert pos.timestamp == 0

    @pytest.mark.parametrize("lat, lon", [
        (float("nan"), 2.0),
        (1.0, float("inf")),
        ("1.0", 2.0),
        (None, 2.0),
        (True, 2.0),
    ])
    def test_wtia_rejects_bad_coordinates(self, lat, lon):
        with pytest.raises(SourceError):
            parse_wtia({"latitude": lat, "longitude": lon})

    def test_wtia_rejects_non_object(self):
        with pytest.raises(SourceError):
            parse_wtia([1, 2])

    def test_open_notify_backfills(self):
        pos = parse_open_notify(LEGACY_PAYLOAD)
        assert pos.latitude == -12.5
        assert pos.longitude == 124.0
        assert pos.altitude_km == 417.5
        assert pos.velocity_kmh == 27600.0
        assert pos.visibility == "orbiting"
        assert pos.timestamp == 1716128530

    @pytest.mark.parametrize("payload", [
        {"message": "success"},
        {"iss_position": "12,34"},
        {"iss_position": {"latitude": "north", "longitude": "1"}},
        {"iss_position": {"latitude": "NaN", "longitude": "1"}},
    ])
    def test_open_notify_rejects_invalid(self, payload):
        with pytest.raises(SourceError):
            parse_open_notify(payload)


class TestPositionResolver:
    def test_primary(self):
        session = FakeSession({WTIA_URL: FakeResponse(json_data=WTIA_PAYLOAD)})
        pos = PositionResolver(session=session).acquire()
        assert pos.source == "wheretheiss"
        assert session.calls == [WTIA_URL]

    def test_primary_down_uses_legacy_via_proxy(self):
        session = FakeSession({
            WTIA_URL: FakeResponse(status=503),
            LEGACY_URL: FakeResponse(json_data=LEGACY_PAYLOAD),
        })
        pos = PositionResolver(session=session).acquire()
        assert pos.source == "open-notify+proxy"
        assert pos.altitude_km == NOMINAL_ALTITUDE_KM
        assert session.calls == [WTIA_URL, LEGACY_URL]

    def test_invalid_primary_payload_treated_as_failure(self):
        bad = dict(WTIA_PAYLOAD, latitude=float("nan"))
        session = FakeSession({
            WTIA_URL: FakeResponse(json_data=bad),
            LEGACY_URL: FakeResponse(json_data=LEGACY_PAYLOAD),
        })
        assert PositionResolver(session=session).acquire().source == "open-notify+proxy"

    def test_all_fail_raises_typed_error(self):
        session = FakeSession({
            WTIA_URL: requests.Timeout("slow"),
            LEGACY_URL: FakeResponse(text="<html>proxy error</html>"),
        })
        with pytest.raises(PositionUnavailableError) as info:
            PositionResolver(session=session).acquire()
        assert isinstance(info.value, SourcesExhaustedError)
        assert [a.source for a in info.value.attempts] == ["wheretheiss", "open-notify+proxy"]

    def test_cached_for_five_seconds(self, clock):
        session = FakeSession({WTIA_URL: FakeResponse(json_data=WTIA_PAYLOAD)})
        resolver = PositionResolver(session=session, cache=TimedCache(5, clock=clock))
        first = resolver.acquire()
        clock.advance(4)
        assert resolver.acquire() is first
        clock.advance(2)
        resolver.acquire()
        assert len(session.calls) == 2

    def test_failure_not_cached(self, clock):
        session = FakeSession()
        resolver = PositionResolver(session=session, cache=TimedCache(5, clock=clock))
        with pytest.raises(PositionUnavailableError):
            resolver.acquire()
        session.routes[WTIA_URL] = FakeResponse(json_data=WTIA_PAYLOAD)
        assert resolver.acquire().source == "wheretheiss"
