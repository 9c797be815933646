"""Tests for the provider chain, HTTP helpers and TimedCache."""

from __future__ import annotations

from unittest.mock import MagicMock
from urllib.parse import unquote

import pytest
import requests

from conftest import FakeResponse, FakeSession
from sources import (
    PROXY_URL,
    Source,
    SourceError,
    SourcesExhaustedError,
    fetch_json,
    fetch_text,
    first_success,
    proxied,
)
from ttl_cache import TimedCache


class TestSource:
    def test_success(self):
        result = Source("a", lambda: 42).attempt()
        assert result.ok
        assert result.value == 42
        assert result.source == "a"

    @pytest.mark.parametrize("exc", [
        requests.ConnectionError("down"),
        requests.HTTPError("502"),
        SourceError("bad payload"),
        ValueError("not a number"),
    ])
    def test_known_failures_become_failed_attempts(self, exc):
        result = Source("a", MagicMock(side_effect=exc)).attempt()
        assert not result.ok
        assert result.value is None
        assert type(exc).__name__ in result.error

    def test_unexpected_errors_propagate(self):
        with pytest.raises(KeyError):
            Source("a", MagicMock(side_effect=KeyError("bug"))).attempt()


class TestFirstSuccess:
    def test_stops_at_first_success(self):
        calls = []

        def make(name, ok):
            def fetch():
                calls.append(name)
                if not ok:
                    raise SourceError(name)
                return name
            return Source(name, fetch)

        result = first_success([make("1", False), make("2", True), make("3", True)])
        assert result.value == "2"
        assert calls == ["1", "2"]

    def test_exhaustion_reports_every_attempt(self):
        sources = [Source(str(i), MagicMock(side_effect=SourceError("nope"))) for i in range(3)]
        with pytest.raises(SourcesExhaustedError) as info:
            first_success(sources)
        assert [a.source for a in info.value.attempts] == ["0", "1", "2"]
        assert "All 3 sources failed" in str(info.value)

    def test_empty_chain_is_exhausted(self):
        with pytest.raises(SourcesExhaustedError):
            first_success([])


class TestHttpHelpers:
    def test_proxied_encodes_target(self):
        url = "http://api.open-notify.org/iss-now.json?x=1&y=2"
        wrapped = proxied(url)
        assert wrapped.startswith(PROXY_URL)
        encoded = wrapped[len(PROXY_URL):]
        assert "&" not in encoded and "/" not in encoded
        assert unquote(encoded) == url

    def test_fetch_text_raises_on_http_error(self):
        session = FakeSession({"u": FakeResponse(status=500)})
        with pytest.raises(requests.HTTPError):
            fetch_text("u", session)

    def test_fetch_json_rejects_non_json(self):
        session = FakeSession({"u": FakeResponse(text="<html>")})
        with pytest.raises(SourceError):
            fetch_json("u", session)

    def test_timeout_is_passed(self):
        session = MagicMock()
        session.get.return_value = FakeResponse(text="ok")
        assert fetch_text("u", session, timeout=3.5) == "ok"
        assert session.get.call_args.kwargs["timeout"] == 3.5


class TestTimedCache:
    def test_empty(self, clock):
        cache = TimedCache(5, clock=clock)
        assert cache.get() is None
        assert cache.age() is None
        assert not cache.fresh

    def test_expires_after_ttl(self, clock):
        cache = TimedCache(5, clock=clock)
        cache.set("v")
        clock.advance(5)
        assert cache.get() == "v"
        clock.advance(0.1)
        assert cache.get() is None

    def test_clear(self, clock):
        cache = TimedCache(5, clock=clock)
        cache.set("v")
        cache.clear()
        assert cache.get() is None

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            TimedCache(-1)
