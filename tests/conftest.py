"""Shared fixtures: reference element sets and an offline requests.Session."""

from __future__ import annotations

import pytest
import requests

from tle_cache import FALLBACK_TLE, MeanElementSet, static_elements

# Reference ISS element set (epoch 2024-05-19), the compiled-in fallback
REFERENCE_TLE = FALLBACK_TLE

# Older ISS element set (epoch 2023-09-16), used to tell sources apart
OLDER_TLE = (
    "1 25544U 98067A   23259.57580000  .00012022  00000-0  21844-3 0  9995",
    "2 25544  51.6416 220.9944 0004263 122.0101 312.2755 15.49541986415598",
)


def tle_text(lines, name="ISS (ZARYA)") -> str:
    return f"{name}\n{lines[0]}\n{lines[1]}\n"


class FakeResponse:
    def __init__(self, text: str = "", status: int = 200, json_data=None):
        self.text = text
        self.status_code = status
        self._json = json_data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Maps URLs to FakeResponses (or exceptions); records every request."""

    def __init__(self, routes: dict | None = None):
        self.routes = routes or {}
        self.calls: list[str] = []

    def get(self, url, timeout=None, headers=None):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(route, Exception):
            raise route
        return route


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def iss_elements() -> MeanElementSet:
    return static_elements()


@pytest.fixture
def older_elements() -> MeanElementSet:
    return MeanElementSet.parse(*OLDER_TLE, source="test")


@pytest.fixture
def epoch(iss_elements):
    return iss_elements.epoch


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
