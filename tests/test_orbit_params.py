"""Tests for orbital parameter derivation."""

from __future__ import annotations

import math
from unittest.mock import patch

import pytest

from orbit_params import EARTH_RADIUS_KM, MU_KM3_S2, OrbitalParameters, derive_parameters


class TestDeriveParameters:
    def test_reference_iss_elements(self, iss_elements):
        params = derive_parameters(iss_elements)
        assert isinstance(params, OrbitalParameters)
        assert params.inclination_deg == pytest.approx(51.6396, abs=1e-3)
        assert params.eccentricity == pytest.approx(0.00055, abs=1e-5)
        assert 92.0 < params.period_minutes < 93.0
        assert params.mean_motion_rev_per_day == pytest.approx(15.498, abs=0.01)

    def test_mean_motion_taken_from_element_set(self, iss_elements):
        # line 2 carries 15.49818898 rev/day
        params = derive_parameters(iss_elements)
        assert params.mean_motion_rev_per_day == pytest.approx(15.49818898, rel=1e-9)

    def test_apogee_above_perigee_at_iss_height(self, iss_elements):
        params = derive_parameters(iss_elements)
        assert 380.0 < params.perigee_km < params.apogee_km < 450.0
        # nearly circular: the two differ by 2·a·e
        spread = params.apogee_km - params.perigee_km
        assert spread == pytest.approx(2 * params.semi_major_axis_km * params.eccentricity)

    def test_kepler_consistency(self, iss_elements):
        params = derive_parameters(iss_elements)
        a = params.semi_major_axis_km
        period_s = 2 * math.pi * math.sqrt(a ** 3 / MU_KM3_S2)
        assert period_s / 60.0 == pytest.approx(params.period_minutes, rel=1e-9)
        assert params.period_minutes * params.mean_motion_rev_per_day == pytest.approx(1440.0)
        assert a > EARTH_RADIUS_KM

    def test_deterministic(self, iss_elements):
        assert derive_parameters(iss_elements) == derive_parameters(iss_elements)

    def test_model_failure_returns_none(self, iss_elements):
        with patch("orbit_params.load_satrec", side_effect=ValueError("bad lines")):
            assert derive_parameters(iss_elements) is None

    def test_as_dict(self, iss_elements):
        d = derive_parameters(iss_elements).as_dict()
        assert set(d) == {
            "inclination_deg", "eccentricity", "mean_motion_rev_per_day",
            "period_minutes", "apogee_km", "perigee_km",
        }
