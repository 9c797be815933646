"""Human-readable orbital parameters derived from a mean element set.

No propagation is involved: the values come straight from the SGP4 model's
mean elements (inclination, eccentricity, mean motion) via Kepler's third law

    a = (μ / n²)^(1/3)

with n in rad/s.  Perigee and apogee altitudes are measured above the WGS-84
equatorial radius, so for near-circular LEO orbits they bracket the mean
orbital height.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass

from propagator import load_satrec
from tle_cache import MeanElementSet

logger = logging.getLogger(__name__)

# Earth gravitational parameter (km³ s⁻²)
MU_KM3_S2 = 398600.4418

# Equatorial radius used for perigee/apogee altitude (km)
EARTH_RADIUS_KM = 6378.137

MINUTES_PER_DAY = 1440.0


@dataclass(frozen=True)
class OrbitalParameters:
    inclination_deg: float
    eccentricity: float
    mean_motion_rev_per_day: float
    period_minutes: float
    apogee_km: float
    perigee_km: float

    @property
    def semi_major_axis_km(self) -> float:
        return (self.apogee_km + self.perigee_km) / 2.0 + EARTH_RADIUS_KM

    def as_dict(self) -> dict:
        return asdict(self)


def derive_parameters(elements: MeanElementSet) -> OrbitalParameters | None:
    """Compute OrbitalParameters, or None when no SGP4 model can be built."""
    try:
        sat = load_satrec(elements)
    except ValueError as exc:
        logger.error("Orbital parameter derivation failed: %s", exc)
        return None

    n_rad_min = sat.no_kozai   # rad/min, as encoded in the element set
    if not (math.isfinite(n_rad_min) and n_rad_min > 0.0):
        logger.error("Orbital parameter derivation failed: mean motion %r", n_rad_min)
        return None

    ecc = sat.ecco
    n_rad_s = n_rad_min / 60.0
    a_km = (MU_KM3_S2 / (n_rad_s * n_rad_s)) ** (1.0 / 3.0)

    return OrbitalParameters(
        inclination_deg=sat.inclo * 180.0 / math.pi,
        eccentricity=ecc,
        mean_motion_rev_per_day=n_rad_min * MINUTES_PER_DAY / (2.0 * math.pi),
        period_minutes=2.0 * math.pi / n_rad_s / 60.0,
        apogee_km=a_km * (1.0 + ecc) - EARTH_RADIUS_KM,
        perigee_km=a_km * (1.0 - ecc) - EARTH_RADIUS_KM,
    )
