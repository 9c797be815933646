"""SGP4 propagation and coordinate transforms for a single element set.

Design notes
------------
* SGP4 itself comes from the ``sgp4`` package (Satrec, C extension).  This
  module only adapts it: element set + absolute time -> state vector, plus the
  frame conversions everything else is built from.
* SGP4 returns positions in the TEME (True Equator Mean Equinox) frame,
  which is treated as quasi-ECI here.  The TEME–J2000 difference is a
  few arc-seconds, negligible for ground tracks and visibility.
* TEME → ECEF via GMST rotation; ECEF → topocentric ENU → azimuth /
  elevation / slant range using WGS-84.
* ECI → geodetic uses the iterative WGS-84 latitude solution; longitude is
  always normalised into (-180, 180] before it leaves this module.

Every function is a pure function of its arguments.  A propagation failure
(non-zero SGP4 error code, e.g. decay when propagating stale elements far
from epoch) yields None rather than an exception.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache

import numpy as np
from sgp4.api import Satrec

from tle_cache import MeanElementSet

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# WGS-84 constants
# ---------------------------------------------------------------------------
WGS84_A = 6378.137          # semi-major axis, km
WGS84_F = 1.0 / 298.257223563
WGS84_E2 = 2.0 * WGS84_F - WGS84_F ** 2  # first eccentricity squared

J2000 = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
JD_J2000 = 2451545.0

SGP4_ERRORS = {
    1: "mean eccentricity outside [0, 1)",
    2: "mean motion < 0",
    3: "perturbed eccentricity outside [0, 1)",
    4: "semi-latus rectum < 0",
    5: "epoch elements are sub-orbital",
    6: "satellite has decayed",
}


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StateVector:
    """TEME position (km) and velocity (km/s) at one instant."""

    time: datetime
    position_km: np.ndarray
    velocity_km_s: np.ndarray


@dataclass(frozen=True)
class GeodeticPoint:
    latitude: float
    longitude: float
    altitude_km: float
    time: datetime | None = None

    @property
    def is_valid(self) -> bool:
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)


@dataclass(frozen=True)
class LookAngles:
    azimuth_deg: float
    elevation_deg: float
    range_km: float


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

def as_utc(when: datetime) -> datetime:
    """Attach UTC to a naive datetime, or convert an aware one to UTC."""
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def julian_date(when: datetime) -> tuple[float, float]:
    """Split Julian date (whole, fraction) for a datetime; naive means UTC."""
    jd = JD_J2000 + (as_utc(when) - J2000).total_seconds() / 86400.0
    whole = math.floor(jd)
    return float(whole), jd - whole


def gmst_rad(when: datetime) -> float:
    """Greenwich Mean Sidereal Time in radians.

    Accuracy: ~0.1 arc-second, sufficient for satellite visibility work.
    """
    whole, frac = julian_date(when)
    d = (whole - JD_J2000) + frac
    T = d / 36525.0
    theta_deg = (
        280.46061837
        + 360.98564736629 * d
        + T * T * (0.000387933 - T / 38710000.0)
    )
    return math.radians(theta_deg % 360.0)


# ---------------------------------------------------------------------------
# Propagation
# ---------------------------------------------------------------------------

def load_satrec(elements: MeanElementSet) -> Satrec:
    """Build the SGP4 model for an element set (memoised on the two lines).

    Raises ValueError when the lines cannot be parsed into a model.
    """
    return _satrec_from_lines(elements.line1, elements.line2)


@lru_cache(maxsize=16)
def _satrec_from_lines(line1: str, line2: str) -> Satrec:
    try:
        return Satrec.twoline2rv(line1, line2)
    except (ValueError, IndexError) as exc:
        raise ValueError(f"Cannot build SGP4 model: {exc}") from exc


def propagate(elements: MeanElementSet, when: datetime) -> StateVector | None:
    """Propagate to *when*; None if SGP4 reports an error for this instant."""
    try:
        sat = load_satrec(elements)
    except ValueError as exc:
        logger.debug("Propagation unavailable: %s", exc)
        return None

    jd, fr = julian_date(when)
    error, r, v = sat.sgp4(jd, fr)
    if error != 0:
        logger.debug("SGP4 error %d at %s: %s", error, when.isoformat(),
                     SGP4_ERRORS.get(error, "unknown"))
        return None

    position = np.array(r, dtype=np.float64)
    velocity = np.array(v, dtype=np.float64)
    if not (np.all(np.isfinite(position)) and np.all(np.isfinite(velocity))):
        return None
    return StateVector(time=as_utc(when), position_km=position, velocity_km_s=velocity)


# ---------------------------------------------------------------------------
# Frame conversions
# ---------------------------------------------------------------------------

def normalize_longitude(lon_deg: float) -> float:
    """Wrap a longitude into (-180, 180].

    Values already inside the range come back unchanged, which keeps the
    function idempotent.  NaN and infinities pass through untouched.
    """
    if not math.isfinite(lon_deg) or -180.0 < lon_deg <= 180.0:
        return lon_deg
    wrapped = (lon_deg + 180.0) % 360.0 - 180.0
    if wrapped <= -180.0:
        wrapped += 360.0
    return wrapped


def geodetic_to_ecef(lat_deg: float, lon_deg: float, alt_km: float = 0.0) -> np.ndarray:
    """Convert geodetic coordinates to WGS-84 ECEF (km).

    Returns
    -------
    np.ndarray shape (3,): [x, y, z] in km
    """
    lat = np.deg2rad(lat_deg)
    lon = np.deg2rad(lon_deg)
    N = WGS84_A / np.sqrt(1.0 - WGS84_E2 * np.sin(lat) ** 2)
    x = (N + alt_km) * np.cos(lat) * np.cos(lon)
    y = (N + alt_km) * np.cos(lat) * np.sin(lon)
    z = (N * (1.0 - WGS84_E2) + alt_km) * np.sin(lat)
    return np.array([x, y, z])


def eci_to_ecf(r_eci: np.ndarray, gmst: float) -> np.ndarray:
    """Rotate a TEME position vector into the Earth-fixed frame."""
    cos_t = math.cos(gmst)
    sin_t = math.sin(gmst)
    x, y, z = r_eci
    return np.array([
        x * cos_t + y * sin_t,
        -x * sin_t + y * cos_t,
        z,
    ])


def ecf_to_look_angles(
    lat_deg: float,
    lon_deg: float,
    height_km: float,
    r_ecf: np.ndarray,
) -> LookAngles:
    """Azimuth [0, 360), elevation [-90, 90] and slant range of an ECEF
    target seen from a geodetic observer."""
    obs = geodetic_to_ecef(lat_deg, lon_deg, height_km)
    dx, dy, dz = np.asarray(r_ecf) - obs
    slant_km = math.sqrt(dx * dx + dy * dy + dz * dz)

    lat = math.radians(lat_deg)
    lon = math.radians(lon_deg)
    sin_lat, cos_lat = math.sin(lat), math.cos(lat)
    sin_lon, cos_lon = math.sin(lon), math.cos(lon)

    # Range vector in the local East-North-Up frame
    E = -sin_lon * dx + cos_lon * dy
    N = -sin_lat * cos_lon * dx - sin_lat * sin_lon * dy + cos_lat * dz
    U = cos_lat * cos_lon * dx + cos_lat * sin_lon * dy + sin_lat * dz

    el_rad = math.asin(max(-1.0, min(1.0, U / slant_km))) if slant_km > 0 else math.pi / 2
    az_rad = math.atan2(E, N) % (2.0 * math.pi)
    return LookAngles(math.degrees(az_rad), math.degrees(el_rad), slant_km)


def eci_to_geodetic(r_eci: np.ndarray, gmst: float, time: datetime | None = None) -> GeodeticPoint:
    """Sub-satellite point and height above the WGS-84 ellipsoid."""
    x, y, z = (float(c) for c in r_eci)
    lon = math.atan2(y, x) - gmst
    R = math.hypot(x, y)

    lat = math.atan2(z, R)
    C = 1.0
    for _ in range(20):
        sin_lat = math.sin(lat)
        C = 1.0 / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
        new_lat = math.atan2(z + WGS84_A * C * WGS84_E2 * sin_lat, R)
        if abs(new_lat - lat) < 1e-12:
            lat = new_lat
            break
        lat = new_lat

    cos_lat = math.cos(lat)
    if abs(cos_lat) > 1e-10:
        height = R / cos_lat - WGS84_A * C
    else:
        # Over a pole: measure along the minor axis instead
        height = abs(z) - WGS84_A * math.sqrt(1.0 - WGS84_E2)

    return GeodeticPoint(
        latitude=math.degrees(lat),
        longitude=normalize_longitude(math.degrees(lon)),
        altitude_km=height,
        time=time,
    )


# ---------------------------------------------------------------------------
# Compositions
# ---------------------------------------------------------------------------

def subpoint(elements: MeanElementSet, when: datetime) -> GeodeticPoint | None:
    """Geodetic position of the satellite at *when*."""
    state = propagate(elements, when)
    if state is None:
        return None
    return eci_to_geodetic(state.position_km, gmst_rad(when), time=state.time)


def look_angles(
    elements: MeanElementSet,
    lat_deg: float,
    lon_deg: float,
    height_km: float,
    when: datetime,
) -> LookAngles | None:
    """Topocentric look angles from an observer at *when*."""
    state = propagate(elements, when)
    if state is None:
        return None
    r_ecf = eci_to_ecf(state.position_km, gmst_rad(when))
    return ecf_to_look_angles(lat_deg, lon_deg, height_km, r_ecf)
