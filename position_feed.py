"""Live ISS position from public telemetry feeds.

Primary source is wheretheiss.at, which reports altitude, velocity and
illumination directly.  If it fails, the legacy open-notify feed is read
through the CORS proxy (it is plain HTTP); it only gives latitude and
longitude, so altitude and velocity are filled with nominal ISS values.

Unlike the element set there is no synthetic fallback: a made-up position
would be actively misleading, so exhausting every source raises
PositionUnavailableError.  Successful reads are cached for POSITION_TTL_S.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from functools import partial
from typing import Any

import requests

from sources import (
    DEFAULT_TIMEOUT_S,
    Source,
    SourceError,
    SourcesExhaustedError,
    fetch_json,
    first_success,
    proxied,
)
from ttl_cache import POSITION_TTL_S, TimedCache

logger = logging.getLogger(__name__)

WTIA_URL = "https://api.wheretheiss.at/v1/satellites/25544"
OPEN_NOTIFY_URL = "http://api.open-notify.org/iss-now.json"

# Nominal values for feeds that do not report them
NOMINAL_ALTITUDE_KM = 417.5
NOMINAL_VELOCITY_KMH = 27600.0
LEGACY_VISIBILITY = "orbiting"


class PositionUnavailableError(SourcesExhaustedError):
    """Raised when no live position source produced a valid reading."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LivePosition:
    latitude: float
    longitude: float
    timestamp: int
    altitude_km: float
    velocity_kmh: float
    visibility: str
    source: str

    def as_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------

def _finite(value: Any) -> float | None:
    """Coerce a JSON number or numeric string to a finite float, else None."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _require_coordinates(lat: Any, lon: Any, source: str) -> tuple[float, float]:
    lat_f, lon_f = _finite(lat), _finite(lon)
    if lat_f is None or lon_f is None:
        raise SourceError(f"Invalid coordinates from {source}: {lat!r}, {lon!r}")
    return lat_f, lon_f


def _timestamp(value: Any) -> int:
    number = _finite(value)
    return int(number) if number is not None else 0


def parse_wtia(data: Any, source: str = "wheretheiss") -> LivePosition:
    """Validate a wheretheiss.at satellite record."""
    if not isinstance(data, dict):
        raise SourceError(f"Unexpected payload from {source}: {type(data).__name__}")
    # The primary feed must carry real numbers; strings are not accepted here
    lat, lon = data.get("latitude"), data.get("longitude")
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (lat, lon)):
        raise SourceError(f"Invalid coordinates from {source}: {lat!r}, {lon!r}")
    lat_f, lon_f = _require_coordinates(lat, lon, source)

    altitude = _finite(data.get("altitude"))
    velocity = _finite(data.get("velocity"))
    return LivePosition(
        latitude=lat_f,
        longitude=lon_f,
        timestamp=_timestamp(data.get("timestamp")),
        altitude_km=altitude if altitude is not None else NOMINAL_ALTITUDE_KM,
        velocity_kmh=velocity if velocity is not None else NOMINAL_VELOCITY_KMH,
        visibility=str(data.get("visibility") or "unknown"),
        source=source,
    )


def parse_open_notify(data: Any, source: str = "open-notify+proxy") -> LivePosition:
    """Validate an open-notify iss-now record and backfill what it lacks."""
    if not isinstance(data, dict) or not isinstance(data.get("iss_position"), dict):
        raise SourceError(f"Invalid legacy structure from {source}")
    pos = data["iss_position"]
    lat_f, lon_f = _require_coordinates(pos.get("latitude"), pos.get("longitude"), source)
    return LivePosition(
        latitude=lat_f,
        longitude=lon_f,
        timestamp=_timestamp(data.get("timestamp")),
        altitude_km=NOMINAL_ALTITUDE_KM,
        velocity_kmh=NOMINAL_VELOCITY_KMH,
        visibility=LEGACY_VISIBILITY,
        source=source,
    )


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

def _fetch_position(url, parser, name, session, timeout) -> LivePosition:
    return parser(fetch_json(url, session, timeout), name)


def default_position_sources(
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> list[Source]:
    return [
        Source("wheretheiss",
               partial(_fetch_position, WTIA_URL, parse_wtia, "wheretheiss", session, timeout)),
        Source("open-notify+proxy",
               partial(_fetch_position, proxied(OPEN_NOTIFY_URL), parse_open_notify,
                       "open-notify+proxy", session, timeout)),
    ]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class PositionResolver:
    def __init__(
        self,
        sources: list[Source] | None = None,
        cache: TimedCache | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_S,
    ):
        if sources is None:
            sources = default_position_sources(session, timeout)
        self.sources = sources
        self.cache = cache if cache is not None else TimedCache(POSITION_TTL_S)

    def acquire(self, force_refresh: bool = False) -> LivePosition:
        """Return the current position; raise PositionUnavailableError if no
        source delivers one."""
        if not force_refresh:
            cached = self.cache.get()
            if cached is not None:
                return cached
        try:
            position = first_success(self.sources).value
        except SourcesExhaustedError as exc:
            logger.error("All position sources failed")
            raise PositionUnavailableError(exc.attempts) from exc
        self.cache.set(position)
        return position


_default_resolver: PositionResolver | None = None


def get_position(force_refresh: bool = False) -> LivePosition:
    """Return the live ISS position through the process-wide resolver and cache."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = PositionResolver()
    return _default_resolver.acquire(force_refresh=force_refresh)
