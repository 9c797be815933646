"""Next-pass search for a ground observer.

Algorithm
---------
1. Step forward from *now* on a fixed grid (default 20 s) out to a bounded
   horizon (default 24 h), propagating the element set at every step and
   converting to the observer's topocentric elevation.
2. Feed each sample into a two-state scanner:
   - BELOW_HORIZON -> IN_PASS when elevation rises above the threshold
     (default 10°).  The sample time becomes the pass start, the path buffer
     and running maximum are reset.
   - IN_PASS: each sample appends its sub-satellite point to the path and
     updates the maximum elevation.
   - IN_PASS -> BELOW_HORIZON when elevation drops to or below the threshold.
     That sample time is the pass end and the search stops.
3. If the horizon runs out before a pass has both started and ended, there is
   no prediction (None).  This is the normal answer for observers the orbit
   never comes near, not an error.

Accepted approximations
-----------------------
* Rise and set are quantised to the grid: the start is the first sample
  above the threshold, the end the first sample back below it, so either can
  be up to one step late.
* A pass that stays above the threshold for less than one step can be
  missed entirely.
* Samples SGP4 cannot produce count as below the threshold, the same way a
  failed propagation is treated as below the horizon.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from propagator import (
    GeodeticPoint,
    as_utc,
    eci_to_ecf,
    eci_to_geodetic,
    ecf_to_look_angles,
    gmst_rad,
    propagate,
)
from tle_cache import MeanElementSet

logger = logging.getLogger(__name__)

# Observer assumed at sea level; a small positive height (km)
OBSERVER_HEIGHT_KM = 0.1


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ObserverLocation:
    lat: float
    lng: float
    height_km: float = OBSERVER_HEIGHT_KM

    def __post_init__(self):
        if not (math.isfinite(self.lat) and -90.0 <= self.lat <= 90.0):
            raise ValueError(f"Observer latitude out of range: {self.lat}")
        if not math.isfinite(self.lng):
            raise ValueError(f"Observer longitude is not finite: {self.lng}")


@dataclass(frozen=True)
class PassSearchConfig:
    """Calibration constants for the pass search.

    step_seconds trades detection latency and precision against compute cost;
    min_elevation_deg is the visibility threshold.
    """

    step_seconds: float = 20.0
    min_elevation_deg: float = 10.0
    horizon_hours: float = 24.0

    def __post_init__(self):
        if self.step_seconds <= 0:
            raise ValueError(f"step_seconds must be positive, got {self.step_seconds}")
        if self.horizon_hours <= 0:
            raise ValueError(f"horizon_hours must be positive, got {self.horizon_hours}")
        if not -90.0 <= self.min_elevation_deg < 90.0:
            raise ValueError(f"min_elevation_deg out of range: {self.min_elevation_deg}")

    @property
    def n_steps(self) -> int:
        return int(self.horizon_hours * 3600.0 / self.step_seconds)


DEFAULT_CONFIG = PassSearchConfig()


@dataclass
class PassPrediction:
    """A single visible pass over the observer."""

    start_time: datetime
    end_time: datetime
    duration_minutes: float
    max_elevation_deg: float
    path: list[GeodeticPoint] = field(default_factory=list)
    peak_time: datetime | None = None


class ScanState(enum.Enum):
    BELOW_HORIZON = "below_horizon"
    IN_PASS = "in_pass"


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class PassScanner:
    """Two-state machine fed one elevation sample at a time.

    feed() returns the completed PassPrediction on the IN_PASS ->
    BELOW_HORIZON transition and None otherwise.  After a pass has completed
    the scanner is finished and ignores further samples.
    """

    def __init__(self, min_elevation_deg: float = DEFAULT_CONFIG.min_elevation_deg):
        self.min_elevation_deg = min_elevation_deg
        self.state = ScanState.BELOW_HORIZON
        self.result: PassPrediction | None = None
        self._start: datetime | None = None
        self._peak_time: datetime | None = None
        self._max_el = -math.inf
        self._path: list[GeodeticPoint] = []

    @property
    def finished(self) -> bool:
        return self.result is not None

    def is_visible(self, elevation_deg: float | None) -> bool:
        return elevation_deg is not None and elevation_deg > self.min_elevation_deg

    def feed(
        self,
        when: datetime,
        elevation_deg: float | None,
        point: GeodeticPoint | None = None,
    ) -> PassPrediction | None:
        if self.finished:
            return None
        visible = self.is_visible(elevation_deg)

        if self.state is ScanState.BELOW_HORIZON:
            if visible:
                self.state = ScanState.IN_PASS
                self._start = when
                self._path = []
                self._max_el = -math.inf
                self._record(when, elevation_deg, point)
            return None

        if visible:
            self._record(when, elevation_deg, point)
            return None

        self.state = ScanState.BELOW_HORIZON
        self.result = PassPrediction(
            start_time=self._start,
            end_time=when,
            duration_minutes=(when - self._start).total_seconds() / 60.0,
            max_elevation_deg=self._max_el,
            path=self._path,
            peak_time=self._peak_time,
        )
        return self.result

    def _record(self, when: datetime, elevation_deg: float, point: GeodeticPoint | None) -> None:
        if elevation_deg > self._max_el:
            self._max_el = elevation_deg
            self._peak_time = when
        if point is not None and point.is_valid:
            self._path.append(point)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def predict_next_pass(
    elements: MeanElementSet,
    observer: ObserverLocation,
    now: datetime | None = None,
    config: PassSearchConfig = DEFAULT_CONFIG,
) -> PassPrediction | None:
    """Find the first complete pass above config.min_elevation_deg after *now*."""
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    scanner = PassScanner(config.min_elevation_deg)
    step = timedelta(seconds=config.step_seconds)
    failures = 0

    for i in range(config.n_steps + 1):
        when = now + i * step
        state = propagate(elements, when)
        if state is None:
            failures += 1
            scanner.feed(when, None)
        else:
            gmst = gmst_rad(when)
            look = ecf_to_look_angles(
                observer.lat, observer.lng, observer.height_km,
                eci_to_ecf(state.position_km, gmst),
            )
            point = None
            if scanner.is_visible(look.elevation_deg):
                point = eci_to_geodetic(state.position_km, gmst, time=state.time)
            scanner.feed(when, look.elevation_deg, point)

        if scanner.finished:
            result = scanner.result
            logger.debug("Pass found: %s -> %s, max el %.1f°",
                         result.start_time.isoformat(), result.end_time.isoformat(),
                         result.max_elevation_deg)
            return result

    if failures:
        logger.debug("%d of %d pass-search samples could not be propagated",
                     failures, config.n_steps + 1)
    if scanner.state is ScanState.IN_PASS:
        logger.info("Pass still in progress at the end of the %.1f h horizon",
                    config.horizon_hours)
    return None


def countdown(prediction: PassPrediction, now: datetime | None = None) -> str:
    """Time to acquisition as HH:MM:SS, or the pass state once it has begun."""
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    remaining = (prediction.start_time - now).total_seconds()
    if remaining <= 0:
        return "FLYOVER_IN_PROGRESS" if now < prediction.end_time else "PASSED"
    total = int(remaining)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
