"""Ground-track sampling and antimeridian splitting.

project() walks the propagator over a window of minutes relative to *now*
(negative offsets give the track already flown, positive ones the predicted
track) and returns geodetic sub-satellite points.  Every longitude it returns
lies in (-180, 180], so a jump of more than 180° between two consecutive
points can only mean the track wrapped across the antimeridian.
split_segments() cuts the track there, giving polylines that a flat map can
draw without a line streaking across the whole chart.

Samples SGP4 cannot produce are dropped; the track simply has a gap.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

from propagator import GeodeticPoint, as_utc, subpoint
from tle_cache import MeanElementSet

logger = logging.getLogger(__name__)

# Substituted when the geodetic height comes out non-finite (km)
NOMINAL_ALTITUDE_KM = 417.0

HISTORY_MINUTES = 45
PREDICTED_MINUTES = 90


def project(
    elements: MeanElementSet,
    start_offset_min: float,
    end_offset_min: float,
    step_min: float = 1.0,
    now: datetime | None = None,
) -> list[GeodeticPoint]:
    """Sample the ground track at now + i·step for i over [start, end] inclusive."""
    if step_min <= 0:
        raise ValueError(f"step_min must be positive, got {step_min}")
    if start_offset_min > end_offset_min:
        raise ValueError(
            f"start offset {start_offset_min} is after end offset {end_offset_min}"
        )
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)

    n_steps = int(math.floor((end_offset_min - start_offset_min) / step_min + 1e-9)) + 1
    points: list[GeodeticPoint] = []
    skipped = 0
    for i in range(n_steps):
        when = now + timedelta(minutes=start_offset_min + i * step_min)
        point = subpoint(elements, when)
        if point is None or not point.is_valid:
            skipped += 1
            continue
        if not math.isfinite(point.altitude_km):
            point = GeodeticPoint(point.latitude, point.longitude, NOMINAL_ALTITUDE_KM, point.time)
        points.append(point)

    if skipped:
        logger.debug("Ground track skipped %d of %d samples", skipped, n_steps)
    return points


def history_track(
    elements: MeanElementSet,
    now: datetime | None = None,
    minutes: float = HISTORY_MINUTES,
    step_min: float = 1.0,
) -> list[GeodeticPoint]:
    return project(elements, -minutes, 0, step_min, now)


def predicted_track(
    elements: MeanElementSet,
    now: datetime | None = None,
    minutes: float = PREDICTED_MINUTES,
    step_min: float = 1.0,
) -> list[GeodeticPoint]:
    return project(elements, 0, minutes, step_min, now)


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

def crosses_antimeridian(prev_lon: float, lon: float) -> bool:
    """True when the step between two normalised longitudes wraps past ±180°."""
    return abs(lon - prev_lon) > 180.0


def split_segments(points: list[GeodeticPoint], min_points: int = 2) -> list[list[GeodeticPoint]]:
    """Split a track into polylines at antimeridian crossings.

    Segments with fewer than *min_points* points are dropped (a single point
    cannot be drawn as a line).
    """
    segments: list[list[GeodeticPoint]] = []
    current: list[GeodeticPoint] = []
    for point in points:
        if current and crosses_antimeridian(current[-1].longitude, point.longitude):
            if len(current) >= min_points:
                segments.append(current)
            current = []
        current.append(point)
    if len(current) >= min_points:
        segments.append(current)
    return segments
