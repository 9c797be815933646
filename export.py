"""JSON payload for map/globe renderers.

Ground tracks are emitted as lists of segments already split at the
antimeridian, each segment a list of {lat, lng, alt} points, so a client can
hand every segment straight to a polyline.
"""

from __future__ import annotations

import json
import math
from datetime import datetime

from ground_track import split_segments
from orbit_params import OrbitalParameters
from pass_finder import ObserverLocation, PassPrediction
from position_feed import LivePosition
from propagator import GeodeticPoint
from tle_cache import MeanElementSet


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_coordinate(value: float, kind: str) -> str:
    """Render a latitude ('lat') or longitude ('lon') as ``12.3456° N``."""
    if value is None or not math.isfinite(value):
        return "0.0000°"
    if kind == "lat":
        hemi = "N" if value > 0 else "S"
    else:
        hemi = "E" if value > 0 else "W"
    return f"{abs(value):.4f}° {hemi}"


def _point(p: GeodeticPoint) -> dict:
    return {
        "lat": round(p.latitude, 4),
        "lng": round(p.longitude, 4),
        "alt": round(p.altitude_km, 1),
    }


def _segments(points: list[GeodeticPoint]) -> list[list[dict]]:
    return [[_point(p) for p in seg] for seg in split_segments(points)]


# ---------------------------------------------------------------------------
# Payload builder
# ---------------------------------------------------------------------------

def pass_to_dict(prediction: PassPrediction) -> dict:
    return {
        "start_time":        prediction.start_time.isoformat(),
        "end_time":          prediction.end_time.isoformat(),
        "peak_time":         prediction.peak_time.isoformat() if prediction.peak_time else None,
        "duration_minutes":  round(prediction.duration_minutes, 2),
        "max_elevation_deg": round(prediction.max_elevation_deg, 1),
        "path":              [_point(p) for p in prediction.path],
    }


def build_payload(
    elements: MeanElementSet,
    now: datetime,
    observer: ObserverLocation | None = None,
    history: list[GeodeticPoint] | None = None,
    predicted: list[GeodeticPoint] | None = None,
    next_pass: PassPrediction | None = None,
    params: OrbitalParameters | None = None,
    position: LivePosition | None = None,
) -> dict:
    """Assemble everything a renderer needs into one JSON-ready dict.

    Key sections:
      elements      – TLE lines, source, epoch and age
      parameters    – derived orbital parameters (null if unavailable)
      ground_track  – history / predicted, each a list of segments
      observer      – lat/lng when a pass was searched for
      next_pass     – the predicted pass, or null
      position      – live telemetry, or null
    """
    return {
        "generated_at": now.isoformat(),
        "elements": {
            "line1":          elements.line1,
            "line2":          elements.line2,
            "source":         elements.source,
            "epoch":          elements.epoch.isoformat(),
            "epoch_age_days": round(elements.epoch_age_days(now), 2),
            "degraded":       elements.is_degraded(now),
        },
        "parameters": (
            {k: round(v, 6) for k, v in params.as_dict().items()} if params else None
        ),
        "ground_track": {
            "history":   _segments(history or []),
            "predicted": _segments(predicted or []),
        },
        "observer": {"lat": observer.lat, "lng": observer.lng} if observer else None,
        "next_pass": pass_to_dict(next_pass) if next_pass else None,
        "position": position.as_dict() if position else None,
    }


def write_json(path: str, payload: dict) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
