"""ISS orbit tracker: CLI entry point.

Usage examples
--------------
  python main.py
  python main.py --lat 51.5074 --lon -0.1278
  python main.py --lat 37.7749 --lon -122.4194 --live --format json
  python main.py --lat 40.7128 --lon -74.0060 --min-elevation 20 --horizon 48 --verbose
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time as time_mod
from datetime import datetime, timezone

from export import build_payload, format_coordinate, write_json
from ground_track import HISTORY_MINUTES, PREDICTED_MINUTES, project, split_segments
from orbit_params import OrbitalParameters, derive_parameters
from pass_finder import (
    DEFAULT_CONFIG,
    ObserverLocation,
    PassPrediction,
    PassSearchConfig,
    countdown,
    predict_next_pass,
)
from position_feed import LivePosition, PositionResolver, PositionUnavailableError
from sources import DEFAULT_TIMEOUT_S
from tle_cache import ElementResolver

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Track the ISS: orbital parameters, ground track and next visible pass.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--lat", type=float,
                   help="Observer latitude, degrees North (enables pass prediction)")
    p.add_argument("--lon", type=float,
                   help="Observer longitude, degrees East")
    p.add_argument("--history", type=float, default=HISTORY_MINUTES,
                   help="Minutes of past ground track")
    p.add_argument("--predict", type=float, default=PREDICTED_MINUTES,
                   help="Minutes of predicted ground track")
    p.add_argument("--track-step", type=float, default=1.0, dest="track_step",
                   help="Ground-track sample spacing, minutes")
    p.add_argument("--min-elevation", type=float, default=DEFAULT_CONFIG.min_elevation_deg,
                   dest="min_el", help="Visibility threshold, degrees")
    p.add_argument("--pass-step", type=float, default=DEFAULT_CONFIG.step_seconds,
                   dest="pass_step", help="Pass search step, seconds")
    p.add_argument("--horizon", type=float, default=DEFAULT_CONFIG.horizon_hours,
                   help="Pass search horizon, hours")
    p.add_argument("--live", action="store_true",
                   help="Also fetch the current live position")
    p.add_argument("--refresh", action="store_true",
                   help="Ignore cached elements and re-fetch")
    p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S,
                   help="Per-source network timeout, seconds")
    p.add_argument("--format", choices=["table", "json"], default="table",
                   help="Output format")
    p.add_argument("--output", metavar="PATH",
                   help="Write the JSON payload to PATH as well")
    p.add_argument("--verbose", action="store_true",
                   help="Debug logging")
    return p


def _observer(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ObserverLocation | None:
    if args.lat is None and args.lon is None:
        return None
    if args.lat is None or args.lon is None:
        parser.error("--lat and --lon must be given together")
    try:
        return ObserverLocation(args.lat, args.lon)
    except ValueError as exc:
        parser.error(str(exc))


# ---------------------------------------------------------------------------
# Text formatters
# ---------------------------------------------------------------------------

def _fmt_time(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _format_parameters(params: OrbitalParameters | None) -> str:
    if params is None:
        return "Orbital parameters unavailable."
    return "\n".join([
        f"  Inclination  : {params.inclination_deg:>10.4f} °",
        f"  Eccentricity : {params.eccentricity:>10.7f}",
        f"  Mean motion  : {params.mean_motion_rev_per_day:>10.5f} rev/day",
        f"  Period       : {params.period_minutes:>10.2f} min",
        f"  Apogee       : {params.apogee_km:>10.1f} km",
        f"  Perigee      : {params.perigee_km:>10.1f} km",
    ])


def _format_pass(prediction: PassPrediction | None, config: PassSearchConfig, now: datetime) -> str:
    if prediction is None:
        return (f"  No pass above {config.min_elevation_deg:.0f}° "
                f"in the next {config.horizon_hours:g} hours.")
    peak = _fmt_time(prediction.peak_time) if prediction.peak_time else "-"
    return "\n".join([
        f"  Start (UTC)  : {_fmt_time(prediction.start_time)}",
        f"  Peak  (UTC)  : {peak}",
        f"  End   (UTC)  : {_fmt_time(prediction.end_time)}",
        f"  Duration     : {prediction.duration_minutes:.1f} min",
        f"  Max elevation: {prediction.max_elevation_deg:.1f}°",
        f"  Countdown    : {countdown(prediction, now)}",
    ])


def _format_position(position: LivePosition) -> str:
    return "\n".join([
        f"  Latitude     : {format_coordinate(position.latitude, 'lat')}",
        f"  Longitude    : {format_coordinate(position.longitude, 'lon')}",
        f"  Altitude     : {position.altitude_km:.1f} km",
        f"  Velocity     : {position.velocity_kmh:.0f} km/h",
        f"  Visibility   : {position.visibility}",
        f"  Source       : {position.source}",
    ])


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
    )
    observer = _observer(args, parser)
    try:
        config = PassSearchConfig(args.pass_step, args.min_el, args.horizon)
    except ValueError as exc:
        parser.error(str(exc))

    # ── 1. Elements ───────────────────────────────────────────────────────
    _log("Acquiring ISS elements…")
    elements = ElementResolver(timeout=args.timeout).acquire(force_refresh=args.refresh)
    now = datetime.now(timezone.utc).replace(microsecond=0)
    _log(f"  Source {elements.source}, epoch {_fmt_time(elements.epoch)} UTC "
         f"({elements.epoch_age_days(now):.1f} days old).")

    # ── 2. Derived parameters ─────────────────────────────────────────────
    params = derive_parameters(elements)

    # ── 3. Ground track ───────────────────────────────────────────────────
    history = project(elements, -args.history, 0, args.track_step, now)
    predicted = project(elements, 0, args.predict, args.track_step, now)

    # ── 4. Next pass ──────────────────────────────────────────────────────
    next_pass = None
    if observer is not None:
        _log(f"Searching {config.horizon_hours:g} h for a pass "
             f"(step {config.step_seconds:g} s, threshold {config.min_elevation_deg:g}°)…")
        t0 = time_mod.perf_counter()
        next_pass = predict_next_pass(elements, observer, now, config)
        _log(f"  Done in {time_mod.perf_counter() - t0:.2f} s.")

    # ── 5. Live position ──────────────────────────────────────────────────
    position = None
    if args.live:
        try:
            position = PositionResolver(timeout=args.timeout).acquire()
        except PositionUnavailableError as exc:
            _log(f"Live position unavailable: {exc}")
            return 1

    # ── 6. Output ─────────────────────────────────────────────────────────
    payload = build_payload(elements, now, observer, history, predicted,
                            next_pass, params, position)
    if args.output:
        write_json(args.output, payload)
        _log(f"Wrote {args.output}")

    if args.format == "json":
        print(json.dumps(payload, indent=2))
        return 0

    print(f"ISS (NORAD {elements.norad_id})  |  {_fmt_time(now)} UTC\n")
    print("Orbital Parameters")
    print(_format_parameters(params))
    print()
    print("Ground Track")
    print(f"  History      : {len(history)} points, {len(split_segments(history))} segment(s)")
    print(f"  Predicted    : {len(predicted)} points, {len(split_segments(predicted))} segment(s)")
    if observer is not None:
        print()
        print(f"Next Pass  ({format_coordinate(observer.lat, 'lat')}, "
              f"{format_coordinate(observer.lng, 'lon')})")
        print(_format_pass(next_pass, config, now))
    if position is not None:
        print()
        print("Live Position")
        print(_format_position(position))
    return 0


def _log(msg: str) -> None:
    print(msg, file=sys.stderr)


if __name__ == "__main__":
    sys.exit(main())
