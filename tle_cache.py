"""TLE acquisition and in-memory caching for the ISS.

Fetches the current two-line element set from CelesTrak, falling back to the
ARISS mirror and finally to a compiled-in element set.  Each remote feed is
tried directly first and then through the CORS proxy.  The result is cached
for ELEMENTS_TTL_S (one hour) so callers can ask as often as they like.

The static fallback is allowed to be stale: mean-element propagation degrades
gradually, so an element set a few days old still gives a usable ground track.
Element sets whose epoch is older than TLE_EPOCH_WARN_DAYS are flagged as
degraded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial

import requests
from sgp4.api import Satrec

from sources import (
    DEFAULT_TIMEOUT_S,
    Source,
    SourceError,
    SourcesExhaustedError,
    fetch_text,
    first_success,
    proxied,
)
from ttl_cache import ELEMENTS_TTL_S, TimedCache

logger = logging.getLogger(__name__)

ISS_NORAD_ID = 25544

CELESTRAK_URL = (
    f"https://celestrak.org/NORAD/elements/gp.php?CATNR={ISS_NORAD_ID}&FORMAT=TLE"
)
ARISS_URL = "https://live.ariss.org/iss.txt"

TLE_EPOCH_WARN_DAYS = 2
TLE_LINE_LENGTH = 69

# Captured 2024-05-19.  Update when refreshing the build.
FALLBACK_TLE = (
    "1 25544U 98067A   24140.59865741  .00016717  00000+0  30076-3 0  9996",
    "2 25544  51.6396 235.1195 0005470 216.5982 256.4024 15.49818898442371",
)
FALLBACK_SOURCE = "static-fallback"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MeanElementSet:
    """A validated pair of TLE lines and the name of the source it came from."""

    line1: str
    line2: str
    source: str = ""

    @classmethod
    def parse(
        cls,
        line1: str,
        line2: str,
        norad_id: int = ISS_NORAD_ID,
        source: str = "",
    ) -> MeanElementSet:
        """Validate both lines and build an element set.

        Raises SourceError unless both lines are the right length, carry the
        expected catalog number, pass their modulo-10 checksum and decode into
        an epoch and an SGP4 model.
        """
        line1 = line1.strip()
        line2 = line2.strip()
        for number, line in ((1, line1), (2, line2)):
            prefix = _line_prefix(number, norad_id)
            if not line.startswith(prefix):
                raise SourceError(f"Line {number} does not start with {prefix!r}")
            if len(line) != TLE_LINE_LENGTH:
                raise SourceError(
                    f"Line {number} has {len(line)} characters, expected {TLE_LINE_LENGTH}"
                )
            if not line[-1].isdigit() or tle_checksum(line) != int(line[-1]):
                raise SourceError(f"Line {number} fails its checksum")

        elements = cls(line1, line2, source)
        # Letters add nothing to the checksum, so the fields still need decoding
        try:
            elements.epoch
        except (ValueError, OverflowError) as exc:
            raise SourceError(f"Line 1 has an unreadable epoch: {exc}") from exc
        try:
            sat = Satrec.twoline2rv(line1, line2)
        except (ValueError, IndexError) as exc:
            raise SourceError(f"Lines do not decode into an SGP4 model: {exc}") from exc
        if sat.error != 0:
            raise SourceError(f"SGP4 initialisation failed with error {sat.error}")
        return elements

    @property
    def norad_id(self) -> int:
        return int(self.line1[2:7])

    @property
    def epoch(self) -> datetime:
        # Columns 19–32 (1-indexed): YYddd.dddddddd
        year_2d = int(self.line1[18:20])
        day_frac = float(self.line1[20:32])
        year = (2000 + year_2d) if year_2d < 57 else (1900 + year_2d)
        return datetime(year, 1, 1, tzinfo=timezone.utc) + timedelta(days=day_frac - 1.0)

    def epoch_age_days(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.epoch).total_seconds() / 86400.0

    def is_degraded(self, now: datetime | None = None) -> bool:
        return self.epoch_age_days(now) > TLE_EPOCH_WARN_DAYS


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _line_prefix(number: int, norad_id: int) -> str:
    # Line 1 includes the classification column ('U' for the ISS)
    if number == 1:
        return f"1 {norad_id:05d}U"
    return f"2 {norad_id:05d}"


def tle_checksum(line: str) -> int:
    """Modulo-10 checksum over the first 68 columns (digits count, '-' is 1)."""
    total = 0
    for ch in line[:68]:
        if ch.isdigit():
            total += int(ch)
        elif ch == "-":
            total += 1
    return total % 10


def extract_elements(text: str, norad_id: int = ISS_NORAD_ID, source: str = "") -> MeanElementSet:
    """Find and validate the element set for *norad_id* in raw TLE text.

    The text may hold a name line and other satellites; only the first line 1
    and first line 2 carrying the catalog number are used.
    """
    lines = [l.strip() for l in text.splitlines()]
    line1 = next((l for l in lines if l.startswith(_line_prefix(1, norad_id))), None)
    line2 = next((l for l in lines if l.startswith(_line_prefix(2, norad_id))), None)
    if line1 is None or line2 is None:
        raise SourceError(f"No TLE for catalog {norad_id} in response from {source or 'source'}")
    return MeanElementSet.parse(line1, line2, norad_id, source)


def static_elements() -> MeanElementSet:
    return MeanElementSet.parse(*FALLBACK_TLE, source=FALLBACK_SOURCE)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

def _fetch_elements(
    url: str,
    session: requests.Session | None,
    timeout: float,
    norad_id: int,
    name: str,
) -> MeanElementSet:
    return extract_elements(fetch_text(url, session, timeout), norad_id, name)


def default_element_sources(
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT_S,
    norad_id: int = ISS_NORAD_ID,
) -> list[Source]:
    """Remote feeds in priority order: CelesTrak then ARISS, each direct then proxied."""
    sources: list[Source] = []
    for label, url in (("celestrak", CELESTRAK_URL), ("ariss", ARISS_URL)):
        for suffix, target in (("", url), ("+proxy", proxied(url))):
            name = label + suffix
            sources.append(
                Source(name, partial(_fetch_elements, target, session, timeout, norad_id, name))
            )
    return sources


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class ElementResolver:
    """Resolve the current element set; never fails.

    Order: fresh cache entry, then each source once, then the static fallback.
    Whatever is returned (fallback included) is cached for the cache's TTL.
    """

    def __init__(
        self,
        sources: list[Source] | None = None,
        cache: TimedCache | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        norad_id: int = ISS_NORAD_ID,
    ):
        if sources is None:
            sources = default_element_sources(session, timeout, norad_id)
        self.sources = sources
        self.cache = cache if cache is not None else TimedCache(ELEMENTS_TTL_S)

    def acquire(self, force_refresh: bool = False) -> MeanElementSet:
        if not force_refresh:
            cached = self.cache.get()
            if cached is not None:
                logger.debug("Using cached elements from %s", cached.source)
                return cached

        try:
            elements = first_success(self.sources).value
        except SourcesExhaustedError as exc:
            elements = static_elements()
            logger.warning(
                "All %d TLE sources failed; using static fallback (epoch %s, %.1f days old)",
                len(exc.attempts),
                elements.epoch.strftime("%Y-%m-%d %H:%M"),
                elements.epoch_age_days(),
            )
        else:
            logger.info("Elements acquired from %s (epoch %s)",
                        elements.source, elements.epoch.isoformat())
            if elements.is_degraded():
                logger.warning("Elements from %s are %.1f days old; accuracy degraded",
                               elements.source, elements.epoch_age_days())

        self.cache.set(elements)
        return elements


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_default_resolver: ElementResolver | None = None


def get_elements(force_refresh: bool = False) -> MeanElementSet:
    """Return the ISS element set through the process-wide resolver and cache."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = ElementResolver()
    return _default_resolver.acquire(force_refresh=force_refresh)
