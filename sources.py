"""Ordered fallback chains over remote data sources.

A chain is a plain list of Source objects.  Each source wraps a zero-argument
fetch callable that either returns a validated value or raises.  Transport
failures (requests.RequestException, which includes non-2xx responses via
raise_for_status) and format failures (SourceError) are both converted into a
failed Attempt; the chain then moves on to the next source.  Sources are tried
strictly in order and never retried or raced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

# CORS / mixed-content indirection: returns the target body verbatim.
PROXY_URL = "https://api.allorigins.win/raw?url="

DEFAULT_TIMEOUT_S = 10.0
USER_AGENT = "orbitwatch/0.1 (+https://celestrak.org)"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class SourceError(RuntimeError):
    """A payload arrived but failed structural validation."""


class SourcesExhaustedError(RuntimeError):
    """Every source in a chain failed."""

    def __init__(self, attempts: list[Attempt], message: str | None = None):
        self.attempts = attempts
        if message is None:
            tried = "; ".join(f"{a.source}: {a.error}" for a in attempts)
            message = f"All {len(attempts)} sources failed ({tried})"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Attempt:
    """Outcome of asking one source: a value, or the reason it failed."""

    source: str
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Source:
    name: str
    fetch: Callable[[], Any] = field(repr=False)

    def attempt(self) -> Attempt:
        try:
            value = self.fetch()
        except (requests.RequestException, SourceError, ValueError) as exc:
            return Attempt(self.name, error=f"{type(exc).__name__}: {exc}")
        return Attempt(self.name, value=value)


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------

def first_success(sources: Iterable[Source]) -> Attempt:
    """Try each source in order and return the first successful Attempt.

    Raises SourcesExhaustedError (with every failed Attempt attached) when no
    source succeeds, including the degenerate case of an empty chain.
    """
    failures: list[Attempt] = []
    for source in sources:
        result = source.attempt()
        if result.ok:
            if failures:
                logger.info("Source %s succeeded after %d failure(s)",
                            source.name, len(failures))
            return result
        logger.warning("Source %s failed: %s", source.name, result.error)
        failures.append(result)
    raise SourcesExhaustedError(failures)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

def proxied(url: str) -> str:
    """Wrap *url* in the indirection endpoint."""
    return PROXY_URL + quote(url, safe="")


def _get(url: str, session: requests.Session | None, timeout: float) -> requests.Response:
    getter = session.get if session is not None else requests.get
    resp = getter(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
    resp.raise_for_status()
    return resp


def fetch_text(
    url: str,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> str:
    return _get(url, session, timeout).text


def fetch_json(
    url: str,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> Any:
    """GET *url* and decode its JSON body; undecodable bodies are SourceErrors."""
    resp = _get(url, session, timeout)
    try:
        return resp.json()
    except ValueError as exc:
        raise SourceError(f"Response from {url} is not JSON: {exc}") from exc
