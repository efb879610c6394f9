"""Severity and timestamp canonicalization.

Pure functions that map raw tokens found in log lines to normalized values.
Nothing here raises on bad input: unrecognized values map to ``None`` (or
``Severity.UNKNOWN`` for non-empty severity tokens).
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

from .models import Severity

logger = logging.getLogger(__name__)

_SEVERITY_ALIASES: dict[str, Severity] = {
    "trace": Severity.TRACE,
    "trc": Severity.TRACE,
    "verbose": Severity.TRACE,
    "debug": Severity.DEBUG,
    "dbg": Severity.DEBUG,
    "info": Severity.INFO,
    "inf": Severity.INFO,
    "information": Severity.INFO,
    "informational": Severity.INFO,
    "notice": Severity.INFO,
    "note": Severity.INFO,
    "warn": Severity.WARN,
    "warning": Severity.WARN,
    "error": Severity.ERROR,
    "err": Severity.ERROR,
    "severe": Severity.ERROR,
    "critical": Severity.CRITICAL,
    "crit": Severity.CRITICAL,
    "fatal": Severity.CRITICAL,
    "emerg": Severity.CRITICAL,
    "emergency": Severity.CRITICAL,
    "alert": Severity.CRITICAL,
    "panic": Severity.CRITICAL,
    "unknown": Severity.UNKNOWN,
}

# Numbers at or above this magnitude are epoch milliseconds.
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000

_EPOCH_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_SPACES_RE = re.compile(r"\s+")

_DATED_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M:%S,%f",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S.%f",
    "%d/%b/%Y:%H:%M:%S %z",
    "%d/%b/%Y %H:%M:%S",
    "%a %b %d %H:%M:%S.%f %Y",
    "%a %b %d %H:%M:%S %Y",
    "%b %d %H:%M:%S %Y",
    "%b %d %Y %H:%M:%S",
)

# Formats without a year; the year is prepended before parsing.
_YEARLESS_FORMATS: tuple[str, ...] = (
    "%Y %b %d %H:%M:%S",
    "%Y %b %d %H:%M:%S.%f",
    "%Y %m-%d %H:%M:%S.%f",
    "%Y %m-%d %H:%M:%S",
)


def parse_severity(value: Any) -> Severity | None:
    """Fold a raw level token into a canonical Severity.

    Returns None for absent/blank values and UNKNOWN for unseen tokens.
    """
    if value is None or isinstance(value, bool):
        return None
    name = str(value).strip().lower()
    if not name:
        return None
    return _SEVERITY_ALIASES.get(name, Severity.UNKNOWN)


def severity_from_syslog_pri(pri: int) -> Severity:
    """Map a syslog PRI value to a canonical Severity."""
    sev = pri % 8  # 0..7
    if sev <= 2:
        return Severity.CRITICAL
    if sev == 3:
        return Severity.ERROR
    if sev == 4:
        return Severity.WARN
    if sev <= 6:
        return Severity.INFO
    return Severity.DEBUG


def _to_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def parse_epoch(value: float) -> datetime | None:
    """Interpret a number as epoch seconds or milliseconds."""
    seconds = value / 1000.0 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else float(value)
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def parse_iso_timestamp(value: str) -> datetime | None:
    """Parse an ISO8601/RFC3339 timestamp string into a UTC datetime."""
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00").replace("z", "+00:00"))
    except ValueError:
        return None
    return _to_utc(ts)


def resolve_yearless(text: str, fmt: str, *, now: datetime | None = None) -> datetime | None:
    """Parse a timestamp lacking a year.

    Assume the current year unless the instant would land in the future, in
    which case use the previous year.
    """
    now = now or datetime.now(UTC)
    for year in (now.year, now.year - 1):
        try:
            ts = datetime.strptime(f"{year} {text}", fmt).replace(tzinfo=UTC)
        except ValueError:
            # Feb 29 only exists in some years; try the other candidate.
            continue
        if ts <= now:
            return ts
    return None


def parse_timestamp(value: Any, *, now: datetime | None = None) -> datetime | None:
    """Parse any supported timestamp representation into a UTC datetime.

    Accepts RFC3339/ISO8601, common dated layouts, syslog and logcat
    year-absent stamps, Apache bracket stamps and epoch seconds/millis.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return parse_epoch(value)

    text = _SPACES_RE.sub(" ", str(value).strip())
    if not text:
        return None

    if _EPOCH_RE.match(text):
        # Bare 8-digit values are more likely dates than 1970 instants.
        if len(text) == 8 and text.isdigit():
            try:
                return datetime.strptime(text, "%Y%m%d").replace(tzinfo=UTC)
            except ValueError:
                pass
        return parse_epoch(float(text))

    ts = parse_iso_timestamp(text)
    if ts is not None:
        return ts

    for fmt in _DATED_FORMATS:
        try:
            return _to_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue

    for fmt in _YEARLESS_FORMATS:
        ts = resolve_yearless(text, fmt, now=now)
        if ts is not None:
            return ts

    logger.debug("Unparseable timestamp: %r", text)
    return None
