"""Time-window parsing helpers.

Converts user-supplied ``since``/``until`` expressions (absolute timestamps or
relative phrases like ``"1 hour ago"``) into UTC datetimes. Relative phrases
are resolved against a single ``now`` so a window never drifts while records
are being processed.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

from .canonical import parse_timestamp

_RELATIVE_RE = re.compile(
    r"^(?P<n>\d+)\s*(?P<unit>[a-z]+)(?:\s+ago)?$",
)

_UNITS: dict[str, timedelta] = {}
for _names, _delta in (
    (("s", "sec", "secs", "second", "seconds"), timedelta(seconds=1)),
    (("m", "min", "mins", "minute", "minutes"), timedelta(minutes=1)),
    (("h", "hr", "hrs", "hour", "hours"), timedelta(hours=1)),
    (("d", "day", "days"), timedelta(days=1)),
    (("w", "week", "weeks"), timedelta(weeks=1)),
):
    for _name in _names:
        _UNITS[_name] = _delta


def parse_time_expression(s: str, *, now: datetime | None = None) -> datetime:
    """Resolve an absolute or relative time expression into a UTC datetime.

    Accepted: ``now``, ``today``, ``yesterday``, ``<N> <unit> [ago]`` (units
    s/m/h/d/w and their long forms) and any timestamp the canonicalizer
    understands (RFC3339, ``YYYY-MM-DD``, epoch, ...).
    """
    now = (now or datetime.now(UTC)).astimezone(UTC)
    text = s.strip().lower()
    if not text:
        raise ValueError("time expression is empty")

    if text == "now":
        return now
    if text == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if text == "yesterday":
        return now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=1)

    m = _RELATIVE_RE.match(text)
    if m:
        unit = _UNITS.get(m.group("unit"))
        if unit is None:
            raise ValueError(f"unknown time unit {m.group('unit')!r} in {s!r}")
        return now - int(m.group("n")) * unit

    ts = parse_timestamp(s.strip(), now=now)
    if ts is None:
        raise ValueError(
            f"cannot parse time expression {s!r} "
            "(use RFC3339, YYYY-MM-DD, 'now' or e.g. '1 hour ago')"
        )
    return ts


def resolve_time_window(
    *,
    since: str | datetime | None = None,
    until: str | datetime | None = None,
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Resolve a ``[since, until)`` window in UTC, evaluating ``now`` once."""
    now = now or datetime.now(UTC)

    def _resolve(value: str | datetime | None) -> datetime | None:
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            return value.astimezone(UTC)
        return parse_time_expression(value, now=now)

    s = _resolve(since)
    u = _resolve(until)
    if s is not None and u is not None and s >= u:
        raise ValueError("since must be < until")
    return s, u
