"""Record filtering.

A :class:`FilterSpec` is validated once and compiled into a
:class:`RecordFilter`. Relative time expressions are resolved during
compilation, so evaluating the same record twice always gives the same answer.
"""

from __future__ import annotations

import re
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import field_validator, model_validator

from .canonical import parse_severity
from .errors import InvalidSpecError
from .models import LogRecord, Severity, field_text
from .specs import SpecModel
from .time_window import resolve_time_window


def _level_set(names: Iterable[str]) -> frozenset[Severity]:
    out: set[Severity] = set()
    for name in names:
        level = parse_severity(name)
        if level is None:
            raise ValueError("level names must not be blank")
        if level is Severity.UNKNOWN and name.strip().lower() != Severity.UNKNOWN.value:
            raise ValueError(f"unknown level {name!r}")
        out.add(level)
    return frozenset(out)


class FilterSpec(SpecModel):
    """User-facing filter criteria; every criterion must hold for a record to pass.

    ``invert`` selects the records that fail instead.
    """

    levels: list[str] | None = None
    pattern: str | None = None
    regex: bool = False
    ignore_case: bool = False
    invert: bool = False
    fields: dict[str, str] = {}
    since: str | datetime | None = None
    until: str | datetime | None = None

    @field_validator("levels", mode="before")
    @classmethod
    def _split_levels(cls, v):
        if isinstance(v, str):
            v = [p for p in v.split(",") if p.strip()]
        return v

    @field_validator("levels")
    @classmethod
    def _check_levels(cls, v: list[str] | None) -> list[str] | None:
        if v is not None:
            _level_set(v)
        return v

    @field_validator("fields", mode="before")
    @classmethod
    def _parse_field_predicates(cls, v):
        if v is None:
            return {}
        if isinstance(v, str):
            v = [v]
        if isinstance(v, (list, tuple)):
            out: dict[str, str] = {}
            for item in v:
                key, sep, value = str(item).partition("=")
                if not sep or not key.strip():
                    raise ValueError(f"field predicate {item!r} must look like key=value")
                out[key.strip()] = value
            return out
        if isinstance(v, dict):
            return {str(k): field_text(val) for k, val in v.items()}
        return v

    @model_validator(mode="after")
    def _check_pattern(self) -> FilterSpec:
        if self.pattern is not None and self.regex:
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ValueError(f"invalid regex {self.pattern!r}: {exc}") from exc
        return self

    def compile(self, *, now: datetime | None = None) -> RecordFilter:
        """Resolve the spec into an immutable predicate."""
        try:
            since, until = resolve_time_window(since=self.since, until=self.until, now=now)
        except ValueError as exc:
            raise InvalidSpecError(f"Invalid time range: {exc}") from exc

        flags = re.IGNORECASE if self.ignore_case else 0
        regex = None
        needle = None
        if self.pattern is not None:
            if self.regex:
                regex = re.compile(self.pattern, flags)
            elif self.ignore_case:
                needle = self.pattern.casefold()
            else:
                needle = self.pattern

        return RecordFilter(
            levels=_level_set(self.levels) if self.levels is not None else None,
            regex=regex,
            needle=needle,
            ignore_case=self.ignore_case,
            invert=self.invert,
            fields=tuple(self.fields.items()),
            since=since,
            until=until,
        )


@dataclass(frozen=True, slots=True)
class RecordFilter:
    """Compiled, side-effect free record predicate."""

    levels: frozenset[Severity] | None = None
    regex: re.Pattern[str] | None = None
    needle: str | None = None
    ignore_case: bool = False
    invert: bool = False
    fields: tuple[tuple[str, str], ...] = ()
    since: datetime | None = None
    until: datetime | None = None

    @property
    def time_bounded(self) -> bool:
        return self.since is not None or self.until is not None

    def evaluate(self, record: LogRecord) -> bool:
        """True when the record passes; ``invert`` flips the whole outcome."""
        return self._matches(record) != self.invert

    def _matches(self, record: LogRecord) -> bool:
        if self.levels is not None and record.level not in self.levels:
            return False

        if self.regex is not None and self.regex.search(record.message) is None:
            return False
        if self.needle is not None:
            haystack = record.message.casefold() if self.ignore_case else record.message
            if self.needle not in haystack:
                return False

        for key, expected in self.fields:
            if key not in record.fields or field_text(record.fields[key]) != expected:
                return False

        if self.time_bounded:
            ts = record.timestamp
            if ts is None:
                return False
            ts = ts.astimezone(UTC)
            if self.since is not None and ts < self.since:
                return False
            if self.until is not None and ts >= self.until:
                return False
        return True

    def select(self, records: Iterable[LogRecord]) -> Iterator[LogRecord]:
        """Yield the records that pass, preserving order."""
        return (r for r in records if self.evaluate(r))


MATCH_ALL = RecordFilter()


async def with_context(
    records: AsyncIterable[LogRecord],
    record_filter: RecordFilter,
    *,
    before: int = 0,
    after: int = 0,
) -> AsyncIterator[tuple[LogRecord, bool]]:
    """Yield passing records together with up to ``before``/``after`` neighbours.

    Items are ``(record, matched)``. Overlapping windows never repeat a record.
    """
    if before < 0 or after < 0:
        raise ValueError("context sizes must be >= 0")
    held: deque[LogRecord] = deque(maxlen=before)
    pending_after = 0
    async for record in records:
        if record_filter.evaluate(record):
            while held:
                yield held.popleft(), False
            yield record, True
            pending_after = after
        elif pending_after:
            yield record, False
            pending_after -= 1
        else:
            held.append(record)
