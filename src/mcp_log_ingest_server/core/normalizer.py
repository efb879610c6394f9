"""Turn parser extractions into canonical records."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from .canonical import parse_severity, parse_timestamp
from .errors import LineParseError
from .models import Extraction, FormatTag, LogRecord, ParseSummary

if TYPE_CHECKING:
    from .formats.base import LogParser

logger = logging.getLogger(__name__)

# Per-source parse failures beyond this count are logged at DEBUG.
MAX_WARNINGS_PER_SOURCE = 5


def raw_record(line: str) -> LogRecord:
    """Build a Raw record: message is the line, nothing else is known."""
    return LogRecord(
        timestamp=None,
        level=None,
        message=line,
        fields={},
        format=FormatTag.RAW,
        raw=line,
    )


def normalize(extraction: Extraction, raw_line: str, *, now: datetime | None = None) -> LogRecord:
    """Canonicalize timestamp and level of an extraction into a LogRecord."""
    ts = parse_timestamp(extraction.timestamp, now=now)
    if ts is None and extraction.timestamp is not None:
        logger.debug("Timestamp %r left unset (unparseable)", extraction.timestamp)

    return LogRecord(
        timestamp=ts,
        level=parse_severity(extraction.level),
        message=extraction.message,
        fields=dict(extraction.fields),
        format=extraction.format,
        raw=raw_line,
    )


def try_parse(
    parser: LogParser, line: str, *, now: datetime | None = None
) -> tuple[LogRecord, LineParseError | None]:
    """Parse a line without side effects; failures come back as a raw record."""
    try:
        return parser.parse(line, now=now), None
    except LineParseError as exc:
        return raw_record(line), exc


def tally(
    summary: ParseSummary | None,
    error: LineParseError | None,
    *,
    source: str,
    format: FormatTag,
) -> None:
    """Count a parse outcome and report a downgrade as a warning."""
    if error is None:
        if summary is not None:
            summary.record_success()
        return

    fallbacks = 1
    if summary is not None:
        summary.record_fallback(error.kind)
        fallbacks = summary.raw_fallbacks
    log = logger.warning if fallbacks <= MAX_WARNINGS_PER_SOURCE else logger.debug
    log("%s: line not parsed as %s (%s); kept as raw", source, format.value, error)


def parse_line(
    parser: LogParser,
    line: str,
    *,
    summary: ParseSummary | None = None,
    source: str = "<input>",
    now: datetime | None = None,
) -> LogRecord:
    """Parse one line, downgrading to a Raw record when the grammar rejects it."""
    record, error = try_parse(parser, line, now=now)
    tally(summary, error, source=source, format=parser.format)
    return record
