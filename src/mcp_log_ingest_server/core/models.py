"""Core data models for log ingestion."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union

FieldValue = Union[str, int, float, bool]


class Severity(str, Enum):
    """Canonical severity levels after synonym folding."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        """Ordering rank (UNKNOWN sorts below everything)."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.UNKNOWN: -1,
    Severity.TRACE: 0,
    Severity.DEBUG: 1,
    Severity.INFO: 2,
    Severity.WARN: 3,
    Severity.ERROR: 4,
    Severity.CRITICAL: 5,
}


class FormatTag(str, Enum):
    """Closed set of grammars a record can come from."""

    JSON = "json"
    LOGFMT = "logfmt"
    SYSLOG = "syslog"
    APACHE = "apache"
    ANDROID = "android"
    OPENSSH = "openssh"
    RAW = "raw"


@dataclass(frozen=True, slots=True)
class Extraction:
    """Unnormalized fields pulled out of a line by a parser."""

    format: FormatTag
    message: str
    timestamp: Any = None  # str / int / float as found in the line
    level: str | None = None
    fields: dict[str, FieldValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LogRecord:
    """Normalized log record produced by the pipeline."""

    timestamp: datetime | None  # None when missing or unparseable
    level: Severity | None
    message: str
    fields: dict[str, FieldValue]
    format: FormatTag
    raw: str


@dataclass(slots=True)
class ParseSummary:
    """Per-source tally of parse outcomes."""

    total_lines: int = 0
    parsed_lines: int = 0
    raw_fallbacks: int = 0
    failures: dict[str, int] = field(default_factory=dict)

    def record_success(self) -> None:
        self.total_lines += 1
        self.parsed_lines += 1

    def record_fallback(self, reason: str) -> None:
        self.total_lines += 1
        self.raw_fallbacks += 1
        self.failures[reason] = self.failures.get(reason, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_lines": self.total_lines,
            "parsed_lines": self.parsed_lines,
            "raw_fallbacks": self.raw_fallbacks,
            "failures": dict(self.failures),
        }


def field_text(value: FieldValue) -> str:
    """Canonical string form of a field value (used for matching and grouping)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_timestamp(ts: datetime) -> str:
    """Render an instant as RFC3339 in UTC with a 'Z' suffix."""
    return ts.astimezone(UTC).isoformat().replace("+00:00", "Z")


def record_to_dict(record: LogRecord, *, include_raw: bool = True) -> dict[str, Any]:
    """Convert a LogRecord into its canonical JSON-serializable form."""
    d: dict[str, Any] = {
        "timestamp": format_timestamp(record.timestamp) if record.timestamp is not None else None,
        "level": record.level.value if record.level is not None else None,
        "message": record.message,
        "fields": dict(record.fields),
        "format": record.format.value,
    }
    if include_raw:
        d["raw"] = record.raw
    return d


def record_from_dict(data: Mapping[str, Any]) -> LogRecord:
    """Rebuild a LogRecord from its canonical form."""
    ts_val = data.get("timestamp")
    ts = None
    if ts_val is not None:
        ts = datetime.fromisoformat(str(ts_val).replace("Z", "+00:00"))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        ts = ts.astimezone(UTC)

    level_val = data.get("level")
    level = Severity(level_val) if level_val is not None else None

    message = str(data.get("message", ""))
    return LogRecord(
        timestamp=ts,
        level=level,
        message=message,
        fields=dict(data.get("fields") or {}),
        format=FormatTag(data.get("format", FormatTag.RAW.value)),
        raw=str(data.get("raw", message)),
    )
