"""Error kinds raised by the ingestion pipeline."""

from __future__ import annotations


class LogIngestError(Exception):
    """Base class for ingestion errors."""


class SourceUnreadableError(LogIngestError, OSError):
    """A source could not be opened or read. Fatal for that source only."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Cannot read log source {source}: {reason}")
        self.source = source
        self.reason = reason


class InvalidSpecError(LogIngestError, ValueError):
    """A filter/aggregation/merge spec was rejected before processing."""


class LineParseError(LogIngestError, ValueError):
    """A line did not match the grammar of its source's format."""

    def __init__(self, reason: str, *, kind: str = "pattern_mismatch") -> None:
        super().__init__(reason)
        self.kind = kind
