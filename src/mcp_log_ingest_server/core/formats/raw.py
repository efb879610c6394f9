"""Fallback parser for unstructured text."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..models import Extraction, FormatTag, LogRecord
from ..normalizer import raw_record


@dataclass(frozen=True, slots=True)
class RawParser:
    """Accept every line verbatim: no timestamp, no level, no fields."""

    format: FormatTag = FormatTag.RAW

    def identify(self, sample: Sequence[str]) -> float:
        # Raw is chosen by the detector's fallback, never by score.
        return 0.0

    def extract(self, line: str) -> Extraction:
        return Extraction(format=self.format, message=line)

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        return raw_record(line)
