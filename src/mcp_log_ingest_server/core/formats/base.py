"""Parser interface and sampling helpers."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Protocol

from ..models import Extraction, FormatTag, LogRecord


class LogParser(Protocol):
    """Parser capability: score a sample, extract a line, parse a line."""

    format: FormatTag

    def identify(self, sample: Sequence[str]) -> float:
        """Return a structural match score in [0, 1] for the sample."""
        ...

    def extract(self, line: str) -> Extraction:
        """Pull raw fields out of a line or raise LineParseError."""
        ...

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Extract and normalize a line or raise LineParseError."""
        ...


def non_empty(sample: Sequence[str]) -> list[str]:
    """Sample lines that carry content."""
    return [line for line in sample if line.strip()]


def match_ratio(sample: Sequence[str], matches: Callable[[str], bool]) -> float:
    """Fraction of non-empty sample lines accepted by ``matches``."""
    lines = non_empty(sample)
    if not lines:
        return 0.0
    hits = sum(1 for line in lines if matches(line))
    return hits / len(lines)
