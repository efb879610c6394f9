"""Apache error log parser (2.2 and 2.4 layouts)."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..errors import LineParseError
from ..models import Extraction, FieldValue, FormatTag, LogRecord
from ..normalizer import normalize
from .base import match_ratio


@dataclass(frozen=True, slots=True)
class ApacheErrorParser:
    """Parse ``[ts] [module:level] [pid N:tid M] [client addr] message`` lines."""

    format: FormatTag = FormatTag.APACHE

    _re = re.compile(
        r"^\[(?P<ts>[A-Z][a-z]{2} [A-Z][a-z]{2} +\d{1,2} \d{2}:\d{2}:\d{2}(?:\.\d+)? \d{4})\]\s+"
        r"\[(?:(?P<module>[\w-]+):)?(?P<level>[A-Za-z]+\d?)\]\s*"
        r"(?:\[pid (?P<pid>\d+)(?::tid (?P<tid>\d+))?\]\s*)?"
        r"(?:\[client (?P<client>[^\]]+)\]\s*)?"
        r"(?P<msg>.*)$"
    )

    def identify(self, sample: Sequence[str]) -> float:
        """Ratio of sample lines with Apache error-log framing."""
        return match_ratio(sample, lambda line: self._re.match(line) is not None)

    def extract(self, line: str) -> Extraction:
        """Match the bracketed header of an Apache error line."""
        m = self._re.match(line)
        if not m:
            raise LineParseError("does not match Apache error log framing")

        fields: dict[str, FieldValue] = {}
        if m.group("module"):
            fields["module"] = m.group("module")
        if m.group("pid"):
            fields["pid"] = int(m.group("pid"))
        if m.group("tid"):
            fields["tid"] = int(m.group("tid"))
        if m.group("client"):
            fields["client"] = m.group("client")

        # 2.4 uses trace1..trace8
        level = m.group("level").rstrip("0123456789")
        return Extraction(
            format=self.format,
            message=m.group("msg").strip(),
            timestamp=m.group("ts"),
            level=level,
            fields=fields,
        )

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Parse an Apache error log line into a LogRecord."""
        return normalize(self.extract(line), line, now=now)
