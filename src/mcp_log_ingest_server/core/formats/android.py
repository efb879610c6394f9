"""Android logcat parser (threadtime layout)."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..errors import LineParseError
from ..models import Extraction, FormatTag, LogRecord
from ..normalizer import normalize
from .base import match_ratio

_PRIORITIES = {
    "V": "trace",
    "D": "debug",
    "I": "info",
    "W": "warn",
    "E": "error",
    "F": "critical",
    "A": "critical",
}


@dataclass(frozen=True, slots=True)
class AndroidLogcatParser:
    """Parse ``MM-DD HH:MM:SS.mmm pid tid P tag: message`` lines."""

    format: FormatTag = FormatTag.ANDROID

    _re = re.compile(
        r"^(?P<ts>\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}(?:\.\d+)?)\s+"
        r"(?P<pid>\d+)\s+(?P<tid>\d+)\s+"
        r"(?P<prio>[VDIWEFA])\s+"
        r"(?P<tag>[^:]*?)\s*:\s?"
        r"(?P<msg>.*)$"
    )

    def identify(self, sample: Sequence[str]) -> float:
        """Ratio of sample lines with logcat threadtime framing."""
        return match_ratio(sample, lambda line: self._re.match(line) is not None)

    def extract(self, line: str) -> Extraction:
        """Split a logcat line into its header fields."""
        m = self._re.match(line)
        if not m:
            raise LineParseError("does not match logcat framing")
        return Extraction(
            format=self.format,
            message=m.group("msg").strip(),
            timestamp=m.group("ts"),
            level=_PRIORITIES[m.group("prio")],
            fields={
                "pid": int(m.group("pid")),
                "tid": int(m.group("tid")),
                "tag": m.group("tag").strip(),
            },
        )

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Parse a logcat line into a LogRecord."""
        return normalize(self.extract(line), line, now=now)
