"""Format detection and per-source context.

The detector scores every registered parser against a bounded prefix of a
source and keeps the winner in that source's :class:`SourceContext`. The
decision is made once; later lines that do not fit the grammar downgrade to
raw records individually without changing the source's format.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from .formats import PARSERS, LogParser, parser_for
from .models import FormatTag, LogRecord, ParseSummary
from .normalizer import parse_line

logger = logging.getLogger(__name__)

ACCEPT_THRESHOLD = 0.5
DEFAULT_SAMPLE_LINES = 20


@dataclass(frozen=True, slots=True)
class Detection:
    """Result of format detection for one source."""

    format: FormatTag
    confidence: float
    scores: dict[FormatTag, float] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, object]:
        return {
            "format": self.format.value,
            "confidence": round(self.confidence, 4),
            "scores": {tag.value: round(score, 4) for tag, score in self.scores.items()},
        }


def detect(
    sample: Sequence[str],
    *,
    parsers: Sequence[LogParser] = PARSERS,
    threshold: float = ACCEPT_THRESHOLD,
) -> Detection:
    """Pick the best-scoring format for a sample of lines.

    Ties keep the parser that comes first in ``parsers``. Scores below the
    threshold fall back to RAW.
    """
    scores: dict[FormatTag, float] = {}
    best: LogParser | None = None
    best_score = 0.0
    for parser in parsers:
        score = parser.identify(sample)
        scores[parser.format] = score
        if score > best_score:
            best, best_score = parser, score

    if best is None or best_score < threshold:
        return Detection(format=FormatTag.RAW, confidence=best_score, scores=scores)
    return Detection(format=best.format, confidence=best_score, scores=scores)


@dataclass
class SourceContext:
    """State owned by one source: its cached detection and parse tally."""

    name: str
    index: int = 0
    sample_lines: int = DEFAULT_SAMPLE_LINES
    detection: Detection | None = None
    summary: ParseSummary = field(default_factory=ParseSummary)
    error: str | None = None

    @property
    def format(self) -> FormatTag | None:
        return self.detection.format if self.detection is not None else None

    @property
    def parser(self) -> LogParser:
        if self.detection is None:
            raise RuntimeError(f"Format of {self.name} has not been detected yet")
        return parser_for(self.detection.format)

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.name,
            "format": self.format.value if self.format is not None else None,
            "confidence": round(self.detection.confidence, 4) if self.detection else None,
            "summary": self.summary.to_dict(),
            "error": self.error,
        }

    def ensure_detected(self, sample: Sequence[str]) -> Detection:
        """Detect the format from ``sample`` unless already decided."""
        if self.detection is not None:
            return self.detection

        detection = detect(sample[: self.sample_lines])
        if detection.format is FormatTag.RAW and any(line.strip() for line in sample):
            logger.warning(
                "%s: no format reached confidence %.2f (best %.2f); treating as raw text",
                self.name,
                ACCEPT_THRESHOLD,
                detection.confidence,
            )
        else:
            logger.debug(
                "%s: detected %s (confidence %.2f)",
                self.name,
                detection.format.value,
                detection.confidence,
            )
        self.detection = detection
        return detection

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Parse one line with the source's parser, falling back to raw."""
        return parse_line(self.parser, line, summary=self.summary, source=self.name, now=now)
