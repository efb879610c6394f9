"""Logfmt parser."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..errors import LineParseError
from ..models import Extraction, FieldValue, FormatTag, LogRecord
from ..normalizer import normalize
from .base import non_empty
from .kv import coerce_token, extract_common_fields

_TOKEN_RE = re.compile(
    r'(?P<key>[^\s="]+)=(?:"(?P<qv>(?:[^"\\]|\\.)*)"|(?P<v>[^\s"]*))'
    r'|"(?P<bq>(?:[^"\\]|\\.)*)"'
    r"|(?P<bare>\S+)"
)
_ESCAPE_RE = re.compile(r"\\(.)")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}
_LEADING_TS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")


def _unescape(value: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), value)


def tokenize(line: str) -> list[tuple[str | None, str, bool]]:
    """Split a logfmt line into ``(key, value, quoted)`` tokens.

    Bare words come back with ``key=None``. Raises LineParseError on an
    unterminated quote.
    """
    tokens: list[tuple[str | None, str, bool]] = []
    for m in _TOKEN_RE.finditer(line):
        if m.group("key") is not None:
            if m.group("qv") is not None:
                tokens.append((m.group("key"), _unescape(m.group("qv")), True))
            else:
                tokens.append((m.group("key"), m.group("v") or "", False))
        elif m.group("bq") is not None:
            tokens.append((None, _unescape(m.group("bq")), True))
        else:
            bare = m.group("bare")
            if bare.startswith('"'):
                raise LineParseError("unterminated quoted value", kind="logfmt_malformed")
            tokens.append((None, bare, False))
    return tokens


def _pair_density(line: str) -> float:
    try:
        tokens = tokenize(line)
    except LineParseError:
        return 0.0
    pairs = sum(1 for key, _, _ in tokens if key is not None)
    if pairs < 2:
        return 0.0
    return pairs / len(tokens)


@dataclass(frozen=True, slots=True)
class LogfmtParser:
    """Parse logfmt ``key=value`` lines."""

    format: FormatTag = FormatTag.LOGFMT

    def identify(self, sample: Sequence[str]) -> float:
        """Mean key=value token density over the sample."""
        lines = non_empty(sample)
        if not lines:
            return 0.0
        return sum(_pair_density(line) for line in lines) / len(lines)

    def extract(self, line: str) -> Extraction:
        """Tokenize a logfmt line and resolve its well-known keys."""
        tokens = tokenize(line)

        pairs: dict[str, FieldValue] = {}
        bare: list[str] = []
        for key, value, quoted in tokens:
            if key is None:
                bare.append(value)
                continue
            pairs[key] = value if quoted else coerce_token(value)

        if not pairs:
            raise LineParseError("no key=value pairs", kind="logfmt_insufficient_pairs")

        ts, level, message, fields = extract_common_fields(pairs)
        if ts is None and bare and _LEADING_TS_RE.match(bare[0]) and tokens[0][0] is None:
            ts = bare.pop(0)
        if message is None:
            message = " ".join(bare) if bare else line.strip()

        return Extraction(
            format=self.format,
            message=str(message),
            timestamp=ts,
            level=str(level) if level is not None else None,
            fields=fields,
        )

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Parse a logfmt line into a LogRecord."""
        return normalize(self.extract(line), line, now=now)