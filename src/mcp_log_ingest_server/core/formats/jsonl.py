"""JSON-lines parser."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..errors import LineParseError
from ..models import Extraction, FormatTag, LogRecord
from ..normalizer import normalize
from .base import match_ratio
from .kv import LEVEL_KEYS, MESSAGE_KEYS, TIME_KEYS, extract_common_fields, to_scalar


def _load_object(line: str) -> dict | None:
    s = line.strip()
    if not (s.startswith("{") and s.endswith("}")):
        return None
    try:
        obj = json.loads(s)
    except (json.JSONDecodeError, RecursionError):
        return None
    return obj if isinstance(obj, dict) else None


@dataclass(frozen=True, slots=True)
class JsonLinesParser:
    """Parse JSON-lines logs (one JSON object per line)."""

    time_keys: Sequence[str] = TIME_KEYS
    level_keys: Sequence[str] = LEVEL_KEYS
    msg_keys: Sequence[str] = MESSAGE_KEYS
    format: FormatTag = FormatTag.JSON

    def identify(self, sample: Sequence[str]) -> float:
        """Ratio of sample lines that decode to a JSON object."""
        return match_ratio(sample, lambda line: _load_object(line) is not None)

    def extract(self, line: str) -> Extraction:
        """Decode a JSON object line and resolve its well-known keys."""
        s = line.strip()
        if not (s.startswith("{") and s.endswith("}")):
            raise LineParseError("not a JSON object", kind="json_not_object")
        try:
            obj = json.loads(s)
        except json.JSONDecodeError as exc:
            raise LineParseError(f"invalid JSON: {exc.msg}", kind="json_syntax") from exc
        except RecursionError as exc:
            raise LineParseError("JSON nested too deeply", kind="json_syntax") from exc
        if not isinstance(obj, dict):
            raise LineParseError("not a JSON object", kind="json_not_object")

        ts, level, message, rest = extract_common_fields(
            obj,
            time_keys=self.time_keys,
            level_keys=self.level_keys,
            message_keys=self.msg_keys,
        )

        fields = {}
        for key, value in rest.items():
            scalar = to_scalar(value)
            if scalar is not None:
                fields[key] = scalar

        if isinstance(ts, (dict, list)):
            ts = None
        return Extraction(
            format=self.format,
            message=str(to_scalar(message)) if message is not None else s,
            timestamp=ts,
            level=str(level) if level is not None else None,
            fields=fields,
        )

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Parse a JSON object line into a LogRecord."""
        return normalize(self.extract(line), line, now=now)
