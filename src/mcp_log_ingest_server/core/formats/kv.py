"""Helpers for key-value log formats (JSON and logfmt)."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..models import FieldValue

TIME_KEYS: Sequence[str] = ("timestamp", "time", "ts", "@timestamp")
LEVEL_KEYS: Sequence[str] = ("level", "severity", "lvl")
MESSAGE_KEYS: Sequence[str] = ("message", "msg")

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")


def to_scalar(value: Any) -> FieldValue | None:
    """Flatten a decoded value into a scalar field value (None drops it)."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=False, default=str)


def coerce_token(value: str) -> FieldValue:
    """Coerce an unquoted logfmt value into int/float/bool when it looks like one."""
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def _pop_first(fields: dict[str, Any], keys: Sequence[str]) -> Any:
    """Remove and return the value of the first candidate key present."""
    lower = {k.lower(): k for k in fields}
    for key in keys:
        actual = lower.get(key)
        if actual is not None and fields[actual] is not None:
            return fields.pop(actual)
    return None


def extract_common_fields(
    fields: Mapping[str, Any],
    *,
    time_keys: Sequence[str] = TIME_KEYS,
    level_keys: Sequence[str] = LEVEL_KEYS,
    message_keys: Sequence[str] = MESSAGE_KEYS,
) -> tuple[Any, Any, Any, dict[str, Any]]:
    """Split timestamp, level and message out of key-value fields.

    Returns ``(timestamp, level, message, remaining_fields)``; the resolved
    keys are removed from the remaining fields.
    """
    rest = dict(fields)
    ts = _pop_first(rest, time_keys)
    level = _pop_first(rest, level_keys)
    message = _pop_first(rest, message_keys)
    return ts, level, message, rest
