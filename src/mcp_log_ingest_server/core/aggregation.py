"""Single-pass aggregation over record streams."""

from __future__ import annotations

from collections import Counter
from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import Field

from .models import LogRecord, field_text, format_timestamp
from .specs import SpecModel

BucketName = Literal["minute", "hour", "day"]

BUCKET_SECONDS: dict[str, int] = {"minute": 60, "hour": 3600, "day": 86400}
DEFAULT_TOP_N = 10


class AggregationSpec(SpecModel):
    """Which aggregations to compute. A summary is always produced."""

    count_by: str | None = None
    top_by: str | None = None
    top_n: int = Field(default=DEFAULT_TOP_N, ge=1)
    histogram: BucketName | None = None
    unique: str | None = None


@dataclass(slots=True)
class AggregationResult:
    spec: AggregationSpec
    total: int = 0
    with_timestamp: int = 0
    with_level: int = 0
    levels: dict[str, int] = field(default_factory=dict)
    formats: dict[str, int] = field(default_factory=dict)
    count_by: dict[str, int] | None = None
    top: list[tuple[str, int]] | None = None
    histogram: list[tuple[datetime, int]] | None = None
    unique: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "summary": {
                "total": self.total,
                "with_timestamp": self.with_timestamp,
                "with_level": self.with_level,
                "levels": dict(self.levels),
                "formats": dict(self.formats),
            }
        }
        if self.count_by is not None:
            out["count_by"] = {"field": self.spec.count_by, "counts": dict(self.count_by)}
        if self.top is not None:
            out["top"] = {
                "field": self.spec.top_by,
                "n": self.spec.top_n,
                "values": [{"value": v, "count": c} for v, c in self.top],
            }
        if self.histogram is not None:
            out["histogram"] = {
                "bucket": self.spec.histogram,
                "buckets": [
                    {"start": format_timestamp(start), "count": c} for start, c in self.histogram
                ],
            }
        if self.unique is not None:
            out["unique"] = {"field": self.spec.unique, "values": list(self.unique)}
        return out


class Aggregator:
    """Consumes records one at a time; memory grows with distinct keys only."""

    def __init__(self, spec: AggregationSpec | None = None) -> None:
        self.spec = spec or AggregationSpec()
        self._total = 0
        self._with_ts = 0
        self._with_level = 0
        self._levels: Counter[str] = Counter()
        self._formats: Counter[str] = Counter()
        # dicts keep first-seen order
        self._count_by: dict[str, int] = {}
        self._top_by: Counter[str] = Counter()
        self._buckets: dict[int, int] = {}
        self._unique: dict[str, None] = {}

    def add(self, record: LogRecord) -> None:
        spec = self.spec
        self._total += 1
        self._formats[record.format.value] += 1
        if record.level is not None:
            self._with_level += 1
            self._levels[record.level.value] += 1

        if record.timestamp is not None:
            self._with_ts += 1
            if spec.histogram is not None:
                width = BUCKET_SECONDS[spec.histogram]
                key = int(record.timestamp.timestamp() // width)
                self._buckets[key] = self._buckets.get(key, 0) + 1

        fields = record.fields
        if spec.count_by is not None and spec.count_by in fields:
            value = field_text(fields[spec.count_by])
            self._count_by[value] = self._count_by.get(value, 0) + 1
        if spec.top_by is not None and spec.top_by in fields:
            self._top_by[field_text(fields[spec.top_by])] += 1
        if spec.unique is not None and spec.unique in fields:
            self._unique.setdefault(field_text(fields[spec.unique]), None)

    def extend(self, records: Iterable[LogRecord]) -> Aggregator:
        for record in records:
            self.add(record)
        return self

    def _dense_histogram(self) -> list[tuple[datetime, int]]:
        if not self._buckets:
            return []
        width = BUCKET_SECONDS[self.spec.histogram]
        lo, hi = min(self._buckets), max(self._buckets)
        return [
            (datetime.fromtimestamp(k * width, tz=UTC), self._buckets.get(k, 0))
            for k in range(lo, hi + 1)
        ]

    def result(self) -> AggregationResult:
        spec = self.spec
        res = AggregationResult(
            spec=spec,
            total=self._total,
            with_timestamp=self._with_ts,
            with_level=self._with_level,
            levels=dict(self._levels),
            formats=dict(self._formats),
        )
        if spec.count_by is not None:
            res.count_by = dict(self._count_by)
        if spec.top_by is not None:
            ranked = sorted(self._top_by.items(), key=lambda kv: (-kv[1], kv[0]))
            res.top = ranked[: spec.top_n]
        if spec.histogram is not None:
            res.histogram = self._dense_histogram()
        if spec.unique is not None:
            res.unique = list(self._unique)
        return res


async def aggregate(
    records: Iterable[LogRecord] | AsyncIterable[LogRecord],
    spec: AggregationSpec | None = None,
) -> AggregationResult:
    """Run one aggregation pass over a sync or async record stream."""
    agg = Aggregator(spec)
    if isinstance(records, AsyncIterable):
        async for record in records:
            agg.add(record)
    else:
        agg.extend(records)
    return agg.result()
