"""Chronological k-way merge of record streams.

Each source contributes at most one pending record to a heap keyed by
``(timestamp, source_index, sequence)``, so equal timestamps come out in
source order and then line order. Records without a timestamp inherit the
last timestamp seen on their source. A leading run of untimestamped records
is held until the source's first timestamp appears and sorts just before it;
a source that never yields a timestamp sorts at the very beginning.
"""

from __future__ import annotations

import heapq
import logging
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import field_validator

from .detection import SourceContext
from .filtering import FilterSpec
from .log_service import iter_source
from .models import LogRecord
from .settings import IngestSettings, resolve_settings
from .specs import SpecModel

logger = logging.getLogger(__name__)

_BEGINNING = datetime.min.replace(tzinfo=UTC)

RecordStream = Iterable[LogRecord] | AsyncIterable[LogRecord]


@dataclass(frozen=True, slots=True)
class MergedRecord:
    """A record tagged with where it came from and the time it was sorted by."""

    source_index: int
    sequence: int
    record: LogRecord
    sort_time: datetime | None  # None: source had no timestamps at all

    @property
    def key(self) -> tuple[datetime, int, int]:
        return (self.sort_time or _BEGINNING, self.source_index, self.sequence)


async def _as_async(stream: RecordStream) -> AsyncIterator[LogRecord]:
    if isinstance(stream, AsyncIterable):
        try:
            async for record in stream:
                yield record
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
    else:
        for record in stream:
            yield record


class _SourceCursor:
    def __init__(self, index: int, stream: RecordStream) -> None:
        self.index = index
        self._it = _as_async(stream)
        self._seq = 0
        self._last_ts: datetime | None = None
        self._ready: deque[MergedRecord] = deque()

    def _tag(self, record: LogRecord, sort_time: datetime | None) -> MergedRecord:
        merged = MergedRecord(self.index, self._seq, record, sort_time)
        self._seq += 1
        return merged

    async def next(self) -> MergedRecord | None:
        if self._ready:
            return self._ready.popleft()

        held: list[LogRecord] = []
        while True:
            record = await anext(self._it, None)
            if record is None:
                break
            if record.timestamp is not None:
                self._last_ts = record.timestamp
                self._ready.extend(self._tag(r, record.timestamp) for r in held)
                self._ready.append(self._tag(record, record.timestamp))
                return self._ready.popleft()
            if self._last_ts is not None:
                return self._tag(record, self._last_ts)
            held.append(record)

        # exhausted before any timestamp
        self._ready.extend(self._tag(r, None) for r in held)
        return self._ready.popleft() if self._ready else None

    async def aclose(self) -> None:
        await self._it.aclose()


async def merge_records(streams: Sequence[RecordStream]) -> AsyncIterator[MergedRecord]:
    """Merge independent record streams into one chronological stream."""
    cursors = [_SourceCursor(i, s) for i, s in enumerate(streams)]
    heap: list[tuple[datetime, int, int, MergedRecord]] = []
    try:
        for cursor in cursors:
            first = await cursor.next()
            if first is not None:
                heapq.heappush(heap, (*first.key, first))

        while heap:
            *_, merged = heapq.heappop(heap)
            yield merged
            following = await cursors[merged.source_index].next()
            if following is not None:
                heapq.heappush(heap, (*following.key, following))
    finally:
        for cursor in cursors:
            await cursor.aclose()


class MergeSpec(SpecModel):
    """The files to merge, in tie-break order."""

    log_paths: list[str]

    @field_validator("log_paths")
    @classmethod
    def _non_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one log path is required")
        if any(not p.strip() for p in v):
            raise ValueError("log paths must not be blank")
        return v


@dataclass(slots=True)
class MergeRun:
    sources: list[SourceContext]
    records: AsyncIterator[MergedRecord]


def merge_files(
    spec: MergeSpec,
    filter_spec: FilterSpec | None = None,
    *,
    settings: IngestSettings | None = None,
    now: datetime | None = None,
    **iter_kwargs,
) -> MergeRun:
    """Set up a merge over files.

    The filter is compiled here, before any file is opened. A file that cannot
    be read is logged, recorded on its context and contributes nothing.
    """
    cfg = settings or resolve_settings()
    record_filter = (filter_spec or FilterSpec()).compile(now=now)
    contexts = [
        SourceContext(name=path, index=i, sample_lines=cfg.sample_lines)
        for i, path in enumerate(spec.log_paths)
    ]
    streams = [
        iter_source(ctx, filter_=record_filter, settings=cfg, now=now, **iter_kwargs)
        for ctx in contexts
    ]
    logger.debug("Merging %d sources", len(streams))
    return MergeRun(sources=contexts, records=merge_records(streams))
