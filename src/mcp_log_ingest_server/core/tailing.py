"""Incremental file tailing.

A :class:`FileTailer` remembers a byte offset per file and only ever reads
bytes past it. Complete lines are parsed once; a trailing partial line is kept
in a buffer until its newline arrives. When the file shrinks or is replaced,
the tailer starts over at offset 0 of the new file and keeps the format it
already detected.

States::

    IDLE -> READING -> WAITING_FOR_GROWTH -> READING ...
                 \\-> ROTATED -> READING
    any -> STOPPED (stop event set)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

import aiofiles
import aiofiles.os

from .detection import SourceContext
from .errors import SourceUnreadableError
from .filtering import MATCH_ALL, FilterSpec, RecordFilter
from .log_service import read_sample
from .models import LogRecord
from .settings import IngestSettings, resolve_settings

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 1 << 20


class TailState(str, Enum):
    IDLE = "idle"
    READING = "reading"
    WAITING_FOR_GROWTH = "waiting_for_growth"
    ROTATED = "rotated"
    STOPPED = "stopped"


@dataclass
class TailContext:
    """Everything a tailer knows about its file between polls."""

    path: Path
    source: SourceContext
    offset: int = 0
    partial: bytes = b""
    inode: int | None = None
    state: TailState = TailState.IDLE
    started: bool = False
    rotations: int = 0


@dataclass(frozen=True, slots=True)
class TailOptions:
    from_end: bool = False
    lines: int = 0
    chunk_size: int = READ_CHUNK_BYTES
    encoding: str = "utf-8"
    decode_errors: str = "replace"


async def line_start_offset(path: Path, size: int, lines: int, *, chunk_size: int = READ_CHUNK_BYTES) -> int:
    """Return the offset where the last ``lines`` complete lines before ``size`` begin.

    The file is scanned backwards in chunks. A trailing line without its
    newline is not counted, so the offset always sits at a line start and an
    unfinished last line is read again once it is complete.
    """
    wanted = lines + 1
    pos = size
    async with aiofiles.open(path, "rb") as f:
        while pos > 0:
            start = max(0, pos - chunk_size)
            await f.seek(start)
            chunk = await f.read(pos - start)
            end = len(chunk)
            while (i := chunk.rfind(b"\n", 0, end)) >= 0:
                wanted -= 1
                if wanted == 0:
                    return start + i + 1
                end = i
            pos = start
    return 0


class FileTailer:
    """Follow one growing file, emitting each complete line exactly once."""

    def __init__(
        self,
        path: str | Path,
        *,
        filter_: RecordFilter = MATCH_ALL,
        settings: IngestSettings | None = None,
        from_end: bool = False,
        lines: int = 0,
        index: int = 0,
        encoding: str = "utf-8",
        decode_errors: str = "replace",
        chunk_size: int = READ_CHUNK_BYTES,
    ) -> None:
        if lines < 0:
            raise ValueError("lines must be >= 0")
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.settings = settings or resolve_settings()
        p = Path(path)
        self.context = TailContext(
            path=p,
            source=SourceContext(name=str(p), index=index, sample_lines=self.settings.sample_lines),
        )
        self.filter = filter_
        self.options = TailOptions(
            from_end=from_end,
            lines=lines,
            chunk_size=chunk_size,
            encoding=encoding,
            decode_errors=decode_errors,
        )

    @property
    def state(self) -> TailState:
        return self.context.state

    async def _stat(self):
        ctx = self.context
        try:
            return await aiofiles.os.stat(ctx.path)
        except FileNotFoundError as exc:
            if ctx.started:
                # mid-rotation: old file moved away, new one not created yet
                logger.debug("%s: file missing, waiting for it to reappear", ctx.path)
                return None
            raise SourceUnreadableError(str(ctx.path), "no such file") from exc
        except OSError as exc:
            raise SourceUnreadableError(str(ctx.path), str(exc)) from exc

    async def _start(self, size: int) -> None:
        ctx = self.context
        ctx.started = True
        if self.options.from_end:
            # the head decides the format; reading resumes at a line start near the end
            sample = await read_sample(
                ctx.path,
                sample_lines=ctx.source.sample_lines,
                encoding=self.options.encoding,
                decode_errors=self.options.decode_errors,
            )
            if sample:
                ctx.source.ensure_detected(sample)
            ctx.offset = await line_start_offset(
                ctx.path, size, self.options.lines, chunk_size=self.options.chunk_size
            )

    def _decode(self, chunk: bytes) -> str:
        return chunk.decode(self.options.encoding, errors=self.options.decode_errors).rstrip("\r")

    async def poll(self, *, now: datetime | None = None) -> list[LogRecord]:
        """Run one read pass and return the new records that pass the filter.

        At most ``chunk_size`` bytes are read per pass; the state stays READING
        while more unread bytes remain.
        """
        ctx = self.context
        if ctx.state is TailState.STOPPED:
            return []

        st = await self._stat()
        if st is None:
            ctx.state = TailState.WAITING_FOR_GROWTH
            return []
        if not ctx.started:
            await self._start(st.st_size)
            ctx.inode = st.st_ino

        replaced = ctx.inode is not None and st.st_ino != ctx.inode
        if st.st_size < ctx.offset or replaced:
            ctx.state = TailState.ROTATED
            ctx.rotations += 1
            logger.info("%s: rotation detected; restarting at offset 0", ctx.path)
            ctx.offset = 0
            ctx.partial = b""
        ctx.inode = st.st_ino

        if st.st_size == ctx.offset:
            ctx.state = TailState.WAITING_FOR_GROWTH
            return []

        ctx.state = TailState.READING
        try:
            async with aiofiles.open(ctx.path, "rb") as f:
                await f.seek(ctx.offset)
                data = await f.read(self.options.chunk_size)
        except OSError as exc:
            raise SourceUnreadableError(str(ctx.path), str(exc)) from exc

        ctx.offset += len(data)
        *complete, ctx.partial = (ctx.partial + data).split(b"\n")
        lines = [line for line in map(self._decode, complete) if line.strip()]
        if not lines:
            return []

        source = ctx.source
        if source.detection is None:
            source.ensure_detected(lines[: source.sample_lines])

        out: list[LogRecord] = []
        for line in lines:
            record = source.parse(line, now=now)
            if self.filter.evaluate(record):
                out.append(record)
        return out

    async def follow(self, stop_event: asyncio.Event | None = None) -> AsyncIterator[LogRecord]:
        """Yield records as the file grows until ``stop_event`` is set.

        Waiting backs off from the poll interval up to the configured maximum
        and resets as soon as new bytes show up.
        """
        stop = stop_event or asyncio.Event()
        base = self.settings.tail_poll_seconds
        interval = base
        try:
            while not stop.is_set():
                for record in await self.poll():
                    yield record

                if self.context.state is not TailState.WAITING_FOR_GROWTH:
                    interval = base
                    continue
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                except TimeoutError:
                    interval = min(interval * 2, self.settings.tail_max_poll_seconds)
        finally:
            self.context.state = TailState.STOPPED


async def _fan_in(tailers: Sequence[FileTailer], stop: asyncio.Event) -> AsyncIterator[tuple[int, LogRecord]]:
    queue: asyncio.Queue[object] = asyncio.Queue()
    done = object()

    async def pump(tailer: FileTailer) -> None:
        source = tailer.context.source
        try:
            async for record in tailer.follow(stop):
                await queue.put((source.index, record))
        except SourceUnreadableError as exc:
            logger.error("%s", exc)
            source.error = exc.reason
        finally:
            await queue.put(done)

    tasks = [asyncio.create_task(pump(t)) for t in tailers]
    remaining = len(tasks)
    try:
        while remaining:
            item = await queue.get()
            if item is done:
                remaining -= 1
                continue
            yield item
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


@dataclass(slots=True)
class TailRun:
    sources: list[SourceContext]
    records: AsyncIterator[tuple[int, LogRecord]]


def tail_files(
    log_paths: Sequence[str | Path],
    *,
    filter_spec: FilterSpec | None = None,
    stop_event: asyncio.Event | None = None,
    settings: IngestSettings | None = None,
    from_end: bool = False,
    lines: int = 0,
) -> TailRun:
    """Set up following several files at once.

    ``records`` yields ``(source_index, record)``. The filter is compiled here,
    before any file is opened. A file that cannot be read ends its own tailer
    only; the reason is kept on its entry in ``sources``.
    """
    cfg = settings or resolve_settings()
    record_filter = (filter_spec or FilterSpec()).compile()
    stop = stop_event or asyncio.Event()
    tailers = [
        FileTailer(p, filter_=record_filter, settings=cfg, from_end=from_end, lines=lines, index=i)
        for i, p in enumerate(log_paths)
    ]
    return TailRun(
        sources=[t.context.source for t in tailers],
        records=_fan_in(tailers, stop),
    )
