"""Source reading, detection and record iteration.

This module is the main integration point that reads log sources and turns
them into filtered canonical records. Each source is read exactly once: the
first lines are buffered for format detection and then replayed through the
parser together with the rest of the stream.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime
from functools import partial
from pathlib import Path

import aiofiles
from aiofiles.threadpool import wrap

from .detection import Detection, SourceContext
from .errors import SourceUnreadableError
from .filtering import MATCH_ALL, RecordFilter
from .models import LogRecord
from .normalizer import tally, try_parse
from .settings import IngestSettings, resolve_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _open_text(path: Path, *, encoding: str, decode_errors: str):
    """Open a log file for async text reading (plain or gzip)."""
    if path.suffix.lower() == ".gz":
        f = gzip.open(path, mode="rt", encoding=encoding, errors=decode_errors)
        af = wrap(f)
        try:
            yield af
        finally:
            await af.close()
    else:
        async with aiofiles.open(path, encoding=encoding, errors=decode_errors) as f:
            yield f


async def _content_lines(f) -> AsyncIterator[str]:
    """Yield lines without terminators, skipping blank ones."""
    async for line in f:
        line = line.rstrip("\r\n")
        if line.strip():
            yield line


def _check_file(path: Path) -> None:
    if not path.is_file():
        raise SourceUnreadableError(str(path), "no such file")


def _resolve_max_workers(max_workers: int | None, settings: IngestSettings) -> int:
    if max_workers is not None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        return max_workers
    return settings.max_workers


async def _run_pipeline(
    work_iter: AsyncIterator[tuple[int, object]],
    *,
    worker_count: int,
    processor: Callable[[object], Awaitable[object]],
) -> AsyncIterator[object]:
    """Process items on ``worker_count`` workers, yielding results in input order."""
    if worker_count < 1:
        raise ValueError("worker_count must be >= 1")

    queue_size = max(1, worker_count * 4)
    work_queue: asyncio.Queue[tuple[object, object]] = asyncio.Queue(maxsize=queue_size)
    result_queue: asyncio.Queue[tuple[object, object]] = asyncio.Queue(maxsize=queue_size)
    work_sentinel = object()
    done_sentinel = object()
    errors: list[Exception] = []

    async def reader() -> None:
        try:
            async for seq, item in work_iter:
                await work_queue.put((seq, item))
        except Exception as exc:
            errors.append(exc)
        finally:
            for _ in range(worker_count):
                await work_queue.put((work_sentinel, None))

    async def worker() -> None:
        try:
            while True:
                seq, item = await work_queue.get()
                if seq is work_sentinel:
                    break
                result = await processor(item)
                await result_queue.put((seq, result))
        except Exception as exc:
            errors.append(exc)
        finally:
            await result_queue.put((done_sentinel, None))

    reader_task = asyncio.create_task(reader())
    worker_tasks = [asyncio.create_task(worker()) for _ in range(worker_count)]

    pending: dict[int, object] = {}
    next_seq = 0
    done_workers = 0

    try:
        while True:
            seq, result = await result_queue.get()
            if seq is done_sentinel:
                done_workers += 1
                if done_workers == worker_count:
                    break
                continue

            pending[seq] = result
            while next_seq in pending:
                yield pending.pop(next_seq)
                next_seq += 1

        if errors:
            raise errors[0]
    finally:
        reader_task.cancel()
        for task in worker_tasks:
            task.cancel()
        await asyncio.gather(reader_task, *worker_tasks, return_exceptions=True)


async def records_from_lines(
    lines: AsyncIterable[str] | Iterable[str],
    context: SourceContext,
    *,
    filter_: RecordFilter = MATCH_ALL,
    max_workers: int = 1,
    now: datetime | None = None,
) -> AsyncIterator[LogRecord]:
    """Detect, parse and filter a stream of lines belonging to one source.

    The first ``context.sample_lines`` lines are held back for detection (unless
    the context already carries a decision) and then parsed like every other
    line, so nothing is read twice.
    """
    if isinstance(lines, AsyncIterable):
        it = aiter(lines)

        async def _next() -> str | None:
            try:
                return await anext(it)
            except StopAsyncIteration:
                return None
    else:
        sync_it = iter(lines)

        async def _next() -> str | None:
            return next(sync_it, None)

    head: list[str] = []
    if context.detection is None:
        while len(head) < context.sample_lines:
            line = await _next()
            if line is None:
                break
            head.append(line)
        context.ensure_detected(head)

    parser = context.parser
    fmt = parser.format

    async def all_lines() -> AsyncIterator[str]:
        for line in head:
            yield line
        while (line := await _next()) is not None:
            yield line

    if max_workers > 1:
        loop = asyncio.get_running_loop()
        parse = partial(try_parse, parser, now=now)

        async def work_iter() -> AsyncIterator[tuple[int, object]]:
            seq = 0
            async for line in all_lines():
                yield seq, line
                seq += 1

        async def process_line(line: object) -> object:
            return await loop.run_in_executor(executor, parse, line)

        executor = ThreadPoolExecutor(max_workers=max_workers)
        try:
            async for result in _run_pipeline(
                work_iter(), worker_count=max_workers, processor=process_line
            ):
                record, error = result
                tally(context.summary, error, source=context.name, format=fmt)
                if filter_.evaluate(record):
                    yield record
        finally:
            executor.shutdown(wait=True)
        return

    async for line in all_lines():
        record, error = try_parse(parser, line, now=now)
        tally(context.summary, error, source=context.name, format=fmt)
        if filter_.evaluate(record):
            yield record


async def iter_records(
    log_path: str | Path,
    *,
    filter_: RecordFilter | None = None,
    context: SourceContext | None = None,
    settings: IngestSettings | None = None,
    max_workers: int | None = None,
    encoding: str = "utf-8",
    decode_errors: str = "replace",
    now: datetime | None = None,
) -> AsyncIterator[LogRecord]:
    """Yield the filtered canonical records of one file (plain or ``.gz``).

    Raises :class:`SourceUnreadableError` when the file cannot be opened or read.
    """
    cfg = settings or resolve_settings()
    path = Path(log_path)
    ctx = context or SourceContext(name=str(path), sample_lines=cfg.sample_lines)
    workers = _resolve_max_workers(max_workers, cfg)
    if path.suffix.lower() == ".gz":
        workers = 1

    _check_file(path)
    try:
        async with _open_text(path, encoding=encoding, decode_errors=decode_errors) as f:
            async for record in records_from_lines(
                _content_lines(f),
                ctx,
                filter_=filter_ or MATCH_ALL,
                max_workers=workers,
                now=now,
            ):
                yield record
    except SourceUnreadableError:
        raise
    except (OSError, EOFError) as exc:
        raise SourceUnreadableError(str(path), str(exc)) from exc


async def iter_source(
    context: SourceContext,
    **iter_kwargs,
) -> AsyncIterator[LogRecord]:
    """Like :func:`iter_records` but a read failure only ends this source.

    The failure is logged and kept on ``context.error``.
    """
    try:
        async for record in iter_records(context.name, context=context, **iter_kwargs):
            yield record
    except SourceUnreadableError as exc:
        logger.error("%s", exc)
        context.error = exc.reason


async def get_records(
    log_path: str | Path,
    **iter_kwargs,
) -> list[LogRecord]:
    """Collect iter_records into a list."""
    return [record async for record in iter_records(log_path, **iter_kwargs)]


async def read_sample(
    log_path: str | Path,
    *,
    sample_lines: int,
    encoding: str = "utf-8",
    decode_errors: str = "replace",
) -> list[str]:
    """Return up to ``sample_lines`` non-blank leading lines of a file."""
    path = Path(log_path)
    _check_file(path)
    sample: list[str] = []
    try:
        async with _open_text(path, encoding=encoding, decode_errors=decode_errors) as f:
            async for line in _content_lines(f):
                sample.append(line)
                if len(sample) >= sample_lines:
                    break
    except (OSError, EOFError) as exc:
        raise SourceUnreadableError(str(path), str(exc)) from exc
    return sample


async def detect_source(
    log_path: str | Path,
    *,
    context: SourceContext | None = None,
    settings: IngestSettings | None = None,
) -> Detection:
    """Detect (and cache on the context) the format of one file."""
    cfg = settings or resolve_settings()
    ctx = context or SourceContext(name=str(log_path), sample_lines=cfg.sample_lines)
    if ctx.detection is not None:
        return ctx.detection
    sample = await read_sample(log_path, sample_lines=ctx.sample_lines)
    return ctx.ensure_detected(sample)


async def detect_sources(
    log_paths: Sequence[str | Path],
    *,
    settings: IngestSettings | None = None,
) -> list[SourceContext]:
    """Detect several files concurrently; unreadable ones carry an error instead."""
    cfg = settings or resolve_settings()
    contexts = [
        SourceContext(name=str(p), index=i, sample_lines=cfg.sample_lines)
        for i, p in enumerate(log_paths)
    ]

    async def _one(ctx: SourceContext) -> None:
        try:
            await detect_source(ctx.name, context=ctx, settings=cfg)
        except SourceUnreadableError as exc:
            logger.error("%s", exc)
            ctx.error = exc.reason

    await asyncio.gather(*(_one(ctx) for ctx in contexts))
    return contexts
