"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into core specs, and
return JSON-serializable data structures. Every spec is validated before any
file is opened.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from mcp_log_ingest_server.core.aggregation import AggregationSpec, Aggregator
from mcp_log_ingest_server.core.detection import SourceContext
from mcp_log_ingest_server.core.filtering import FilterSpec, with_context
from mcp_log_ingest_server.core.log_service import detect_source, iter_source
from mcp_log_ingest_server.core.merging import MergeSpec, merge_files
from mcp_log_ingest_server.core.models import LogRecord, record_to_dict
from mcp_log_ingest_server.core.settings import resolve_settings
from mcp_log_ingest_server.core.tailing import tail_files

DEFAULT_LIMIT = 200
HARD_LIMIT = 5000
DEFAULT_TAIL_SECONDS = 5.0
MAX_TAIL_SECONDS = 60.0

FieldsArg = dict[str, Any] | list[str] | None


def _resolve_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    return min(limit, HARD_LIMIT)


def _paths(log_paths: str | Sequence[str]) -> list[str]:
    if isinstance(log_paths, str):
        return [log_paths]
    return list(log_paths)


def _filter_spec(
    *,
    levels: Sequence[str] | None,
    pattern: str | None,
    regex: bool,
    ignore_case: bool,
    invert: bool,
    fields: FieldsArg,
    since: str | None,
    until: str | None,
) -> FilterSpec:
    return FilterSpec.build(
        levels=list(levels) if levels is not None else None,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=since,
        until=until,
    )


def _record_out(record: LogRecord, source: str, *, include_raw: bool) -> dict[str, Any]:
    d = record_to_dict(record, include_raw=include_raw)
    d["source"] = source
    return d


async def detect_log_format_impl(
    *,
    log_path: str,
    sample_lines: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `detect_log_format` MCP tool."""
    cfg = resolve_settings()
    if sample_lines is not None:
        if sample_lines < 1:
            raise ValueError("sample_lines must be >= 1")
        cfg = replace(cfg, sample_lines=sample_lines)
    detection = await detect_source(log_path, settings=cfg)
    return {"log_path": log_path, **detection.to_dict()}


async def parse_logs_impl(
    *,
    log_paths: str | Sequence[str],
    levels: Sequence[str] | None = None,
    pattern: str | None = None,
    regex: bool = False,
    ignore_case: bool = False,
    invert: bool = False,
    fields: FieldsArg = None,
    since: str | None = None,
    until: str | None = None,
    before: int = 0,
    after: int = 0,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Implementation for the `parse_logs` MCP tool.

    Sources are read in the given order; an unreadable source is reported in
    ``sources`` and does not stop the others. With ``before``/``after`` the
    neighbouring records of each match are returned too, flagged with
    ``"match": false``; context never crosses from one source into the next.
    """
    if before < 0 or after < 0:
        raise ValueError("before and after must be >= 0")
    with_ctx = before > 0 or after > 0
    record_filter = _filter_spec(
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=since,
        until=until,
    ).compile()
    limit = _resolve_limit(limit)
    cfg = resolve_settings()
    contexts = [
        SourceContext(name=p, index=i, sample_lines=cfg.sample_lines)
        for i, p in enumerate(_paths(log_paths))
    ]

    records: list[dict[str, Any]] = []
    truncated = False
    for ctx in contexts:
        source = iter_source(ctx, settings=cfg)
        stream = with_context(source, record_filter, before=before, after=after)
        try:
            async for record, matched in stream:
                if len(records) >= limit:
                    truncated = True
                    break
                out = _record_out(record, ctx.name, include_raw=include_raw)
                if with_ctx:
                    out["match"] = matched
                records.append(out)
        finally:
            await stream.aclose()
            await source.aclose()
        if truncated:
            break

    return {
        "count": len(records),
        "truncated": truncated,
        "records": records,
        "sources": [ctx.to_dict() for ctx in contexts],
    }


async def log_stats_impl(
    *,
    log_paths: str | Sequence[str],
    count_by: str | None = None,
    top_by: str | None = None,
    top_n: int | None = None,
    histogram: str | None = None,
    unique: str | None = None,
    levels: Sequence[str] | None = None,
    pattern: str | None = None,
    regex: bool = False,
    ignore_case: bool = False,
    invert: bool = False,
    fields: FieldsArg = None,
    since: str | None = None,
    until: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `log_stats` MCP tool (one pass over all sources)."""
    agg_spec = AggregationSpec.build(
        count_by=count_by, top_by=top_by, top_n=top_n, histogram=histogram, unique=unique
    )
    record_filter = _filter_spec(
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=since,
        until=until,
    ).compile()
    cfg = resolve_settings()
    contexts = [
        SourceContext(name=p, index=i, sample_lines=cfg.sample_lines)
        for i, p in enumerate(_paths(log_paths))
    ]

    aggregator = Aggregator(agg_spec)
    for ctx in contexts:
        async for record in iter_source(ctx, filter_=record_filter, settings=cfg):
            aggregator.add(record)

    out = aggregator.result().to_dict()
    out["sources"] = [ctx.to_dict() for ctx in contexts]
    return out


async def merge_logs_impl(
    *,
    log_paths: str | Sequence[str],
    levels: Sequence[str] | None = None,
    pattern: str | None = None,
    regex: bool = False,
    ignore_case: bool = False,
    invert: bool = False,
    fields: FieldsArg = None,
    since: str | None = None,
    until: str | None = None,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Implementation for the `merge_logs` MCP tool."""
    merge_spec = MergeSpec.build(log_paths=_paths(log_paths))
    filter_spec = _filter_spec(
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=since,
        until=until,
    )
    limit = _resolve_limit(limit)
    run = merge_files(merge_spec, filter_spec)

    records: list[dict[str, Any]] = []
    truncated = False
    try:
        async for merged in run.records:
            if len(records) >= limit:
                truncated = True
                break
            source = run.sources[merged.source_index].name
            records.append(_record_out(merged.record, source, include_raw=include_raw))
    finally:
        await run.records.aclose()

    return {
        "count": len(records),
        "truncated": truncated,
        "records": records,
        "sources": [ctx.to_dict() for ctx in run.sources],
    }


async def tail_logs_impl(
    *,
    log_paths: str | Sequence[str],
    seconds: float | None = None,
    from_end: bool = True,
    levels: Sequence[str] | None = None,
    pattern: str | None = None,
    regex: bool = False,
    ignore_case: bool = False,
    invert: bool = False,
    fields: FieldsArg = None,
    lines: int = 0,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Implementation for the `tail_logs` MCP tool.

    Follows the files for a bounded number of seconds and returns what was
    appended, preceded by the last ``lines`` lines of each file (or, with
    ``from_end=False``, the existing content as well).
    """
    if lines < 0:
        raise ValueError("lines must be >= 0")
    filter_spec = _filter_spec(
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=None,
        until=None,
    )
    if seconds is None:
        seconds = DEFAULT_TAIL_SECONDS
    if seconds <= 0:
        raise ValueError("seconds must be > 0")
    seconds = min(seconds, MAX_TAIL_SECONDS)
    limit = _resolve_limit(limit)
    paths = _paths(log_paths)

    stop = asyncio.Event()
    run = tail_files(paths, filter_spec=filter_spec, stop_event=stop, from_end=from_end, lines=lines)
    handle = asyncio.get_running_loop().call_later(seconds, stop.set)
    stream = run.records

    records: list[dict[str, Any]] = []
    truncated = False
    try:
        async for index, record in stream:
            if len(records) >= limit:
                truncated = True
                break
            records.append(_record_out(record, paths[index], include_raw=include_raw))
    finally:
        handle.cancel()
        await stream.aclose()

    return {
        "count": len(records),
        "truncated": truncated,
        "records": records,
        "sources": [ctx.to_dict() for ctx in run.sources],
    }
