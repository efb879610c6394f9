"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: detect, parse, aggregate, merge and tail log files
- Resources: help text, sample logs per format, spec schemas, log contents
- Prompts: reusable investigation templates that clients can invoke

Run locally (stdio):
    python -m mcp_log_ingest_server.server.log_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_ingest_server.prompts.registry import register_prompts
from mcp_log_ingest_server.resources.registry import register_resources
from mcp_log_ingest_server.tools.ingest import (
    detect_log_format_impl,
    log_stats_impl,
    merge_logs_impl,
    parse_logs_impl,
    tail_logs_impl,
)

LOGGER = logging.getLogger(__name__)

LOG_LEVEL_ENV = "LOG_INGEST_LOG_LEVEL"


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    stdout carries the stdio transport, so logs go to stderr only.
    """
    level_name = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


mcp = FastMCP("log-ingest", json_response=True)

register_resources(mcp)
register_prompts(mcp)


@mcp.tool()
async def detect_log_format(log_path: str, sample_lines: int | None = None) -> dict[str, Any]:
    """Detect which grammar a log file uses.

    Returns {"log_path", "format", "confidence", "scores"}. Formats: json,
    logfmt, syslog, apache, android, openssh, or raw when nothing reaches the
    0.5 confidence threshold.
    """
    return await detect_log_format_impl(log_path=log_path, sample_lines=sample_lines)


@mcp.tool()
async def parse_logs(
    log_paths: list[str],
    levels: Sequence[str] | None = None,
    pattern: str | None = None,
    regex: bool = False,
    ignore_case: bool = False,
    invert: bool = False,
    fields: dict[str, Any] | list[str] | None = None,
    since: str | None = None,
    until: str | None = None,
    before: int = 0,
    after: int = 0,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Return normalized records from one or more log files.

    Parameters
    ----------
    log_paths:
        Local log files (plain text or .gz). The format of each is detected.
    levels:
        Severity names (trace, debug, info, warn, error, critical, unknown).
        Synonyms such as "warning" or "fatal" are accepted.
    pattern / regex / ignore_case:
        Match against the message, as a substring or a regular expression.
    invert:
        Return the records that do not match instead.
    fields:
        Field equality predicates, e.g. {"host": "web-1"} or ["host=web-1"].
    since / until:
        Inclusive / exclusive bounds. RFC3339, YYYY-MM-DD, epoch, or relative
        ("now", "today", "1 hour ago", "30m"). Records without a timestamp are
        excluded when a bound is given.
    before / after:
        Also return this many records preceding / following each match; those
        carry "match": false.
    limit:
        Maximum number of records returned (hard-capped in the implementation).
    include_raw:
        Whether to include the original line in each record.

    Returns
    -------
    dict:
        {"count", "truncated", "records", "sources"}
    """
    return await parse_logs_impl(
        log_paths=log_paths,
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=since,
        until=until,
        before=before,
        after=after,
        limit=limit,
        include_raw=include_raw,
    )


@mcp.tool()
async def log_stats(
    log_paths: list[str],
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
    fields: dict[str, Any] | list[str] | None = None,
    since: str | None = None,
    until: str | None = None,
) -> dict[str, Any]:
    """Aggregate records from log files in a single pass.

    count_by / top_by / unique name a record field; histogram is one of
    minute, hour, day and is dense over the observed range. A summary
    (totals, per-level and per-format counts) is always included. Filter
    arguments are the same as for parse_logs.
    """
    return await log_stats_impl(
        log_paths=log_paths,
        count_by=count_by,
        top_by=top_by,
        top_n=top_n,
        histogram=histogram,
        unique=unique,
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=since,
        until=until,
    )


@mcp.tool()
async def merge_logs(
    log_paths: list[str],
    levels: Sequence[str] | None = None,
    pattern: str | None = None,
    regex: bool = False,
    ignore_case: bool = False,
    invert: bool = False,
    fields: dict[str, Any] | list[str] | None = None,
    since: str | None = None,
    until: str | None = None,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Merge several log files into one chronological stream.

    Equal timestamps are ordered by the position of the file in log_paths,
    then by line order. Each record carries the path it came from.
    """
    return await merge_logs_impl(
        log_paths=log_paths,
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        since=since,
        until=until,
        limit=limit,
        include_raw=include_raw,
    )


@mcp.tool()
async def tail_logs(
    log_paths: list[str],
    seconds: float | None = None,
    from_end: bool = True,
    levels: Sequence[str] | None = None,
    pattern: str | None = None,
    regex: bool = False,
    ignore_case: bool = False,
    invert: bool = False,
    fields: dict[str, Any] | list[str] | None = None,
    lines: int = 0,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Follow log files for a few seconds and return the lines appended meanwhile.

    With from_end=true, lines > 0 also returns the last N lines already in
    each file; with from_end=false the existing content is returned as well.
    Rotation (truncation or replacement) is handled; each line is returned
    once. "sources" reports format and errors per file.
    """
    return await tail_logs_impl(
        log_paths=log_paths,
        seconds=seconds,
        from_end=from_end,
        levels=levels,
        pattern=pattern,
        regex=regex,
        ignore_case=ignore_case,
        invert=invert,
        fields=fields,
        lines=lines,
        limit=limit,
        include_raw=include_raw,
    )


def main() -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
