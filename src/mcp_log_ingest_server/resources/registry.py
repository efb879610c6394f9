"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

import asyncio
import gzip
import os
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_ingest_server.core.aggregation import AggregationSpec
from mcp_log_ingest_server.core.filtering import FilterSpec
from mcp_log_ingest_server.core.merging import MergeSpec
from mcp_log_ingest_server.core.models import FormatTag

ALLOWED_FILE_SUFFIXES = {".log", ".txt", ".json", ".jsonl", ".ndjson"}
BASE_DIR_ENV = "LOG_INGEST_BASE_DIR"
TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "replace"

SAMPLE_LOGS: dict[FormatTag, str] = {
    FormatTag.JSON: (
        '{"timestamp":"2025-01-01T12:00:00Z","level":"info","message":"service started","service":"api"}\n'
        '{"timestamp":"2025-01-01T12:00:03Z","level":"warning","message":"slow query","duration_ms":812}\n'
        '{"timestamp":"2025-01-01T12:00:04Z","level":"error","message":"upstream timeout","route":"/api/v1/items"}\n'
    ),
    FormatTag.LOGFMT: (
        'ts=2025-01-01T12:00:00Z level=info msg="request served" path=/health status=200\n'
        'ts=2025-01-01T12:00:01Z level=warn msg="cache miss" key=user:42 retry=true\n'
        'ts=2025-01-01T12:00:02Z level=error msg="write failed" path=/upload status=500\n'
    ),
    FormatTag.SYSLOG: (
        "<78>Jan  5 14:02:11 web-1 cron[1201]: (root) CMD (run-parts /etc/cron.hourly)\n"
        "Jan  5 14:02:12 web-1 kernel: eth0: link up\n"
        "<11>Jan  5 14:02:13 web-1 nginx[88]: upstream timed out while reading response\n"
    ),
    FormatTag.APACHE: (
        "[Wed Jan 01 12:00:00.123456 2025] [core:error] [pid 1234:tid 5678] "
        "[client 10.0.0.1:5050] File does not exist: /var/www/favicon.ico\n"
        "[Wed Jan 01 12:00:05 2025] [notice] Apache/2.2.22 configured -- resuming normal operations\n"
        "[Wed Jan 01 12:00:09.000001 2025] [ssl:warn] [pid 1234:tid 5679] AH01909: certificate mismatch\n"
    ),
    FormatTag.ANDROID: (
        "01-05 14:02:11.123  1201  1230 I ActivityManager: Start proc com.example.app\n"
        "01-05 14:02:11.456  1201  1230 W PackageManager: Unknown permission foo.BAR\n"
        "01-05 14:02:12.001  2400  2400 E AndroidRuntime: FATAL EXCEPTION: main\n"
    ),
    FormatTag.OPENSSH: (
        "Jan  5 14:02:11 bastion sshd[2211]: Accepted publickey for deploy from 10.0.0.5 port 52144 ssh2\n"
        "Jan  5 14:02:15 bastion sshd[2212]: Failed password for invalid user admin from 203.0.113.9 port 40022 ssh2\n"
        "Jan  5 14:02:16 bastion sshd[2212]: Invalid user admin from 203.0.113.9 port 40022\n"
    ),
    FormatTag.RAW: (
        "starting worker pool\n"
        "worker 3 finished in 12s\n"
        "shutting down\n"
    ),
}

SPEC_MODELS = {
    "filter-spec": FilterSpec,
    "aggregation-spec": AggregationSpec,
    "merge-spec": MergeSpec,
}


def _base_dir() -> Path:
    """Return the resolved base directory for file resources."""
    raw = os.getenv(BASE_DIR_ENV, os.getcwd())
    return Path(raw).resolve()


def _safe_resolve(path: str) -> Path:
    """Resolve a path under the configured base directory."""
    base = _base_dir()
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = base / p
    p = p.resolve()
    if base not in p.parents and p != base:
        raise ValueError("Path escapes base dir")
    return p


def _allowed_suffix(path: Path) -> str:
    """Return the effective suffix for allowlist checks."""
    suffix = path.suffix.lower()
    if suffix == ".gz":
        suffix = path.with_suffix("").suffix.lower()
    return suffix


def _resolve_resource_path(path: str) -> Path:
    """Resolve and validate a resource file path."""
    resolved = _safe_resolve(path)
    if not resolved.is_file():
        raise FileNotFoundError(f"File not found: {resolved}")
    if _allowed_suffix(resolved) not in ALLOWED_FILE_SUFFIXES:
        allowed = ", ".join(sorted(ALLOWED_FILE_SUFFIXES))
        raise ValueError(f"File type not allowed. Allowed: {allowed}.")
    return resolved


def _read_text(path: Path) -> str:
    """Read text from a file, supporting optional gzip compression."""
    if path.suffix.lower() == ".gz":
        with gzip.open(path, mode="rt", encoding=TEXT_ENCODING, errors=TEXT_ERRORS) as f:
            return f.read()
    return path.read_text(encoding=TEXT_ENCODING, errors=TEXT_ERRORS)


def sample_log(format_name: str) -> str:
    """Return the sample log for a format tag (e.g. ``json``)."""
    try:
        tag = FormatTag(format_name.strip().lower())
    except ValueError as exc:
        valid = ", ".join(t.value for t in FormatTag)
        raise ValueError(f"Unknown format '{format_name}'. Valid values: {valid}.") from exc
    return SAMPLE_LOGS[tag]


def spec_schema(name: str) -> dict[str, Any]:
    """Return the JSON schema of a spec model by its resource name."""
    model = SPEC_MODELS.get(name)
    if model is None:
        raise ValueError(f"Unknown schema '{name}'. Valid values: {', '.join(SPEC_MODELS)}.")
    return model.model_json_schema()


def register_resources(mcp: FastMCP) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://log-ingest/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        allowed = ", ".join(sorted(ALLOWED_FILE_SUFFIXES))
        formats = ", ".join(t.value for t in FormatTag)
        schemas = ", ".join(SPEC_MODELS)
        base = _base_dir()
        return (
            "Resources:\n"
            "- app://log-ingest/help\n"
            f"- app://log-ingest/examples/{{format}} (format: {formats})\n"
            f"- app://log-ingest/schemas/{{name}} (name: {schemas})\n"
            f"- log://{{path}} (restricted to {BASE_DIR_ENV}; allowed: {allowed}, .gz)\n"
            f"\nBase directory: {base}\n"
        )

    @mcp.resource("app://log-ingest/examples/{format_name}")
    def example_log(format_name: str) -> str:
        """Return a small sample log in the given format."""
        return sample_log(format_name)

    @mcp.resource("app://log-ingest/schemas/{name}")
    def schema(name: str) -> dict[str, Any]:
        """Return the JSON schema of a filter, aggregation or merge spec."""
        return spec_schema(name)

    @mcp.resource("log://{path}")
    async def read_log(path: str) -> str:
        """Return the full log contents."""
        p = _resolve_resource_path(path)
        return await asyncio.to_thread(_read_text, p)
