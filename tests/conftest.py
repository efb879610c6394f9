from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest

from mcp_log_ingest_server.core.models import FormatTag, LogRecord, Severity


@pytest.fixture
def write_lines() -> Callable[[Path, list[str]], Path]:
    def _write(path: Path, lines: list[str]) -> Path:
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_json_log() -> Callable[[Path], Path]:
    def _write(path: Path) -> Path:
        path.write_text(
            "\n".join(
                [
                    '{"timestamp":"2025-12-30T08:12:01Z","level":"info","message":"service started","host":"web-1"}',
                    '{"timestamp":"2025-12-30T08:12:03Z","level":"warning","message":"retrying request","host":"web-2"}',
                    '{"timestamp":"2025-12-30T08:12:04Z","level":"error","message":"upstream timeout","host":"web-1"}',
                    '{"timestamp":"2025-12-30T08:12:05Z","level":"fatal","message":"database unavailable","host":"web-1"}',
                ]
            )
            + "\n",
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def write_bytes() -> Callable[[Path, list[bytes]], None]:
    def _write(path: Path, lines: list[bytes]) -> None:
        path.write_bytes(b"".join(line + b"\n" for line in lines))

    return _write


@pytest.fixture
def make_record() -> Callable[..., LogRecord]:
    def _make(
        message: str = "msg",
        *,
        ts: datetime | None = None,
        level: Severity | None = Severity.INFO,
        fields: dict | None = None,
        format: FormatTag = FormatTag.JSON,
    ) -> LogRecord:
        return LogRecord(
            timestamp=ts,
            level=level,
            message=message,
            fields=dict(fields or {}),
            format=format,
            raw=message,
        )

    return _make

