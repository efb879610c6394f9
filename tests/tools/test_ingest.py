from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from mcp_log_ingest_server.core.errors import InvalidSpecError, SourceUnreadableError
from mcp_log_ingest_server.core.settings import MAX_WORKERS_ENV, SAMPLE_LINES_ENV
from mcp_log_ingest_server.tools.ingest import (
    HARD_LIMIT,
    detect_log_format_impl,
    log_stats_impl,
    merge_logs_impl,
    parse_logs_impl,
    tail_logs_impl,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(MAX_WORKERS_ENV, raising=False)
    monkeypatch.delenv(SAMPLE_LINES_ENV, raising=False)


@pytest.mark.asyncio
async def test_detect_log_format_impl(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")
    out = await detect_log_format_impl(log_path=str(path))
    assert out["format"] == "json"
    assert out["confidence"] == 1.0
    assert out["log_path"] == str(path)


@pytest.mark.asyncio
async def test_detect_log_format_impl_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SourceUnreadableError):
        await detect_log_format_impl(log_path=str(tmp_path / "nope.log"))


@pytest.mark.asyncio
async def test_parse_logs_impl_filters_and_serializes(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")

    out = await parse_logs_impl(
        log_paths=[str(path)],
        levels=["error", "critical"],
        pattern="TIMEOUT",
        ignore_case=True,
    )

    assert out["count"] == 1
    record = out["records"][0]
    assert record == {
        "timestamp": "2025-12-30T08:12:04Z",
        "level": "error",
        "message": "upstream timeout",
        "fields": {"host": "web-1"},
        "format": "json",
        "source": str(path),
    }
    assert out["sources"][0]["format"] == "json"
    assert out["sources"][0]["summary"]["total_lines"] == 4


@pytest.mark.asyncio
async def test_parse_logs_impl_include_raw_and_limit(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")
    out = await parse_logs_impl(log_paths=str(path), limit=2, include_raw=True)
    assert out["count"] == 2
    assert out["truncated"] is True
    assert out["records"][0]["raw"].startswith('{"timestamp"')


@pytest.mark.asyncio
async def test_parse_logs_impl_reports_unreadable_source(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")
    out = await parse_logs_impl(log_paths=[str(tmp_path / "missing.log"), str(path)])
    assert out["count"] == 4
    assert out["sources"][0]["error"] == "no such file"
    assert out["sources"][1]["error"] is None


@pytest.mark.asyncio
async def test_parse_logs_impl_rejects_bad_spec_before_reading(tmp_path: Path) -> None:
    with pytest.raises(InvalidSpecError):
        await parse_logs_impl(log_paths=[str(tmp_path / "missing.log")], pattern="([", regex=True)
    with pytest.raises(ValueError):
        await parse_logs_impl(log_paths=[str(tmp_path / "missing.log")], since="whenever")


@pytest.mark.asyncio
async def test_parse_logs_impl_limit_validation(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        await parse_logs_impl(log_paths=[str(tmp_path / "x.log")], limit=0)


@pytest.mark.asyncio
async def test_parse_logs_impl_caps_limit(tmp_path: Path, write_lines) -> None:
    path = write_lines(tmp_path / "many.log", [f"n={i} msg=m{i}" for i in range(HARD_LIMIT + 5)])
    out = await parse_logs_impl(log_paths=[str(path)], limit=HARD_LIMIT * 10)
    assert out["count"] == HARD_LIMIT
    assert out["truncated"] is True


@pytest.mark.asyncio
async def test_log_stats_impl(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")

    out = await log_stats_impl(log_paths=[str(path)], count_by="host", top_by="host", top_n=1, histogram="minute", unique="host")

    assert out["summary"]["total"] == 4
    assert out["summary"]["levels"] == {"info": 1, "warn": 1, "error": 1, "critical": 1}
    assert out["count_by"]["counts"] == {"web-1": 3, "web-2": 1}
    assert out["top"]["values"] == [{"value": "web-1", "count": 3}]
    assert out["unique"]["values"] == ["web-1", "web-2"]
    assert out["histogram"]["buckets"] == [{"start": "2025-12-30T08:12:00Z", "count": 4}]
    assert out["sources"][0]["format"] == "json"


@pytest.mark.asyncio
async def test_log_stats_impl_rejects_bad_bucket(tmp_path: Path) -> None:
    with pytest.raises(InvalidSpecError):
        await log_stats_impl(log_paths=[str(tmp_path / "x.log")], histogram="fortnight")


@pytest.mark.asyncio
async def test_merge_logs_impl(tmp_path: Path, write_lines) -> None:
    a = write_lines(
        tmp_path / "api.log",
        [
            '{"timestamp":"2025-01-01T00:00:01Z","level":"info","message":"request in"}',
            '{"timestamp":"2025-01-01T00:00:04Z","level":"info","message":"request out"}',
        ],
    )
    b = write_lines(
        tmp_path / "db.log",
        [
            'ts=2025-01-01T00:00:02Z level=info msg="query start" db=main',
            'ts=2025-01-01T00:00:03Z level=error msg="query failed" db=main',
        ],
    )

    out = await merge_logs_impl(log_paths=[str(a), str(b)], since="2024-06-01")

    assert [r["message"] for r in out["records"]] == ["request in", "query start", "query failed", "request out"]
    assert [r["source"] for r in out["records"]] == [str(a), str(b), str(b), str(a)]
    assert [s["format"] for s in out["sources"]] == ["json", "logfmt"]


@pytest.mark.asyncio
async def test_merge_logs_impl_requires_paths() -> None:
    with pytest.raises(InvalidSpecError):
        await merge_logs_impl(log_paths=[])


@pytest.mark.asyncio
async def test_tail_logs_impl_returns_appended_lines(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")

    async def append_later() -> None:
        await asyncio.sleep(0.2)
        with path.open("a", encoding="utf-8") as f:
            f.write('{"timestamp":"2025-12-30T08:13:00Z","level":"error","message":"new failure"}\n')

    writer = asyncio.create_task(append_later())
    out = await tail_logs_impl(log_paths=[str(path)], seconds=2.0, from_end=True, levels=["error"])
    await writer

    assert [r["message"] for r in out["records"]] == ["new failure"]
    assert out["records"][0]["source"] == str(path)


@pytest.mark.asyncio
async def test_tail_logs_impl_from_start_with_limit(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")
    out = await tail_logs_impl(log_paths=[str(path)], seconds=5.0, from_end=False, limit=2)
    assert out["count"] == 2
    assert out["truncated"] is True


@pytest.mark.asyncio
async def test_tail_logs_impl_validates_seconds(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        await tail_logs_impl(log_paths=[str(tmp_path / "x.log")], seconds=0)


@pytest.mark.asyncio
async def test_parse_logs_impl_context_records(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")

    out = await parse_logs_impl(log_paths=[str(path)], pattern="upstream", before=1, after=1)

    assert [(r["message"], r["match"]) for r in out["records"]] == [
        ("retrying request", False),
        ("upstream timeout", True),
        ("database unavailable", False),
    ]
    assert out["sources"][0]["summary"]["total_lines"] == 4


@pytest.mark.asyncio
async def test_parse_logs_impl_invert(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")
    out = await parse_logs_impl(log_paths=[str(path)], fields=["host=web-1"], invert=True)
    assert [r["message"] for r in out["records"]] == ["retrying request"]
    assert "match" not in out["records"][0]


@pytest.mark.asyncio
async def test_parse_logs_impl_rejects_negative_context(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        await parse_logs_impl(log_paths=[str(tmp_path / "x.log")], before=-1)


@pytest.mark.asyncio
async def test_tail_logs_impl_reports_sources(tmp_path: Path, write_json_log) -> None:
    path = write_json_log(tmp_path / "app.log")
    missing = str(tmp_path / "missing.log")

    out = await tail_logs_impl(log_paths=[str(path), missing], seconds=0.3, lines=2)

    assert [r["message"] for r in out["records"]] == ["upstream timeout", "database unavailable"]
    assert out["sources"][0]["format"] == "json"
    assert out["sources"][0]["error"] is None
    assert out["sources"][1]["error"] == "no such file"
