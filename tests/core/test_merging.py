from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from mcp_log_ingest_server.core.errors import InvalidSpecError
from mcp_log_ingest_server.core.filtering import FilterSpec
from mcp_log_ingest_server.core.merging import MergeSpec, merge_files, merge_records


def _ts(second: int) -> datetime:
    return datetime(2025, 1, 1, 0, 0, second, tzinfo=UTC)


async def _collect(streams) -> list:
    return [m async for m in merge_records(streams)]


@pytest.mark.asyncio
async def test_merge_total_order(make_record) -> None:
    a = [make_record("a1", ts=_ts(1)), make_record("a3", ts=_ts(3))]
    b = [make_record("b2", ts=_ts(2))]
    merged = await _collect([a, b])
    assert [m.record.message for m in merged] == ["a1", "b2", "a3"]


@pytest.mark.asyncio
async def test_equal_timestamps_break_by_source_then_line(make_record) -> None:
    a = [make_record("a-first", ts=_ts(5)), make_record("a-second", ts=_ts(5))]
    b = [make_record("b-first", ts=_ts(5))]
    runs = [[m.record.message for m in await _collect([list(a), list(b)])] for _ in range(3)]
    assert runs[0] == ["a-first", "a-second", "b-first"]
    assert runs[0] == runs[1] == runs[2]


@pytest.mark.asyncio
async def test_untimestamped_inherit_last_timestamp(make_record) -> None:
    a = [make_record("a1", ts=_ts(1)), make_record("a-cont", ts=None), make_record("a5", ts=_ts(5))]
    b = [make_record("b2", ts=_ts(2))]
    merged = await _collect([a, b])
    assert [m.record.message for m in merged] == ["a1", "a-cont", "b2", "a5"]
    assert merged[1].sort_time == _ts(1)


@pytest.mark.asyncio
async def test_leading_untimestamped_sort_before_first_timestamp(make_record) -> None:
    a = [make_record("a-head", ts=None), make_record("a4", ts=_ts(4))]
    b = [make_record("b1", ts=_ts(1)), make_record("b6", ts=_ts(6))]
    merged = await _collect([a, b])
    assert [m.record.message for m in merged] == ["b1", "a-head", "a4", "b6"]


@pytest.mark.asyncio
async def test_source_without_timestamps_goes_first(make_record) -> None:
    a = [make_record("a1", ts=_ts(1))]
    b = [make_record("b-x", ts=None), make_record("b-y", ts=None)]
    merged = await _collect([a, b])
    assert [m.record.message for m in merged] == ["b-x", "b-y", "a1"]
    assert merged[0].sort_time is None


@pytest.mark.asyncio
async def test_merge_accepts_async_streams_and_tags_sources(make_record) -> None:
    async def gen(prefix: str, seconds: list[int]):
        for s in seconds:
            yield make_record(f"{prefix}{s}", ts=_ts(s))

    merged = await _collect([gen("a", [1, 4]), gen("b", [2, 3])])
    assert [(m.source_index, m.sequence, m.record.message) for m in merged] == [
        (0, 0, "a1"),
        (1, 0, "b2"),
        (1, 1, "b3"),
        (0, 1, "a4"),
    ]


@pytest.mark.asyncio
async def test_merge_of_nothing(make_record) -> None:
    assert await _collect([[], []]) == []


@pytest.mark.asyncio
async def test_merge_files_isolates_unreadable_sources(tmp_path: Path, write_lines) -> None:
    a = write_lines(
        tmp_path / "a.log",
        [
            '{"timestamp":"2025-01-01T00:00:01Z","level":"info","message":"a1"}',
            '{"timestamp":"2025-01-01T00:00:03Z","level":"error","message":"a3"}',
        ],
    )
    b = write_lines(
        tmp_path / "b.log",
        [
            "2025-01-01T00:00:02Z level=error msg=b2 host=x",
            "2025-01-01T00:00:04Z level=info msg=b4 host=y",
        ],
    )
    spec = MergeSpec.build(log_paths=[str(a), str(tmp_path / "missing.log"), str(b)])
    run = merge_files(spec)
    messages = [m.record.message async for m in run.records]

    assert messages == ["a1", "b2", "a3", "b4"]
    assert run.sources[1].error == "no such file"
    assert run.sources[0].error is None


@pytest.mark.asyncio
async def test_merge_files_applies_filter(tmp_path: Path, write_lines) -> None:
    a = write_lines(tmp_path / "a.log", ["2025-01-01T00:00:01Z level=error msg=a1 k=v", "2025-01-01T00:00:05Z level=info msg=a5 k=v"])
    b = write_lines(tmp_path / "b.log", ["2025-01-01T00:00:03Z level=error msg=b3 k=v"])
    run = merge_files(MergeSpec.build(log_paths=[str(a), str(b)]), FilterSpec.build(levels=["error"]))
    assert [m.record.message async for m in run.records] == ["a1", "b3"]


def test_merge_files_rejects_bad_filter_before_opening(tmp_path: Path) -> None:
    spec = MergeSpec.build(log_paths=[str(tmp_path / "never-opened.log")])
    with pytest.raises(InvalidSpecError):
        merge_files(spec, FilterSpec.build(since="now", until="1 day ago"))


@pytest.mark.parametrize("paths", [[], ["  "]])
def test_merge_spec_validation(paths) -> None:
    with pytest.raises(InvalidSpecError):
        MergeSpec.build(log_paths=paths)
