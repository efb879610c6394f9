from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from mcp_log_ingest_server.core.errors import InvalidSpecError
from mcp_log_ingest_server.core.filtering import FilterSpec, with_context
from mcp_log_ingest_server.core.models import Severity

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


def _records(make_record):
    return [
        make_record("disk full on /var", ts=NOW - timedelta(hours=3), level=Severity.ERROR, fields={"host": "prod-01"}),
        make_record("Disk check ok", ts=NOW - timedelta(minutes=30), level=Severity.INFO, fields={"host": "prod-02"}),
        make_record("retrying", ts=NOW - timedelta(minutes=5), level=Severity.WARN, fields={"host": "prod-01", "n": 3}),
        make_record("no clock here", ts=None, level=None, fields={"ok": True}),
    ]


def test_empty_spec_passes_everything(make_record) -> None:
    records = _records(make_record)
    flt = FilterSpec().compile()
    assert list(flt.select(records)) == records


def test_levels_accept_synonyms(make_record) -> None:
    flt = FilterSpec.build(levels=["warning", "ERR"]).compile()
    messages = [r.message for r in flt.select(_records(make_record))]
    assert messages == ["disk full on /var", "retrying"]


def test_levels_as_comma_string() -> None:
    spec = FilterSpec.build(levels="error,warn")
    assert spec.levels == ["error", "warn"]


def test_unknown_level_name_is_rejected() -> None:
    with pytest.raises(InvalidSpecError):
        FilterSpec.build(levels=["loud"])


def test_unknown_level_itself_is_allowed(make_record) -> None:
    rec = make_record("?", level=Severity.UNKNOWN)
    assert FilterSpec.build(levels=["unknown"]).compile().evaluate(rec)


def test_substring_pattern_and_ignore_case(make_record) -> None:
    records = _records(make_record)
    sensitive = FilterSpec.build(pattern="Disk").compile()
    insensitive = FilterSpec.build(pattern="Disk", ignore_case=True).compile()
    assert [r.message for r in sensitive.select(records)] == ["Disk check ok"]
    assert len(list(insensitive.select(records))) == 2


def test_regex_pattern(make_record) -> None:
    flt = FilterSpec.build(pattern=r"^re\w+ing$", regex=True).compile()
    assert [r.message for r in flt.select(_records(make_record))] == ["retrying"]


def test_invalid_regex_is_rejected() -> None:
    with pytest.raises(InvalidSpecError):
        FilterSpec.build(pattern="(unclosed", regex=True)


def test_invalid_regex_is_fine_as_substring() -> None:
    FilterSpec.build(pattern="(unclosed").compile()


def test_field_predicates_dict_and_list_forms(make_record) -> None:
    records = _records(make_record)
    as_dict = FilterSpec.build(fields={"host": "prod-01", "n": 3}).compile()
    as_list = FilterSpec.build(fields=["host=prod-01", "n=3"]).compile()
    assert [r.message for r in as_dict.select(records)] == ["retrying"]
    assert [r.message for r in as_list.select(records)] == ["retrying"]


def test_field_predicate_on_bool_and_missing_key(make_record) -> None:
    records = _records(make_record)
    flt = FilterSpec.build(fields=["ok=true"]).compile()
    assert [r.message for r in flt.select(records)] == ["no clock here"]


def test_malformed_field_predicate_is_rejected() -> None:
    with pytest.raises(InvalidSpecError):
        FilterSpec.build(fields=["host"])


def test_relative_time_window(make_record) -> None:
    flt = FilterSpec.build(since="1 hour ago", until="now").compile(now=NOW)
    assert flt.since == NOW - timedelta(hours=1)
    assert flt.until == NOW
    messages = [r.message for r in flt.select(_records(make_record))]
    assert messages == ["Disk check ok", "retrying"]


def test_since_inclusive_until_exclusive(make_record) -> None:
    at_since = make_record("a", ts=NOW - timedelta(hours=1))
    at_until = make_record("b", ts=NOW)
    flt = FilterSpec.build(since="1h", until="now").compile(now=NOW)
    assert flt.evaluate(at_since)
    assert not flt.evaluate(at_until)


def test_untimestamped_records_fail_time_bound(make_record) -> None:
    flt = FilterSpec.build(since="2000-01-01").compile(now=NOW)
    assert not flt.evaluate(make_record("x", ts=None))


@pytest.mark.parametrize(
    ("since", "until"),
    [("soon", None), ("now", "1 hour ago"), ("2025-01-02", "2025-01-01"), ("5 fortnights ago", None)],
)
def test_bad_time_window_is_rejected(since, until) -> None:
    spec = FilterSpec.build(since=since, until=until)
    with pytest.raises(InvalidSpecError):
        spec.compile(now=NOW)


def test_unknown_spec_key_is_rejected() -> None:
    with pytest.raises(InvalidSpecError):
        FilterSpec.build(grep="x")


def test_filter_is_idempotent(make_record) -> None:
    records = _records(make_record)
    flt = FilterSpec.build(levels=["error", "warn"], fields={"host": "prod-01"}, since="1 day ago").compile(now=NOW)
    once = list(flt.select(records))
    twice = list(flt.select(once))
    assert once == twice
    assert len(once) == 2


def test_invalid_spec_is_value_error() -> None:
    with pytest.raises(ValueError):
        FilterSpec.build(levels=["nope"])


def test_invert_selects_the_complement(make_record) -> None:
    records = _records(make_record)
    flt = FilterSpec.build(pattern="disk", ignore_case=True, invert=True).compile()
    assert [r.message for r in flt.select(records)] == ["retrying", "no clock here"]


def test_invert_applies_to_the_whole_filter(make_record) -> None:
    flt = FilterSpec.build(levels=["error"], fields={"host": "prod-01"}, invert=True).compile()
    messages = [r.message for r in flt.select(_records(make_record))]
    assert messages == ["Disk check ok", "retrying", "no clock here"]


async def _stream(records):
    for record in records:
        yield record


@pytest.mark.asyncio
async def test_with_context_adds_neighbours_once(make_record) -> None:
    records = [make_record(m) for m in ["a", "b", "MATCH 1", "c", "MATCH 2", "d", "e", "f"]]
    flt = FilterSpec.build(pattern="MATCH").compile()

    out = [(r.message, matched) async for r, matched in with_context(_stream(records), flt, before=1, after=1)]

    assert out == [
        ("b", False),
        ("MATCH 1", True),
        ("c", False),
        ("MATCH 2", True),
        ("d", False),
    ]


@pytest.mark.asyncio
async def test_with_context_without_window_yields_matches_only(make_record) -> None:
    records = [make_record(m) for m in ["x", "MATCH", "y"]]
    flt = FilterSpec.build(pattern="MATCH").compile()
    out = [(r.message, matched) async for r, matched in with_context(_stream(records), flt)]
    assert out == [("MATCH", True)]


@pytest.mark.asyncio
async def test_with_context_rejects_negative_sizes(make_record) -> None:
    with pytest.raises(ValueError):
        async for _ in with_context(_stream([]), FilterSpec().compile(), before=-1):
            pass
