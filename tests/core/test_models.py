from __future__ import annotations

import json
from datetime import UTC, datetime

from mcp_log_ingest_server.core.formats import LogfmtParser
from mcp_log_ingest_server.core.models import (
    FormatTag,
    Severity,
    field_text,
    record_from_dict,
    record_to_dict,
)


def test_concrete_logfmt_record_serializes_canonically() -> None:
    record = LogfmtParser().parse('2025-01-01T12:00:00Z level=error msg="disk full" host=prod-01')
    assert record_to_dict(record, include_raw=False) == {
        "timestamp": "2025-01-01T12:00:00Z",
        "level": "error",
        "message": "disk full",
        "fields": {"host": "prod-01"},
        "format": "logfmt",
    }


def test_round_trip_through_json(make_record) -> None:
    record = make_record(
        "payment failed",
        ts=datetime(2025, 3, 1, 9, 30, 15, 250000, tzinfo=UTC),
        level=Severity.ERROR,
        fields={"order": 42, "amount": 9.5, "retry": False, "who": "bob"},
        format=FormatTag.LOGFMT,
    )
    data = json.loads(json.dumps(record_to_dict(record)))
    back = record_from_dict(data)
    assert back == record
    assert list(back.fields) == ["order", "amount", "retry", "who"]


def test_round_trip_without_timestamp_or_level(make_record) -> None:
    record = make_record("free text", ts=None, level=None, format=FormatTag.RAW)
    back = record_from_dict(record_to_dict(record))
    assert back.timestamp is None
    assert back.level is None
    assert back.message == "free text"


def test_record_to_dict_field_order_is_stable(make_record) -> None:
    d = record_to_dict(make_record("m"))
    assert list(d) == ["timestamp", "level", "message", "fields", "format", "raw"]


def test_field_text() -> None:
    assert field_text(True) == "true"
    assert field_text(False) == "false"
    assert field_text(200) == "200"
    assert field_text("x") == "x"
