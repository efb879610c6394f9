from __future__ import annotations

from mcp_log_ingest_server.prompts.registry import investigate_log_file_messages


def test_investigate_prompt_defaults() -> None:
    messages = investigate_log_file_messages("/var/log/app.log")

    assert [m["role"] for m in messages] == ["system", "user", "user"]
    body = messages[1]["content"]
    assert '- levels: ["warn", "error", "critical"]' in body
    assert "- since:" not in body
    assert "top_by" not in body
    assert messages[2]["content"][1] == {"type": "resource", "uri": "log:///var/log/app.log"}


def test_investigate_prompt_with_window_and_grouping() -> None:
    messages = investigate_log_file_messages(
        "app.log", levels="Error, critical", since="1 hour ago", until="now", count_by="host"
    )
    body = messages[1]["content"]
    assert '- levels: ["error", "critical"]' in body
    assert "- since: 1 hour ago" in body
    assert "- until: now" in body
    assert "- top_by: host" in body
