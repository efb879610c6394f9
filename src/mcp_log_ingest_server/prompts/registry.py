"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP


def _format_list(values: Sequence[str] | str) -> str:
    """Return values as a JSON array literal for prompt display."""
    if isinstance(values, str):
        items = [s.strip().lower() for s in values.split(",") if s.strip()]
    else:
        items = [str(s).strip().lower() for s in values if str(s).strip()]
    if not items:
        return "[]"
    quoted = ", ".join(f'"{item}"' for item in items)
    return f"[{quoted}]"


def investigate_log_file_messages(
    log_path: str,
    levels: Sequence[str] | str = ("warn", "error", "critical"),
    since: str | None = None,
    until: str | None = None,
    count_by: str | None = None,
) -> list[dict[str, Any]]:
    """Build the message list for the ``investigate_log_file`` prompt."""
    call_lines = [f"- log_paths: [\"{log_path}\"]", f"- levels: {_format_list(levels)}"]
    if since is not None:
        call_lines.append(f"- since: {since}")
    if until is not None:
        call_lines.append(f"- until: {until}")
    call_lines.append("- include_raw: true")
    call_block = "\n".join(call_lines)

    stats_lines = [f"- log_paths: [\"{log_path}\"]", "- histogram: hour"]
    if count_by is not None:
        stats_lines.append(f"- top_by: {count_by}")
    stats_block = "\n".join(stats_lines)

    return [
        {
            "role": "system",
            "content": (
                "You are a senior incident investigator for backend services. "
                "Provide concise, evidence-based summaries from normalized log records. "
                "Do not invent details; if the evidence is insufficient, say so."
            ),
        },
        {
            "role": "user",
            "content": (
                "Investigate the log file. Follow this workflow:\n"
                "- Call detect_log_format first and mention the detected format. If it is "
                "'raw', say that timestamps and levels are unavailable.\n"
                "- Call log_stats with the parameters below to see the overall shape "
                "(levels, formats, activity per hour).\n"
                "- Call parse_logs with the parameters below. Levels must be a list of "
                "strings, e.g. [\"error\", \"warn\"].\n"
                "- If no records are returned, state that clearly and suggest widening the "
                "time window or levels.\n"
                "- Use only tool output or the log resource for evidence; do not fabricate lines.\n\n"
                "Call log_stats with:\n"
                f"{stats_block}\n\n"
                "Call parse_logs with:\n"
                f"{call_block}\n\n"
                "Return this structure:\n"
                "1) What happened (1-3 bullets)\n"
                "2) Evidence (2-5 quoted raw lines with their timestamps)\n"
                "3) Suspected root cause (1-2 sentences; say 'Unknown' if unclear)\n"
                "4) Next actions (2-4 bullets)\n"
            ),
        },
        {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": "Optional: if you need raw context, you can read the log via:",
                },
                {"type": "resource", "uri": f"log://{log_path}"},
            ],
        },
    ]


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def investigate_log_file(
        log_path: str,
        levels: Sequence[str] | str = ("warn", "error", "critical"),
        since: str | None = None,
        until: str | None = None,
        count_by: str | None = None,
    ) -> list[dict[str, Any]]:
        """Build a prompt for structured investigation of one log file."""
        return investigate_log_file_messages(
            log_path, levels=levels, since=since, until=until, count_by=count_by
        )
