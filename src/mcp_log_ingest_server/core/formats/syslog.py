"""Syslog parser."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..canonical import severity_from_syslog_pri
from ..errors import LineParseError
from ..models import Extraction, FieldValue, FormatTag, LogRecord
from ..normalizer import normalize
from .base import match_ratio

_RFC3164 = re.compile(
    r"^(?:<(?P<pri>\d{1,3})>)?"
    r"(?P<ts>[A-Z][a-z]{2}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2}(?:\.\d+)?)\s+"
    r"(?P<host>\S+)\s+"
    r"(?P<tag>[^\s:\[(]+(?:\([^)]*\))?)"
    r"(?:\[(?P<pid>\d+)\])?:\s?"
    r"(?P<msg>.*)$"
)

_RFC5424 = re.compile(
    r"^<(?P<pri>\d{1,3})>(?P<ver>\d)\s+"
    r"(?P<ts>\S+)\s+"
    r"(?P<host>\S+)\s+"
    r"(?P<tag>\S+)\s+"
    r"(?P<proc>\S+)\s+"
    r"(?P<msgid>\S+)\s*"
    r"(?P<sd>\[[^\]]*\]|-)?\s*"
    r"(?P<msg>.*)$"
)


@dataclass(frozen=True, slots=True)
class SyslogLine:
    """Grammar-level pieces of a syslog line."""

    timestamp: str
    host: str
    tag: str
    pid: int | None
    pri: int | None
    message: str
    msgid: str | None = None


def match_syslog(line: str) -> SyslogLine | None:
    """Match RFC3164 (BSD) or RFC5424 syslog framing."""
    m = _RFC3164.match(line)
    if m:
        return SyslogLine(
            timestamp=m.group("ts"),
            host=m.group("host"),
            tag=m.group("tag"),
            pid=int(m.group("pid")) if m.group("pid") else None,
            pri=int(m.group("pri")) if m.group("pri") else None,
            message=m.group("msg").strip(),
        )

    m = _RFC5424.match(line)
    if m:
        proc = m.group("proc")
        msgid = m.group("msgid")
        return SyslogLine(
            timestamp=m.group("ts"),
            host=m.group("host"),
            tag=m.group("tag"),
            pid=int(proc) if proc.isdigit() else None,
            pri=int(m.group("pri")),
            message=(m.group("msg") or "").strip(),
            msgid=None if msgid == "-" else msgid,
        )
    return None


def syslog_fields(parts: SyslogLine) -> dict[str, FieldValue]:
    """Build structured fields for a matched syslog line."""
    fields: dict[str, FieldValue] = {"host": parts.host, "tag": parts.tag}
    if parts.pid is not None:
        fields["pid"] = parts.pid
    if parts.msgid is not None:
        fields["msgid"] = parts.msgid
    if parts.pri is not None:
        fields["facility"] = parts.pri // 8
    return fields


@dataclass(frozen=True, slots=True)
class SyslogParser:
    """Parse BSD syslog lines (``Mon DD HH:MM:SS host tag[pid]: message``)."""

    format: FormatTag = FormatTag.SYSLOG

    def identify(self, sample: Sequence[str]) -> float:
        """Ratio of sample lines with syslog framing."""
        return match_ratio(sample, lambda line: match_syslog(line) is not None)

    def extract(self, line: str) -> Extraction:
        """Split a syslog line into timestamp, host, tag, pid and message."""
        parts = match_syslog(line)
        if parts is None:
            raise LineParseError("does not match syslog framing")

        level = None
        if parts.pri is not None:
            level = severity_from_syslog_pri(parts.pri).value
        return Extraction(
            format=self.format,
            message=parts.message,
            timestamp=parts.timestamp,
            level=level,
            fields=syslog_fields(parts),
        )

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Parse a syslog line into a LogRecord."""
        return normalize(self.extract(line), line, now=now)
