"""OpenSSH (sshd) auth log parser.

sshd logs through syslog, so the framing is shared with :mod:`.syslog`; this
parser only accepts lines tagged ``sshd`` and classifies the message into an
``event`` field by keyword.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..errors import LineParseError
from ..models import Extraction, FieldValue, FormatTag, LogRecord, Severity
from ..normalizer import normalize
from .base import match_ratio
from .syslog import match_syslog, syslog_fields

# Checked in order; the first matching keyword decides the event.
_EVENT_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("break_in_attempt", ("POSSIBLE BREAK-IN ATTEMPT",)),
    ("auth_success", ("Accepted ",)),
    ("auth_failure", ("Failed ", "authentication failure", "Authentication failure")),
    ("invalid_user", ("Invalid user", "invalid user", "Illegal user")),
    ("disconnect", ("Received disconnect", "Disconnected from", "Connection closed", "Connection reset")),
    ("session", ("session opened", "session closed")),
)

_EVENT_LEVELS: dict[str, Severity] = {
    "break_in_attempt": Severity.ERROR,
    "auth_failure": Severity.WARN,
    "invalid_user": Severity.WARN,
    "auth_success": Severity.INFO,
    "disconnect": Severity.INFO,
    "session": Severity.INFO,
    "other": Severity.INFO,
}

_METHOD_RE = re.compile(r"\b(?:Accepted|Failed) (?P<method>[\w-]+) for ")
_USER_RE = re.compile(
    r"(?:for (?:invalid user |user )?|[Ii]nvalid user |\buser[= ])(?P<user>[^\s;]+)"
)
_IP_RE = re.compile(r"(?:\bfrom |rhost=|\bby |\[)(?P<ip>\d{1,3}(?:\.\d{1,3}){3}|[0-9a-fA-F:]*:[0-9a-fA-F:]+)")
_PORT_RE = re.compile(r"\bport (?P<port>\d+)")


def _is_sshd(tag: str) -> bool:
    return tag == "sshd" or tag.startswith("sshd(")


def classify(message: str) -> str:
    """Classify an sshd message into an event name."""
    for event, keywords in _EVENT_RULES:
        if any(k in message for k in keywords):
            return event
    return "other"


_USER_EVENTS = frozenset({"auth_success", "auth_failure", "invalid_user", "session"})


def ssh_fields(message: str, event: str) -> dict[str, FieldValue]:
    """Pull user/ip/port/auth method out of an sshd message."""
    fields: dict[str, FieldValue] = {}
    m = _METHOD_RE.search(message)
    if m:
        fields["auth_method"] = m.group("method")
    m = _USER_RE.search(message) if event in _USER_EVENTS else None
    if m:
        fields["user"] = m.group("user")
    m = _IP_RE.search(message)
    if m:
        fields["ip"] = m.group("ip")
    m = _PORT_RE.search(message)
    if m:
        fields["port"] = int(m.group("port"))
    return fields


@dataclass(frozen=True, slots=True)
class OpenSshParser:
    """Parse sshd lines wrapped in syslog framing."""

    format: FormatTag = FormatTag.OPENSSH

    def identify(self, sample: Sequence[str]) -> float:
        """Ratio of sample lines that are syslog lines tagged sshd."""

        def _matches(line: str) -> bool:
            parts = match_syslog(line)
            return parts is not None and _is_sshd(parts.tag)

        return match_ratio(sample, _matches)

    def extract(self, line: str) -> Extraction:
        """Match sshd syslog framing and classify the message."""
        parts = match_syslog(line)
        if parts is None:
            raise LineParseError("does not match syslog framing")
        if not _is_sshd(parts.tag):
            raise LineParseError(f"tag {parts.tag!r} is not sshd", kind="not_sshd")

        event = classify(parts.message)
        fields = syslog_fields(parts)
        fields["event"] = event
        fields.update(ssh_fields(parts.message, event))
        return Extraction(
            format=self.format,
            message=parts.message,
            timestamp=parts.timestamp,
            level=_EVENT_LEVELS[event].value,
            fields=fields,
        )

    def parse(self, line: str, *, now: datetime | None = None) -> LogRecord:
        """Parse an sshd line into a LogRecord."""
        return normalize(self.extract(line), line, now=now)
