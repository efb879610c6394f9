"""Log format grammars.

The set of formats is closed. ``PARSERS`` holds them in detection priority
order: when two parsers score the same on a sample, the earlier one wins
(OpenSSH before generic syslog).
"""

from __future__ import annotations

from .android import AndroidLogcatParser
from .apache import ApacheErrorParser
from .base import LogParser
from .jsonl import JsonLinesParser
from .logfmt import LogfmtParser
from .openssh import OpenSshParser
from .raw import RawParser
from .syslog import SyslogParser
from ..models import FormatTag

PARSERS: tuple[LogParser, ...] = (
    OpenSshParser(),
    AndroidLogcatParser(),
    ApacheErrorParser(),
    JsonLinesParser(),
    SyslogParser(),
    LogfmtParser(),
)

RAW_PARSER: LogParser = RawParser()

_BY_TAG: dict[FormatTag, LogParser] = {p.format: p for p in (*PARSERS, RAW_PARSER)}


def parser_for(tag: FormatTag) -> LogParser:
    """Return the registered parser for a format tag."""
    return _BY_TAG[tag]


__all__ = [
    "PARSERS",
    "RAW_PARSER",
    "AndroidLogcatParser",
    "ApacheErrorParser",
    "JsonLinesParser",
    "LogParser",
    "LogfmtParser",
    "OpenSshParser",
    "RawParser",
    "SyslogParser",
    "parser_for",
]
