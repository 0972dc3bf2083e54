"""
Formatter base classes.

A text formatter is bound to exactly one record type. It renders the record
as lines on its sink and may add advisory lines derived from the record's
fields. It never changes the record.
"""
import re
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from hostprobe.core.command import ResultRecord
from hostprobe.core.errors import VersionFormatError
from hostprobe.output.sinks import OutputSink

_VERSION_PATTERN = re.compile(r"^\d+(\.\d+){1,3}$")


def parse_version(text: str) -> Tuple[int, ...]:
    """
    Parses "major.minor[.build[.revision]]" into a tuple of ints.

    Semantic version suffixes ("7.4.0-preview.3", "7.2.1+build") are dropped
    before parsing.
    """
    if text is None:
        raise VersionFormatError("Version is missing")
    core = re.split(r"[-+]", text.strip(), maxsplit=1)[0]
    if not _VERSION_PATTERN.match(core):
        raise VersionFormatError(f"Malformed version string: {text!r}")
    return tuple(int(part) for part in core.split("."))


class TextFormatterBase(ABC):
    def __init__(self, sink: OutputSink):
        self.sink = sink

    def write_line(self, text: str = "") -> None:
        # Embedded newlines become separate lines so every sink sees whole lines
        for line in text.split("\n"):
            self.sink.write_line(line)

    @abstractmethod
    def format_result(self, record: ResultRecord) -> None:
        ...


def format_value(value) -> str:
    """Renders a field the way the text formatters print it. Absent values print as empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


class JsonRecordFormatter:
    """Renders any record as one structured document. Used for every type in JSON mode."""

    def __init__(self, sink: OutputSink, command: Optional[str] = None, target: Optional[str] = None):
        self.sink = sink
        self.command = command
        self.target = target

    def format_result(self, record: ResultRecord) -> None:
        self.sink.write_record({
            "Type": type(record).__name__,
            "Command": self.command,
            "Target": self.target,
            "Data": record.to_dict(),
        })
