"""
Output sinks. Formatters and the dispatcher write through these and never
know where the output ends up.
"""
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from rich.console import Console
from rich.text import Text

from hostprobe.core.diagnostics import Diagnostic

logger = logging.getLogger(__name__)


class OutputSink(ABC):
    @abstractmethod
    def write_line(self, text: str) -> None:
        """Write one line of human readable output."""
        pass

    @abstractmethod
    def write_record(self, record: Dict[str, Any]) -> None:
        """Write one structured record (machine readable mode)."""
        pass

    def write_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.write_line(str(diagnostic))

    def close(self) -> None:
        pass

    def __enter__(self) -> "OutputSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ConsoleSink(OutputSink):
    """
    Prints to the terminal. With structured=True every write is one JSON
    document per line, diagnostics included.
    """

    def __init__(self, console: Optional[Console] = None, structured: bool = False):
        self.console = console or Console(highlight=False, soft_wrap=True)
        self.structured = structured

    def write_line(self, text: str) -> None:
        if self.structured:
            self.write_record({"type": "line", "text": text})
        else:
            self.console.print(text, markup=False, highlight=False)

    def write_record(self, record: Dict[str, Any]) -> None:
        self.console.print(json.dumps(record, default=str), markup=False, highlight=False, soft_wrap=True)

    def write_diagnostic(self, diagnostic: Diagnostic) -> None:
        if self.structured:
            self.write_record({"type": "diagnostic", **diagnostic.to_dict()})
        else:
            self.console.print(Text(str(diagnostic), style="bold red"))


class FileSink(OutputSink):
    """Appends output to a file. Records are written as JSON lines, and so is everything else when structured."""

    def __init__(self, path: str, structured: bool = False):
        self.path = path
        self.structured = structured
        self._file = open(path, "a", encoding="utf-8")

    def write_line(self, text: str) -> None:
        if self.structured:
            self.write_record({"type": "line", "text": text})
        else:
            self._file.write(text + "\n")

    def write_record(self, record: Dict[str, Any]) -> None:
        self._file.write(json.dumps(record, default=str) + "\n")

    def write_diagnostic(self, diagnostic: Diagnostic) -> None:
        if self.structured:
            self.write_record({"type": "diagnostic", **diagnostic.to_dict()})
        else:
            self.write_line(str(diagnostic))

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


class WebhookSink(OutputSink):
    """Collects the run's output and POSTs it as one JSON document when closed."""

    def __init__(self, url: Optional[str] = None, timeout: int = 10):
        self.url = url or os.getenv("HOSTPROBE_WEBHOOK_URL")
        self.timeout = timeout
        self.lines: List[str] = []
        self.records: List[Dict[str, Any]] = []
        self.diagnostics: List[Dict[str, Any]] = []
        self._sent = False

    def write_line(self, text: str) -> None:
        self.lines.append(text)

    def write_record(self, record: Dict[str, Any]) -> None:
        self.records.append(record)

    def write_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic.to_dict())

    def send(self) -> bool:
        if not self.url:
            logger.warning("Webhook URL not configured. Cannot send results.")
            return False

        payload = {"lines": self.lines, "records": self.records, "diagnostics": self.diagnostics}
        try:
            response = requests.post(self.url, data=json.dumps(payload, default=str),
                                     headers={"Content-Type": "application/json"}, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to send results to webhook: {e}")
            return False

    def close(self) -> None:
        if not self._sent:
            self._sent = True
            self.send()


class BufferSink(OutputSink):
    """Keeps everything in memory, in write order."""

    def __init__(self):
        self.entries: List[Tuple[str, Any]] = []

    def write_line(self, text: str) -> None:
        self.entries.append(("line", text))

    def write_record(self, record: Dict[str, Any]) -> None:
        self.entries.append(("record", record))

    def write_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.entries.append(("diagnostic", diagnostic))

    @property
    def lines(self) -> List[str]:
        return [value for kind, value in self.entries if kind == "line"]

    @property
    def records(self) -> List[Dict[str, Any]]:
        return [value for kind, value in self.entries if kind == "record"]

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return [value for kind, value in self.entries if kind == "diagnostic"]

    def text(self) -> str:
        return "\n".join(self.lines)

    def replay(self, sink: OutputSink) -> None:
        """Writes the buffered output to another sink, in write order."""
        for kind, value in self.entries:
            if kind == "line":
                sink.write_line(value)
            elif kind == "record":
                sink.write_record(value)
            else:
                sink.write_diagnostic(value)


class MultiSink(OutputSink):
    """Fans every write out to several sinks. Writes are serialized."""

    def __init__(self, sinks: Sequence[OutputSink]):
        self.sinks = list(sinks)
        self._lock = threading.Lock()

    def write_line(self, text: str) -> None:
        with self._lock:
            for sink in self.sinks:
                sink.write_line(text)

    def write_record(self, record: Dict[str, Any]) -> None:
        with self._lock:
            for sink in self.sinks:
                sink.write_record(record)

    def write_diagnostic(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            for sink in self.sinks:
                sink.write_diagnostic(diagnostic)

    def close(self) -> None:
        for sink in self.sinks:
            try:
                sink.close()
            except Exception as e:
                logger.error(f"Error closing output sink {sink.__class__.__name__}: {e}")
