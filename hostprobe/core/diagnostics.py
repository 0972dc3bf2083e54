from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class DiagnosticKind(str, Enum):
    SELECTION = "selection"
    PROBE = "probe"
    TIMEOUT = "timeout"
    FORMATTER = "formatter"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Diagnostic:
    """A failure reported inline with the output. Never stops the run."""

    kind: DiagnosticKind
    message: str
    command: Optional[str] = None
    target: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "command": self.command,
            "target": self.target,
        }

    def __str__(self) -> str:
        where = f"{self.command}: " if self.command else ""
        return f"[!] {self.kind.value} error: {where}{self.message}"


@dataclass
class TargetReport:
    target: str
    executed: List[str] = field(default_factory=list)
    record_counts: Dict[str, int] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class RunReport:
    """What a dispatcher run did, per target."""

    targets: List[TargetReport] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    cancelled: bool = False

    @property
    def all_diagnostics(self) -> List[Diagnostic]:
        collected = list(self.diagnostics)
        for report in self.targets:
            collected.extend(report.diagnostics)
        return collected

    @property
    def total_records(self) -> int:
        return sum(sum(report.record_counts.values()) for report in self.targets)
